#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Custom exceptions for the order fulfillment server."""


class FulfillmentError(Exception):
  """Base class for all fulfillment exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class MissingReferenceError(FulfillmentError):
  """Raised when a confirmation arrives without a session reference."""

  def __init__(self, message: str = "Missing session ID"):
    super().__init__(message, code="MISSING_REFERENCE", status_code=400)


class ConfirmationLookupFailedError(FulfillmentError):
  """Raised when the payment provider cannot be queried for a session."""

  def __init__(self, message: str):
    super().__init__(
        message, code="CONFIRMATION_LOOKUP_FAILED", status_code=500
    )


class PaymentNotCompletedError(FulfillmentError):
  """Raised when the provider reports the session as unpaid."""

  def __init__(self, message: str = "Payment not completed"):
    super().__init__(message, code="PAYMENT_NOT_COMPLETED", status_code=400)


class OrderDataNotFoundError(FulfillmentError):
  """Raised when neither staging nor provider metadata yields cart items."""

  def __init__(self, message: str = "Order data not found"):
    super().__init__(message, code="ORDER_DATA_NOT_FOUND", status_code=404)


class MalformedCheckoutDataError(FulfillmentError):
  """Raised when a staged checkout or provider metadata fails validation."""

  def __init__(self, message: str):
    super().__init__(message, code="MALFORMED_CHECKOUT_DATA", status_code=422)


class PersistenceError(FulfillmentError):
  """Raised on a genuine storage failure."""

  def __init__(self, message: str):
    super().__init__(message, code="PERSISTENCE_ERROR", status_code=500)


class DuplicateFulfillmentError(PersistenceError):
  """Raised when another invocation already stored bookings for a session."""

  def __init__(self, session_id: str):
    super().__init__(f"Session {session_id} was already fulfilled")
    self.code = "DUPLICATE_FULFILLMENT"
    self.status_code = 409
    self.session_id = session_id


class ResourceNotFoundError(FulfillmentError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class InvalidRequestError(FulfillmentError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class InvalidStatusTransitionError(FulfillmentError):
  """Raised when a booking status change is not in the transition table."""

  def __init__(self, current: str, requested: str):
    super().__init__(
        f"Cannot change booking status from '{current}' to '{requested}'",
        code="INVALID_STATUS_TRANSITION",
        status_code=409,
    )
    self.current = current
    self.requested = requested


class OrderNotModifiableError(FulfillmentError):
  """Raised when modifying a booking in a terminal state."""

  def __init__(self, message: str):
    super().__init__(message, code="ORDER_NOT_MODIFIABLE", status_code=409)


class RescheduleWindowExceededError(FulfillmentError):
  """Raised when a reschedule moves a booking further than policy allows."""

  def __init__(self, window_days: int):
    super().__init__(
        f"You can only push the date by a maximum of {window_days} days."
        " Please contact us for larger changes.",
        code="RESCHEDULE_WINDOW_EXCEEDED",
        status_code=400,
    )
    self.window_days = window_days


class InvalidWebhookSignatureError(FulfillmentError):
  """Raised when a provider webhook fails signature verification."""

  def __init__(self, message: str = "Invalid signature"):
    super().__init__(message, code="INVALID_SIGNATURE", status_code=400)
