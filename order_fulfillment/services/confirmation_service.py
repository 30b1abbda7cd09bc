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

"""Checkout confirmation: payment status and the cart that was paid for.

Resolution happens in two read-only steps so the idempotency check can run
between them:

1. `confirm_payment` asks the provider whether the session was paid.
2. `load_order_data` loads the cart and customer, preferring the staged
   checkout written before payment over provider metadata, which the provider
   truncates for large carts.
"""

import asyncio
import dataclasses
import json
import logging
from typing import List
from typing import Optional

from order_fulfillment import db
from order_fulfillment.clients.payments import CheckoutSession
from order_fulfillment.clients.payments import PaymentProvider
from order_fulfillment.exceptions import ConfirmationLookupFailedError
from order_fulfillment.exceptions import MalformedCheckoutDataError
from order_fulfillment.exceptions import MissingReferenceError
from order_fulfillment.exceptions import OrderDataNotFoundError
from order_fulfillment.exceptions import PaymentNotCompletedError
from order_fulfillment.exceptions import PersistenceError
from order_fulfillment.models import CartLineItem
from order_fulfillment.models import CustomerInfo
from order_fulfillment.models import StagedCheckoutData
import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_CART_ITEMS = pydantic.TypeAdapter(List[CartLineItem])


@dataclasses.dataclass(frozen=True)
class OrderData:
  customer: CustomerInfo
  items: List[CartLineItem]
  discount_code: Optional[str] = None
  from_staging: bool = True


class ConfirmationResolver:
  """Resolves a session reference into a paid checkout and its cart."""

  def __init__(
      self,
      payment_provider: PaymentProvider,
      session: AsyncSession,
      timeout: float = 10.0,
  ):
    self.payment_provider = payment_provider
    self.session = session
    self.timeout = timeout

  async def confirm_payment(self, session_id: Optional[str]) -> CheckoutSession:
    """Retrieves the provider session and checks that it was paid.

    Raises:
      MissingReferenceError: If no session reference was given.
      ConfirmationLookupFailedError: If the provider call fails or times out.
      PaymentNotCompletedError: If the session is not paid.
    """
    if not session_id or not session_id.strip():
      raise MissingReferenceError()

    logger.info("Retrieving checkout session %s", session_id)
    try:
      checkout = await asyncio.wait_for(
          self.payment_provider.retrieve_session(session_id),
          timeout=self.timeout,
      )
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.error("Failed to retrieve session %s: %r", session_id, e)
      raise ConfirmationLookupFailedError(
          "Failed to retrieve checkout session"
      ) from e

    if not checkout.is_paid:
      logger.warning(
          "Session %s has payment status %s",
          session_id,
          checkout.payment_status,
      )
      raise PaymentNotCompletedError()
    return checkout

  async def load_order_data(self, checkout: CheckoutSession) -> OrderData:
    """Loads cart and customer data for a paid session.

    Raises:
      MalformedCheckoutDataError: If a source is present but invalid.
      OrderDataNotFoundError: If neither source yields any cart items.
      PersistenceError: If the staging store cannot be read.
    """
    try:
      staged = await db.get_staged_checkout(self.session, checkout.id)
    except SQLAlchemyError as e:
      raise PersistenceError("Failed to read staged checkout") from e

    metadata = checkout.metadata
    if staged is not None:
      data = self._parse_staged(checkout.id, staged)
      customer = CustomerInfo(
          name=data.customer_info.name or metadata.get("customerName", ""),
          email=(
              data.customer_info.email
              or metadata.get("customerEmail")
              or checkout.customer_email
              or ""
          ),
          phone=data.customer_info.phone or metadata.get("customerPhone", ""),
      )
      if data.cart_items:
        return OrderData(
            customer=customer,
            items=data.cart_items,
            discount_code=(
                data.discount_code.code if data.discount_code else None
            ),
        )
      logger.warning("Staged checkout %s has no cart items", checkout.id)

    logger.info("Falling back to provider metadata for %s", checkout.id)
    items = self._parse_metadata_items(
        checkout.id, metadata.get("cartItems") or "[]"
    )
    if not items:
      logger.error("No cart items found for session %s", checkout.id)
      raise OrderDataNotFoundError()

    return OrderData(
        customer=CustomerInfo(
            name=metadata.get("customerName", ""),
            email=(
                metadata.get("customerEmail")
                or checkout.customer_email
                or ""
            ),
            phone=metadata.get("customerPhone", ""),
        ),
        items=items,
        from_staging=False,
    )

  def _parse_staged(self, session_id: str, staged) -> StagedCheckoutData:
    try:
      return StagedCheckoutData.model_validate(staged)
    except pydantic.ValidationError as e:
      logger.error("Malformed staged checkout %s: %s", session_id, e)
      raise MalformedCheckoutDataError(
          "Staged checkout data is malformed"
      ) from e

  def _parse_metadata_items(
      self, session_id: str, raw: str
  ) -> List[CartLineItem]:
    try:
      return _CART_ITEMS.validate_python(json.loads(raw))
    except (json.JSONDecodeError, pydantic.ValidationError) as e:
      logger.error(
          "Failed to parse cart items from metadata of %s: %s", session_id, e
      )
      raise MalformedCheckoutDataError(
          "Failed to retrieve order data"
      ) from e
