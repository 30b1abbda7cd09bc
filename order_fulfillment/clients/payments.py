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

"""Payment provider adapter.

The fulfillment pipeline only ever reads from the provider: it retrieves a
checkout session to learn whether it was paid, and verifies webhook payloads.
"""

import abc
import asyncio
import dataclasses
import json
from typing import Dict
from typing import Optional

import stripe


@dataclasses.dataclass(frozen=True)
class CheckoutSession:
  """Provider-side view of one checkout attempt."""

  id: str
  payment_status: str
  customer_email: Optional[str] = None
  amount_total: Optional[int] = None  # In cents
  payment_intent_id: Optional[str] = None
  metadata: Dict[str, str] = dataclasses.field(default_factory=dict)

  @property
  def is_paid(self) -> bool:
    return self.payment_status == "paid"


@dataclasses.dataclass(frozen=True)
class WebhookEvent:
  type: str
  session_id: Optional[str] = None


class PaymentProvider(abc.ABC):
  """Read-only interface to the payment provider."""

  @abc.abstractmethod
  async def retrieve_session(self, session_id: str) -> CheckoutSession:
    """Fetches a checkout session. Raises on any provider error."""

  @abc.abstractmethod
  def construct_event(
      self, payload: bytes, signature: Optional[str]
  ) -> WebhookEvent:
    """Parses a webhook payload, verifying its signature when possible.

    Raises:
      ValueError: If the payload cannot be parsed or verified.
    """


class StripePaymentProvider(PaymentProvider):
  """Stripe Checkout implementation of PaymentProvider."""

  def __init__(self, api_key: str, webhook_secret: Optional[str] = None):
    self.api_key = api_key
    self.webhook_secret = webhook_secret

  async def retrieve_session(self, session_id: str) -> CheckoutSession:
    # The SDK call is blocking; run it off the event loop.
    session = await asyncio.to_thread(
        stripe.checkout.Session.retrieve, session_id, api_key=self.api_key
    )

    payment_intent = getattr(session, "payment_intent", None)
    if payment_intent is not None and not isinstance(payment_intent, str):
      payment_intent = payment_intent.id

    customer_email = getattr(session, "customer_email", None)
    if not customer_email:
      details = getattr(session, "customer_details", None)
      customer_email = getattr(details, "email", None) if details else None

    metadata = getattr(session, "metadata", None)
    return CheckoutSession(
        id=session.id,
        payment_status=getattr(session, "payment_status", None) or "unpaid",
        customer_email=customer_email,
        amount_total=getattr(session, "amount_total", None),
        payment_intent_id=payment_intent,
        metadata=dict(metadata or {}),
    )

  def construct_event(
      self, payload: bytes, signature: Optional[str]
  ) -> WebhookEvent:
    if self.webhook_secret:
      if not signature:
        raise ValueError("Missing webhook signature")
      try:
        event = stripe.Webhook.construct_event(
            payload, signature, self.webhook_secret
        )
      except stripe.SignatureVerificationError as e:
        raise ValueError(str(e)) from e
      event_type = event["type"]
      obj = event["data"]["object"]
    else:
      # Unsigned delivery (local development); trust the JSON body as is.
      try:
        event = json.loads(payload)
      except json.JSONDecodeError as e:
        raise ValueError(f"Invalid webhook payload: {e}") from e
      event_type = event.get("type", "")
      obj = event.get("data", {}).get("object", {})

    session_id = None
    if event_type.startswith("checkout.session."):
      try:
        session_id = obj["id"]
      except (KeyError, TypeError) as e:
        raise ValueError("Webhook event has no session id") from e
    return WebhookEvent(type=event_type, session_id=session_id)
