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

"""Checkout confirmation routes: the success redirect and provider webhook.

Both routes run the same fulfillment pipeline for a checkout session. They can
fire for the same session in any order and any number of times; the pipeline
returns the stored result for every call after the first.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Header
from fastapi import Query
from fastapi import Request
from order_fulfillment import dependencies
from order_fulfillment.clients.payments import PaymentProvider
from order_fulfillment.exceptions import InvalidWebhookSignatureError
from order_fulfillment.exceptions import PaymentNotCompletedError
from order_fulfillment.models import FulfillmentResult
from order_fulfillment.services.fulfillment_service import FulfillmentService

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"

router = APIRouter()


@router.get(
    "/checkout-success",
    response_model=FulfillmentResult,
    response_model_exclude_none=True,
    operation_id="confirm_checkout",
)
async def confirm_checkout(
    session_id: Optional[str] = Query(None),
    fulfillment_service: FulfillmentService = Depends(
        dependencies.get_fulfillment_service
    ),
) -> FulfillmentResult:
  """Fulfills the checkout the customer was redirected back from."""
  return await fulfillment_service.fulfill(session_id)


@router.post(
    "/webhooks/stripe",
    response_model=dict[str, Any],
    operation_id="stripe_webhook",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    payment_provider: PaymentProvider = Depends(
        dependencies.get_payment_provider
    ),
    fulfillment_service: FulfillmentService = Depends(
        dependencies.get_fulfillment_service
    ),
) -> dict[str, Any]:
  """Receives provider events and fulfills completed checkouts."""
  payload = await request.body()
  try:
    event = payment_provider.construct_event(payload, stripe_signature)
  except ValueError as e:
    logger.error("Webhook verification failed: %s", e)
    raise InvalidWebhookSignatureError() from e

  if event.type != CHECKOUT_COMPLETED_EVENT or not event.session_id:
    logger.info("Ignoring webhook event %s", event.type)
    return {"received": True}

  try:
    result = await fulfillment_service.fulfill(event.session_id)
  except PaymentNotCompletedError:
    # Delayed payment methods complete with a later event.
    logger.info("Session %s completed but not yet paid", event.session_id)
    return {"received": True, "fulfilled": False}

  return {
      "received": True,
      "fulfilled": True,
      "already_processed": result.already_processed,
      "orders": len(result.orders),
  }
