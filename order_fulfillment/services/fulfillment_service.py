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

"""Fulfillment of paid checkout sessions.

This module provides the `FulfillmentService` class, which turns a paid
checkout session into bookings. It is invoked by the browser's success
redirect and by the provider webhook, possibly several times for one session.

Pipeline, per invocation:
- Confirm with the provider that the session is paid.
- Return the stored result if bookings already exist for the session.
- Load the cart and create one booking per line, then move its uploads to
  permanent storage and send notifications.
- Count the discount code usage and delete the staged checkout.

Only the first two steps and a missing cart abort the call. Everything after
payment confirmation is best-effort per line: payment has been captured, so a
booking is never rolled back because a later step failed.
"""

import logging
from typing import List, Optional

from order_fulfillment import db
from order_fulfillment.clients.payments import CheckoutSession
from order_fulfillment.enums import AssetSlot
from order_fulfillment.enums import PaymentStatus
from order_fulfillment.exceptions import DuplicateFulfillmentError
from order_fulfillment.exceptions import PersistenceError
from order_fulfillment.models import CartLineItem
from order_fulfillment.models import ConfirmedOrder
from order_fulfillment.models import CustomerInfo
from order_fulfillment.models import DEFAULT_FLAVOR
from order_fulfillment.models import DEFAULT_SIZE
from order_fulfillment.models import FulfillmentResult
from order_fulfillment.models import NewBooking
from order_fulfillment.services.asset_service import AssetPromoter
from order_fulfillment.services.asset_service import is_temporary
from order_fulfillment.services.booking_service import BookingService
from order_fulfillment.services.booking_service import parse_due_date
from order_fulfillment.services.confirmation_service import ConfirmationResolver
from order_fulfillment.services.discount_service import DiscountService
from order_fulfillment.services.idempotency import IdempotencyGuard
from order_fulfillment.services.notification_service import NotificationService
from order_fulfillment.services.notification_service import OrderNotice
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class FulfillmentService:
  """Service that creates bookings for paid checkout sessions."""

  def __init__(
      self,
      resolver: ConfirmationResolver,
      bookings: BookingService,
      assets: AssetPromoter,
      notifications: NotificationService,
      discounts: DiscountService,
      session: AsyncSession,
  ):
    self.resolver = resolver
    self.bookings = bookings
    self.guard = IdempotencyGuard(bookings)
    self.assets = assets
    self.notifications = notifications
    self.discounts = discounts
    self.session = session

  async def fulfill(self, session_id: Optional[str]) -> FulfillmentResult:
    """Runs the pipeline for one confirmation callback.

    Args:
      session_id: The payment provider's session reference.

    Returns:
      The created bookings and any per-line errors, or the stored result with
      `already_processed` set if the session was fulfilled before.

    Raises:
      MissingReferenceError, ConfirmationLookupFailedError,
      PaymentNotCompletedError, OrderDataNotFoundError,
      MalformedCheckoutDataError, PersistenceError: Before any write.
    """
    checkout = await self.resolver.confirm_payment(session_id)

    existing = await self.guard.check(checkout.id)
    if existing:
      logger.info(
          "Session %s already fulfilled, returning stored bookings", checkout.id
      )
      return existing

    order_data = await self.resolver.load_order_data(checkout)
    customer = order_data.customer

    orders: List[ConfirmedOrder] = []
    errors: List[str] = []
    for index, item in enumerate(order_data.items):
      try:
        confirmed = await self._fulfill_item(
            checkout, customer, index, item, errors
        )
      except DuplicateFulfillmentError:
        logger.warning(
            "Session %s was fulfilled by a concurrent request", checkout.id
        )
        concurrent = await self.guard.check(checkout.id)
        return concurrent or FulfillmentResult(
            already_processed=True,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
        )
      except PersistenceError as e:
        logger.error("Failed to book %s: %s", item.name, e)
        errors.append(f"{item.name}: {e.message}")
        continue
      except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Error processing %s", item.name)
        errors.append(f"{item.name}: Processing error")
        continue
      if confirmed:
        orders.append(confirmed)

    logger.info(
        "Session %s: %d bookings created, %d errors",
        checkout.id,
        len(orders),
        len(errors),
    )

    if order_data.discount_code:
      await self._count_discount_usage(order_data.discount_code)
    await self._discard_staging(checkout.id)

    return FulfillmentResult(
        customer_name=customer.name,
        customer_email=customer.email,
        customer_phone=customer.phone,
        orders=orders,
        errors=errors or None,
    )

  async def _fulfill_item(
      self,
      checkout: CheckoutSession,
      customer: CustomerInfo,
      index: int,
      item: CartLineItem,
      errors: List[str],
  ) -> Optional[ConfirmedOrder]:
    """Creates the booking for one cart line and runs its side effects."""
    due_date = parse_due_date(item.pickup_date) or parse_due_date(
        item.order_date
    )
    if not due_date:
      logger.error("No valid date found for %s", item.name)
      errors.append(
          f"No date found for {item.name}. Please add the item to cart from"
          " the product page."
      )
      return None

    booking = NewBooking(
        order_date=due_date,
        customer=customer,
        product_id=str(item.id) if item.id is not None else None,
        product_name=item.name,
        size=item.size or DEFAULT_SIZE,
        flavor=item.flavor or DEFAULT_FLAVOR,
        design_notes=item.design_notes or "",
        price=item.price,
        add_ons=item.add_ons,
        image=item.image,
        edible_image_url=item.edible_image_url,
        reference_image_url=item.reference_image_url,
        is_editable_photo=item.is_editable_photo,
        fulfillment_type=item.fulfillment_type,
        pickup_date=parse_due_date(item.pickup_date),
        pickup_time=item.pickup_time,
        delivery_time=item.delivery_time,
        delivery_address=item.delivery_address,
        stripe_session_id=checkout.id,
        line_index=index,
        stripe_payment_intent_id=checkout.payment_intent_id,
        # The captured amount is authoritative over cart prices.
        amount_paid=(checkout.amount_total or 0) / 100,
        payment_status=PaymentStatus.PAID,
    )

    # The booking must exist before its uploads can move under its ID.
    created = await self.bookings.create_booking(booking)

    promoted = {}
    for slot in AssetSlot:
      url = getattr(booking, slot.value)
      if not is_temporary(url):
        continue
      promotion = await self.assets.promote(url, created.id)
      if promotion.moved:
        promoted[slot.value] = promotion.url
      else:
        errors.append(
            f"Image for {item.name} could not be moved to permanent storage"
        )
    if promoted:
      await self.bookings.update_asset_refs(created.id, promoted)
      booking = booking.model_copy(update=promoted)

    notice = OrderNotice(
        booking_id=created.id,
        order_number=created.order_number,
        booking=booking,
    )

    try:
      await self.notifications.publish_new_order(notice)
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.error("Realtime publish failed for %s: %r", created.id, e)

    for send in (
        self.notifications.send_operator_email,
        self.notifications.send_customer_email,
    ):
      try:
        await send(notice, item.image)
      except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error(
            "Email error for %s (order still created): %r", created.id, e
        )
        errors.append(
            f"Email failed for {item.name}: {str(e) or type(e).__name__}"
        )

    return ConfirmedOrder(
        id=created.id,
        name=item.name,
        due_date=due_date,
        order_number=created.order_number,
    )

  async def _count_discount_usage(self, code: str) -> None:
    try:
      validation = await self.discounts.validate(code)
      if not validation.valid:
        logger.warning(
            "Discount code %s not counted: %s", code, validation.error
        )
        return
      await self.discounts.increment_usage(validation.discount_code.id)
    except Exception as e:  # pylint: disable=broad-exception-caught
      await self.session.rollback()
      logger.error(
          "Failed to increment usage of %s (not critical): %s", code, e
      )

  async def _discard_staging(self, session_id: str) -> None:
    try:
      await db.delete_staged_checkout(self.session, session_id)
      await self.session.commit()
    except Exception as e:  # pylint: disable=broad-exception-caught
      await self.session.rollback()
      logger.error(
          "Failed to clean up staged checkout %s (not critical): %s",
          session_id,
          e,
      )
