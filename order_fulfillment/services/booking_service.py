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

"""Booking ledger: the durable record of every paid order line.

This module provides the `BookingService` class, which owns creation, listing
and status changes of bookings, together with the helpers the rest of the
server shares for order numbers and due dates.

Status changes go through an explicit transition table:

  pending   <-> confirmed   (operator toggle)
  pending    -> forfeited
  confirmed  -> forfeited

`forfeited` is terminal.
"""

import datetime
import logging
import random
import time
from typing import Any, Dict, List, Optional

from order_fulfillment import db
from order_fulfillment.enums import BookingStatus
from order_fulfillment.exceptions import DuplicateFulfillmentError
from order_fulfillment.exceptions import InvalidStatusTransitionError
from order_fulfillment.exceptions import PersistenceError
from order_fulfillment.exceptions import ResourceNotFoundError
from order_fulfillment.models import CreatedBooking
from order_fulfillment.models import NewBooking
from order_fulfillment.services.marketing_service import MarketingListService
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.FORFEITED}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.PENDING, BookingStatus.FORFEITED}
    ),
    BookingStatus.FORFEITED: frozenset(),
}


def generate_order_number() -> str:
  """Returns a display order number such as "1350987631-359".

  The number is the last ten digits of the current time in milliseconds plus
  three random digits. It is not checked for uniqueness: two calls within the
  same millisecond collide with probability 1/1000, which is accepted at the
  expected order volume. Never use it as a key for correctness-critical
  lookups; the booking ID is the identity.
  """
  timestamp = str(int(time.time() * 1000))[-10:]
  return f"{timestamp}-{random.randint(0, 999):03d}"


def parse_due_date(value: Optional[str]) -> Optional[datetime.datetime]:
  """Parses an ISO 8601 date or datetime into naive UTC, or None."""
  if not value:
    return None
  try:
    parsed = datetime.datetime.fromisoformat(value.strip())
  except ValueError:
    return None
  if parsed.tzinfo is not None:
    parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
  return parsed


class BookingService:
  """Service for creating, listing and transitioning bookings."""

  def __init__(
      self,
      session: AsyncSession,
      marketing: Optional[MarketingListService] = None,
  ):
    self.session = session
    self.marketing = marketing

  async def create_booking(self, booking: NewBooking) -> CreatedBooking:
    """Inserts a pending booking and records the customer for marketing.

    Args:
      booking: The snapshot to persist.

    Returns:
      The durable ID and display order number of the new booking.

    Raises:
      DuplicateFulfillmentError: If the session line is already booked.
      PersistenceError: On any other storage failure.
    """
    order_number = generate_order_number()
    values = booking.model_dump(mode="json", exclude={"customer"})
    values.update(
        order_number=order_number,
        order_date=booking.order_date,
        pickup_date=booking.pickup_date,
        created_at=db.utcnow(),
        status=BookingStatus.PENDING.value,
        customer_name=booking.customer.name,
        customer_email=booking.customer.email,
        customer_phone=booking.customer.phone or None,
    )

    try:
      row = await db.insert_booking(self.session, values)
      booking_id = row.id
      await self.session.commit()
    except IntegrityError as e:
      await self.session.rollback()
      if booking.stripe_session_id:
        raise DuplicateFulfillmentError(booking.stripe_session_id) from e
      raise PersistenceError("Failed to create booking") from e
    except SQLAlchemyError as e:
      await self.session.rollback()
      logger.error("Error creating booking: %s", e)
      raise PersistenceError("Failed to create booking") from e

    logger.info(
        "Created booking %s (#%s) for %s",
        booking_id,
        order_number,
        booking.product_name,
    )

    # The booking is committed; a failed marketing write rolls back only its
    # own insert but expires `row`, so only plain values are used past here.
    if self.marketing:
      await self.marketing.add_email_from_order(
          booking.customer.email, booking.customer.name
      )

    return CreatedBooking(id=booking_id, order_number=order_number)

  async def get_booking(self, booking_id: str) -> db.Booking:
    booking = await db.get_booking(self.session, booking_id)
    if not booking:
      raise ResourceNotFoundError("Booking not found")
    return booking

  async def reload(self, booking: db.Booking) -> db.Booking:
    await self.session.refresh(booking)
    return booking

  async def list_bookings(
      self,
      start: Optional[datetime.datetime] = None,
      end: Optional[datetime.datetime] = None,
  ) -> List[db.Booking]:
    """Bookings due in [start, end], ascending by due date."""
    return await db.list_bookings(self.session, start, end)

  async def find_by_session(self, stripe_session_id: str) -> List[db.Booking]:
    try:
      return await db.get_bookings_by_session(self.session, stripe_session_id)
    except SQLAlchemyError as e:
      raise PersistenceError("Failed to look up existing bookings") from e

  async def find_by_order_number(self, order_number: str) -> List[db.Booking]:
    return await db.get_bookings_by_order_number(
        self.session, order_number.strip().lstrip("#")
    )

  async def update_status(
      self, booking_id: str, new_status: BookingStatus
  ) -> bool:
    """Applies a status transition.

    Args:
      booking_id: The booking to update.
      new_status: The requested status.

    Returns:
      Whether the stored status changed. Requesting the current status is a
      no-op that returns False.

    Raises:
      ResourceNotFoundError: If the booking does not exist.
      InvalidStatusTransitionError: If the transition is not allowed.
    """
    booking = await self.get_booking(booking_id)
    try:
      current = BookingStatus(booking.status)
    except ValueError as e:
      raise InvalidStatusTransitionError(
          booking.status, new_status.value
      ) from e

    if current == new_status:
      return False
    if new_status not in ALLOWED_TRANSITIONS[current]:
      raise InvalidStatusTransitionError(current.value, new_status.value)

    extra: Dict[str, Any] = {}
    if new_status == BookingStatus.FORFEITED:
      extra["forfeited_at"] = db.utcnow()

    modified = await db.update_booking_status(
        self.session,
        booking_id,
        new_status.value,
        expected_status=current.value,
        **extra,
    )
    await self.session.commit()
    logger.info(
        "Booking %s status %s -> %s (modified=%s)",
        booking_id,
        current.value,
        new_status.value,
        modified,
    )
    return modified

  async def update_fields(self, booking_id: str, **values: Any) -> bool:
    matched = await db.update_booking_fields(
        self.session, booking_id, **values
    )
    await self.session.commit()
    return matched

  async def update_asset_refs(
      self, booking_id: str, refs: Dict[str, str]
  ) -> bool:
    """Stores promoted asset URLs on a booking; never raises."""
    try:
      return await self.update_fields(booking_id, **refs)
    except Exception as e:  # pylint: disable=broad-exception-caught
      await self.session.rollback()
      logger.error(
          "Failed to update booking %s with permanent URLs: %s",
          booking_id,
          e,
      )
      return False
