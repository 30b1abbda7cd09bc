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

"""Customer-initiated changes to an existing booking.

Every product is made to order, so changes are limited: a booking can be pushed
back by a few days, have its time slot changed, or be forfeited (no refund).
Only pending and confirmed bookings can be changed.
"""

import logging
import math
import re

from order_fulfillment import db
from order_fulfillment.enums import BookingStatus
from order_fulfillment.enums import FulfillmentType
from order_fulfillment.exceptions import InvalidRequestError
from order_fulfillment.exceptions import OrderNotModifiableError
from order_fulfillment.exceptions import RescheduleWindowExceededError
from order_fulfillment.services.booking_service import BookingService
from order_fulfillment.services.booking_service import parse_due_date

logger = logging.getLogger(__name__)

DEFAULT_RESCHEDULE_WINDOW_DAYS = 3

TIME_SLOT_PATTERN = re.compile(r"^\d{1,2}:\d{2}\s*(AM|PM)$", re.IGNORECASE)

_MODIFIABLE = frozenset(
    {BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value}
)


class LifecycleService:
  """Service for rescheduling, re-timing and forfeiting bookings."""

  def __init__(
      self,
      bookings: BookingService,
      reschedule_window_days: int = DEFAULT_RESCHEDULE_WINDOW_DAYS,
  ):
    self.bookings = bookings
    self.reschedule_window_days = reschedule_window_days

  async def _get_modifiable(self, booking_id: str) -> db.Booking:
    booking = await self.bookings.get_booking(booking_id)
    if booking.status not in _MODIFIABLE:
      raise OrderNotModifiableError(
          f"Booking in state '{booking.status}' cannot be modified"
      )
    return booking

  async def reschedule(self, booking_id: str, new_date: str) -> db.Booking:
    """Pushes a booking to a later date within the reschedule window.

    Args:
      booking_id: The booking to move.
      new_date: ISO 8601 date or datetime.

    Returns:
      The updated booking.

    Raises:
      InvalidRequestError: If the date is unparseable or not after the
        current due date.
      RescheduleWindowExceededError: If the date is beyond the window.
    """
    booking = await self._get_modifiable(booking_id)
    parsed = parse_due_date(new_date)
    if parsed is None:
      raise InvalidRequestError("Invalid date format")

    current = booking.pickup_date or booking.order_date
    days = math.ceil((parsed - current).total_seconds() / 86400)
    if days <= 0:
      raise InvalidRequestError(
          "New date must be after the current scheduled date"
      )
    if days > self.reschedule_window_days:
      raise RescheduleWindowExceededError(self.reschedule_window_days)

    await self.bookings.update_fields(
        booking_id, order_date=parsed, pickup_date=parsed
    )
    logger.info("Booking %s rescheduled by %d days", booking_id, days)
    return await self.bookings.reload(booking)

  async def change_time(self, booking_id: str, new_time: str) -> db.Booking:
    """Changes the pickup or delivery time slot, e.g. "3:00 PM"."""
    booking = await self._get_modifiable(booking_id)
    new_time = (new_time or "").strip()
    if not TIME_SLOT_PATTERN.match(new_time):
      raise InvalidRequestError(
          'Invalid time format. Please use format like "3:00 PM"'
      )

    if booking.fulfillment_type == FulfillmentType.DELIVERY.value:
      await self.bookings.update_fields(booking_id, delivery_time=new_time)
    else:
      await self.bookings.update_fields(booking_id, pickup_time=new_time)
    return await self.bookings.reload(booking)

  async def forfeit(self, booking_id: str) -> bool:
    await self._get_modifiable(booking_id)
    return await self.bookings.update_status(
        booking_id, BookingStatus.FORFEITED
    )
