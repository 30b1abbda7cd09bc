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

"""Replay detection for confirmation callbacks.

The session reference is the idempotency key. This read-then-write check is
not atomic with the first insert; the unique (stripe_session_id, line_index)
constraint in `db` covers the concurrent case.
"""

from typing import Optional

from order_fulfillment.models import ConfirmedOrder
from order_fulfillment.models import FulfillmentResult
from order_fulfillment.services.booking_service import BookingService


class IdempotencyGuard:

  def __init__(self, bookings: BookingService):
    self.bookings = bookings

  async def check(self, session_id: str) -> Optional[FulfillmentResult]:
    """Returns the stored result for an already fulfilled session, or None."""
    existing = await self.bookings.find_by_session(session_id)
    if not existing:
      return None

    first = existing[0]
    return FulfillmentResult(
        already_processed=True,
        customer_name=first.customer_name or "",
        customer_email=first.customer_email or "",
        customer_phone=first.customer_phone or "",
        orders=[
            ConfirmedOrder(
                id=booking.id,
                name=booking.product_name,
                due_date=booking.order_date,
                order_number=booking.order_number,
            )
            for booking in existing
        ],
    )
