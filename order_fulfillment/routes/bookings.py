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

"""Booking management routes for the fulfillment server."""

from typing import Optional

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Query
from order_fulfillment import dependencies
from order_fulfillment.exceptions import InvalidRequestError
from order_fulfillment.exceptions import ResourceNotFoundError
from order_fulfillment.models import BookingListResponse
from order_fulfillment.models import BookingView
from order_fulfillment.models import ChangeTimeRequest
from order_fulfillment.models import RescheduleRequest
from order_fulfillment.models import StatusUpdateRequest
from order_fulfillment.models import StatusUpdateResponse
from order_fulfillment.services.booking_service import BookingService
from order_fulfillment.services.booking_service import parse_due_date
from order_fulfillment.services.lifecycle_service import LifecycleService

router = APIRouter()


def _parse_bound(value: Optional[str]):
  if value is None:
    return None
  parsed = parse_due_date(value)
  if parsed is None:
    raise InvalidRequestError(f"Invalid date format: {value}")
  return parsed


@router.get(
    "/bookings",
    response_model=BookingListResponse,
    operation_id="list_bookings",
)
async def list_bookings(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    booking_service: BookingService = Depends(
        dependencies.get_booking_service
    ),
) -> BookingListResponse:
  """List bookings due within a date range, soonest first."""
  rows = await booking_service.list_bookings(
      _parse_bound(start_date), _parse_bound(end_date)
  )
  return BookingListResponse(
      bookings=[BookingView.model_validate(row) for row in rows]
  )


@router.patch(
    "/bookings/{id}",
    response_model=StatusUpdateResponse,
    operation_id="update_booking_status",
)
async def update_booking_status(
    booking_id: str = Path(..., alias="id"),
    request: StatusUpdateRequest = Body(...),
    booking_service: BookingService = Depends(
        dependencies.get_booking_service
    ),
) -> StatusUpdateResponse:
  """Move a booking to another status."""
  modified = await booking_service.update_status(booking_id, request.status)
  return StatusUpdateResponse(modified=modified)


@router.post(
    "/bookings/{id}/reschedule",
    response_model=BookingView,
    operation_id="reschedule_booking",
)
async def reschedule_booking(
    booking_id: str = Path(..., alias="id"),
    request: RescheduleRequest = Body(...),
    lifecycle_service: LifecycleService = Depends(
        dependencies.get_lifecycle_service
    ),
) -> BookingView:
  booking = await lifecycle_service.reschedule(booking_id, request.new_date)
  return BookingView.model_validate(booking)


@router.post(
    "/bookings/{id}/change-time",
    response_model=BookingView,
    operation_id="change_booking_time",
)
async def change_booking_time(
    booking_id: str = Path(..., alias="id"),
    request: ChangeTimeRequest = Body(...),
    lifecycle_service: LifecycleService = Depends(
        dependencies.get_lifecycle_service
    ),
) -> BookingView:
  booking = await lifecycle_service.change_time(booking_id, request.new_time)
  return BookingView.model_validate(booking)


@router.post(
    "/bookings/{id}/forfeit",
    response_model=StatusUpdateResponse,
    operation_id="forfeit_booking",
)
async def forfeit_booking(
    booking_id: str = Path(..., alias="id"),
    lifecycle_service: LifecycleService = Depends(
        dependencies.get_lifecycle_service
    ),
) -> StatusUpdateResponse:
  """Forfeit a booking. Forfeited bookings are not refunded."""
  modified = await lifecycle_service.forfeit(booking_id)
  return StatusUpdateResponse(modified=modified)


@router.get(
    "/orders/lookup",
    response_model=BookingListResponse,
    operation_id="lookup_order",
)
async def lookup_order(
    order_number: Optional[str] = Query(None),
    booking_service: BookingService = Depends(
        dependencies.get_booking_service
    ),
) -> BookingListResponse:
  """Find bookings by the order number shown to the customer."""
  if not order_number or not order_number.strip():
    raise InvalidRequestError("Order number is required")
  rows = await booking_service.find_by_order_number(order_number)
  if not rows:
    raise ResourceNotFoundError("Order not found")
  return BookingListResponse(
      bookings=[BookingView.model_validate(row) for row in rows]
  )
