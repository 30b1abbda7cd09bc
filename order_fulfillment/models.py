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

"""Payload models for the order fulfillment server.

Cart and customer payloads are written by the storefront before payment, in
its own camelCase shape. They are validated here at the system boundary so the
pipeline works with explicit types instead of loose dictionaries. Response
models use snake_case like the rest of the API.
"""

import datetime
from typing import List
from typing import Optional
from typing import Union

from order_fulfillment.enums import BookingStatus
from order_fulfillment.enums import FulfillmentType
from order_fulfillment.enums import PaymentStatus
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

DEFAULT_SIZE = '6"'
DEFAULT_FLAVOR = "vanilla"


class StorefrontModel(BaseModel):
  """Accepts the storefront's camelCase keys as well as snake_case."""

  model_config = ConfigDict(
      alias_generator=to_camel, populate_by_name=True, extra="ignore"
  )


class AddOn(StorefrontModel):
  id: Optional[str] = None
  name: str
  price: float = 0


class DeliveryAddress(StorefrontModel):
  street: str = ""
  city: str = ""
  state: str = ""
  zip_code: str = ""
  full_address: str = ""


class CustomerInfo(StorefrontModel):
  name: str = ""
  email: str = ""
  phone: str = ""


class CartLineItem(StorefrontModel):
  """One line of the cart as submitted before payment.

  Dates are kept as the raw strings the storefront sent; they are parsed per
  item during fulfillment so a bad date only affects its own line.
  """

  id: Union[int, str, None] = None
  name: str
  size: Optional[str] = None
  flavor: Optional[str] = None
  design_notes: Optional[str] = None
  price: float = 0
  add_ons: List[AddOn] = Field(default_factory=list)
  image: Optional[str] = None
  edible_image_url: Optional[str] = None
  reference_image_url: Optional[str] = None
  is_editable_photo: bool = False
  fulfillment_type: Optional[FulfillmentType] = None
  pickup_date: Optional[str] = None
  order_date: Optional[str] = None
  pickup_time: Optional[str] = None
  delivery_time: Optional[str] = None
  delivery_address: Optional[DeliveryAddress] = None


class DiscountReference(StorefrontModel):
  code: str
  percentage: Optional[float] = None


class StagedCheckoutData(StorefrontModel):
  """Scratch record stored under the session reference before payment."""

  cart_items: List[CartLineItem] = Field(default_factory=list)
  customer_info: CustomerInfo = Field(default_factory=CustomerInfo)
  discount_code: Optional[DiscountReference] = None


class NewBooking(BaseModel):
  """Snapshot written into the ledger for one paid cart line."""

  order_date: datetime.datetime
  status: BookingStatus = BookingStatus.PENDING
  customer: CustomerInfo
  product_id: Optional[str] = None
  product_name: str
  size: str = DEFAULT_SIZE
  flavor: str = DEFAULT_FLAVOR
  design_notes: str = ""
  price: float = 0
  add_ons: List[AddOn] = Field(default_factory=list)
  image: Optional[str] = None
  edible_image_url: Optional[str] = None
  reference_image_url: Optional[str] = None
  is_editable_photo: bool = False
  fulfillment_type: Optional[FulfillmentType] = None
  pickup_date: Optional[datetime.datetime] = None
  pickup_time: Optional[str] = None
  delivery_time: Optional[str] = None
  delivery_address: Optional[DeliveryAddress] = None
  stripe_session_id: Optional[str] = None
  line_index: int = 0
  stripe_payment_intent_id: Optional[str] = None
  amount_paid: float = 0
  payment_status: PaymentStatus = PaymentStatus.PAID


class CreatedBooking(BaseModel):
  id: str
  order_number: str


class BookingView(BaseModel):
  """Booking as returned by the listing and lookup endpoints."""

  model_config = ConfigDict(from_attributes=True)

  id: str
  order_number: str
  order_date: datetime.datetime
  created_at: datetime.datetime
  status: BookingStatus
  customer_name: str
  customer_email: str
  customer_phone: Optional[str] = None
  product_id: Optional[str] = None
  product_name: str
  size: str
  flavor: str
  design_notes: str
  price: float
  add_ons: list = Field(default_factory=list)
  image: Optional[str] = None
  edible_image_url: Optional[str] = None
  reference_image_url: Optional[str] = None
  is_editable_photo: bool = False
  fulfillment_type: Optional[str] = None
  pickup_date: Optional[datetime.datetime] = None
  pickup_time: Optional[str] = None
  delivery_time: Optional[str] = None
  delivery_address: Optional[dict] = None
  stripe_session_id: Optional[str] = None
  stripe_payment_intent_id: Optional[str] = None
  amount_paid: float = 0
  payment_status: Optional[str] = None
  forfeited_at: Optional[datetime.datetime] = None


class ConfirmedOrder(BaseModel):
  id: str
  name: str
  due_date: datetime.datetime
  order_number: Optional[str] = None


class FulfillmentResult(BaseModel):
  """Aggregate result of one confirmation callback.

  A non-empty `errors` list does not mean the call failed: every entry in
  `orders` is committed regardless of sibling errors.
  """

  success: bool = True
  already_processed: bool = False
  customer_name: str = ""
  customer_email: str = ""
  customer_phone: str = ""
  orders: List[ConfirmedOrder] = Field(default_factory=list)
  errors: Optional[List[str]] = None


class StatusUpdateRequest(BaseModel):
  status: BookingStatus


class RescheduleRequest(BaseModel):
  new_date: str


class ChangeTimeRequest(BaseModel):
  new_time: str


class BookingListResponse(BaseModel):
  bookings: List[BookingView]


class StatusUpdateResponse(BaseModel):
  success: bool = True
  modified: bool
