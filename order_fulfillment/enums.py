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

"""Enumerations for the order fulfillment server.

This module defines standard enums used throughout the server application
to represent the state of bookings and their payments.
"""

import enum


class BookingStatus(str, enum.Enum):
  PENDING = "pending"
  CONFIRMED = "confirmed"
  FORFEITED = "forfeited"


class PaymentStatus(str, enum.Enum):
  PAID = "paid"
  PENDING = "pending"
  FAILED = "failed"


class FulfillmentType(str, enum.Enum):
  PICKUP = "pickup"
  DELIVERY = "delivery"


class AssetSlot(str, enum.Enum):
  """Booking columns that may hold a customer-uploaded asset."""

  EDIBLE_IMAGE = "edible_image_url"
  REFERENCE_IMAGE = "reference_image_url"
