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

"""Discount code validation and usage accounting."""

import dataclasses
from typing import Optional

from order_fulfillment import db
from sqlalchemy.ext.asyncio import AsyncSession


@dataclasses.dataclass(frozen=True)
class DiscountValidation:
  valid: bool
  discount_code: Optional[db.DiscountCode] = None
  error: Optional[str] = None


class DiscountService:
  """Service for checking and counting discount code usage."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def validate(self, code: str) -> DiscountValidation:
    """Checks that a code exists, is active, unexpired and under its limit."""
    discount = await db.get_discount_code(self.session, code)
    if not discount:
      return DiscountValidation(False, error="Invalid discount code")

    if not discount.active:
      return DiscountValidation(
          False, error="This discount code is no longer active"
      )

    if discount.expires_at and discount.expires_at < db.utcnow():
      return DiscountValidation(False, error="This discount code has expired")

    # A limit of 0 means unlimited, same as no limit.
    if discount.max_uses and discount.usage_count >= discount.max_uses:
      return DiscountValidation(
          False, error="This discount code has reached its usage limit"
      )

    return DiscountValidation(True, discount_code=discount)

  async def increment_usage(self, discount_id: str) -> bool:
    matched = await db.increment_discount_usage(self.session, discount_id)
    await self.session.commit()
    return matched
