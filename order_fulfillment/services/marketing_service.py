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

"""Marketing email list sink fed by completed orders."""

import logging

from order_fulfillment import db
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

ORDER_SOURCE = "order"


class MarketingListService:
  """Records customer emails the first time an order carries them."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def add_email_from_order(self, email: str, name: str) -> None:
    """Adds an email to the list; never raises."""
    if not email:
      return
    normalized = email.strip().lower()
    try:
      if await db.get_email_list_entry(self.session, normalized):
        logger.info("Email %s already in list", normalized)
        return
      await db.add_email_list_entry(
          self.session, normalized, name, ORDER_SOURCE
      )
      await self.session.commit()
      logger.info("Added %s to email list from order", normalized)
    except Exception as e:  # pylint: disable=broad-exception-caught
      await self.session.rollback()
      logger.error("Failed to add %s to email list: %s", normalized, e)
