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

"""Promotion of customer uploads from temporary to permanent storage."""

import asyncio
import dataclasses
import logging
from typing import Optional

from order_fulfillment.clients.storage import AssetStore

logger = logging.getLogger(__name__)

TEMP_MARKER = "/temp/"


def is_temporary(url: Optional[str]) -> bool:
  return bool(url) and TEMP_MARKER in url


@dataclasses.dataclass(frozen=True)
class Promotion:
  url: Optional[str]
  moved: bool


class AssetPromoter:
  """Moves temp assets under a booking's permanent path.

  A failed move is not an error for the caller: the booking keeps the temp URL
  it was created with and `moved` is False.
  """

  def __init__(self, store: Optional[AssetStore], timeout: float = 10.0):
    self.store = store
    self.timeout = timeout

  async def promote(self, url: Optional[str], booking_id: str) -> Promotion:
    if not is_temporary(url):
      return Promotion(url=url, moved=False)
    if not self.store:
      logger.warning("Asset store not configured, keeping %s", url)
      return Promotion(url=url, moved=False)

    try:
      permanent_url = await asyncio.wait_for(
          self.store.move_temp_to_permanent(url, booking_id),
          timeout=self.timeout,
      )
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.error(
          "Error moving %s for booking %s: %r", url, booking_id, e
      )
      return Promotion(url=url, moved=False)

    if not permanent_url:
      logger.error(
          "Failed to move %s for booking %s (using temp URL)", url, booking_id
      )
      return Promotion(url=url, moved=False)

    return Promotion(url=permanent_url, moved=True)
