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

"""Object storage adapter for customer-uploaded assets.

Uploads land under `temp/` before the order exists. Once a booking has a
durable ID, the asset is copied to `orders/edible-images/<booking id>/` and the
temp object is removed.
"""

import abc
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

TEMP_PREFIX = "temp/"
PERMANENT_PREFIX = "orders/edible-images"


class AssetStore(abc.ABC):
  """Interface to the object store holding customer uploads."""

  @abc.abstractmethod
  async def move_temp_to_permanent(
      self, temp_url: str, owner_id: str
  ) -> Optional[str]:
    """Moves a temp asset under the owner's permanent path.

    Returns:
      The permanent URL, or None if the move did not happen.
    """


class BunnyAssetStore(AssetStore):
  """Bunny.net storage zone, served through its CDN hostname."""

  def __init__(
      self,
      access_key: str,
      storage_zone: str,
      storage_hostname: str,
      cdn_url: str,
      timeout: float = 10.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.access_key = access_key
    self.storage_zone = storage_zone
    self.storage_hostname = storage_hostname
    self.cdn_url = cdn_url.rstrip("/")
    self.timeout = timeout
    self.transport = transport

  def _storage_url(self, path: str) -> str:
    return f"https://{self.storage_hostname}/{self.storage_zone}/{path}"

  async def move_temp_to_permanent(
      self, temp_url: str, owner_id: str
  ) -> Optional[str]:
    temp_path = temp_url.replace(f"{self.cdn_url}/", "", 1)
    if not temp_path.startswith(TEMP_PREFIX):
      logger.error("Can only move files from temp folder: %s", temp_url)
      return None

    filename = temp_path.rsplit("/", 1)[-1]
    permanent_path = f"{PERMANENT_PREFIX}/{owner_id}/{filename}"
    headers = {"AccessKey": self.access_key}

    async with httpx.AsyncClient(
        timeout=self.timeout, transport=self.transport
    ) as client:
      download = await client.get(self._storage_url(temp_path), headers=headers)
      if download.status_code != 200:
        logger.error(
            "Failed to download temp asset %s: Status %d",
            temp_path,
            download.status_code,
        )
        return None

      upload = await client.put(
          self._storage_url(permanent_path),
          headers={
              **headers,
              "Content-Type": download.headers.get(
                  "content-type", "image/jpeg"
              ),
          },
          content=download.content,
      )
      if not upload.is_success:
        logger.error(
            "Failed to upload asset to %s: Status %d",
            permanent_path,
            upload.status_code,
        )
        return None

      # The asset already lives at its permanent path; a stale temp copy is
      # harmless.
      removal = await client.delete(
          self._storage_url(temp_path), headers=headers
      )
      if not removal.is_success:
        logger.warning("Failed to delete temp asset %s", temp_path)

    return f"{self.cdn_url}/{permanent_path}"
