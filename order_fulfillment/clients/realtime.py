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

"""Real-time publish adapter used to push new orders to open dashboards."""

import abc
import asyncio
import math
from typing import Any, Dict

import pusher


class Publisher(abc.ABC):

  @abc.abstractmethod
  async def publish(
      self, channel: str, event: str, payload: Dict[str, Any]
  ) -> None:
    """Publishes one event. Raises if the channel rejects it."""


class PusherPublisher(Publisher):
  """Triggers events through Pusher Channels."""

  def __init__(
      self,
      app_id: str,
      key: str,
      secret: str,
      cluster: str = "us2",
      timeout: float = 10.0,
  ):
    self.client = pusher.Pusher(
        app_id=app_id,
        key=key,
        secret=secret,
        cluster=cluster,
        ssl=True,
        # The SDK only accepts whole seconds.
        timeout=int(math.ceil(timeout)),
    )

  async def publish(
      self, channel: str, event: str, payload: Dict[str, Any]
  ) -> None:
    # The SDK call is blocking; run it off the event loop.
    await asyncio.to_thread(self.client.trigger, channel, event, payload)
