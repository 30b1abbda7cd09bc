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

"""Transactional email adapter."""

import abc
from typing import List
from typing import Optional
from typing import Union

import httpx

MAILTRAP_SEND_URL = "https://send.api.mailtrap.io/api/send"


class Mailer(abc.ABC):

  @abc.abstractmethod
  async def send(
      self, to: Union[str, List[str]], subject: str, html: str
  ) -> None:
    """Sends one email. Raises if the provider rejects it."""


class MailtrapMailer(Mailer):
  """Sends mail through the Mailtrap v2 sending API."""

  def __init__(
      self,
      api_token: str,
      from_email: str,
      from_name: str = "Orders",
      timeout: float = 10.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.api_token = api_token
    self.from_email = from_email
    self.from_name = from_name
    self.timeout = timeout
    self.transport = transport

  async def send(
      self, to: Union[str, List[str]], subject: str, html: str
  ) -> None:
    recipients = [to] if isinstance(to, str) else to
    payload = {
        "from": {"email": self.from_email, "name": self.from_name},
        "to": [{"email": email} for email in recipients],
        "subject": subject,
        "html": html,
    }
    async with httpx.AsyncClient(
        timeout=self.timeout, transport=self.transport
    ) as client:
      response = await client.post(
          MAILTRAP_SEND_URL,
          json=payload,
          headers={"Authorization": f"Bearer {self.api_token}"},
      )
      response.raise_for_status()
