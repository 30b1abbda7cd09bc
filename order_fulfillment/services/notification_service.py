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

"""Notifications sent when a booking is created.

Each method raises on failure (including timeouts) and leaves it to the caller
to decide whether the failure matters. An unconfigured channel is skipped with
a warning rather than treated as a failure.
"""

import asyncio
import dataclasses
import datetime
import html
import logging
from typing import List, Optional

from order_fulfillment.clients.mailer import Mailer
from order_fulfillment.clients.realtime import Publisher
from order_fulfillment.enums import FulfillmentType
from order_fulfillment.models import NewBooking

logger = logging.getLogger(__name__)

ORDERS_CHANNEL = "orders"
NEW_ORDER_EVENT = "new-order"


@dataclasses.dataclass(frozen=True)
class OrderNotice:
  booking_id: str
  order_number: str
  booking: NewBooking


def _money(amount: float) -> str:
  return f"${amount:.2f}"


def _details_rows(notice: OrderNotice) -> str:
  booking = notice.booking
  rows = [
      ("Order #", notice.order_number),
      ("Item", booking.product_name),
      ("Size", booking.size),
      ("Flavor", booking.flavor),
      ("Date", booking.order_date.strftime("%A, %B %d, %Y")),
  ]
  if booking.fulfillment_type == FulfillmentType.DELIVERY:
    rows.append(("Delivery time", booking.delivery_time or "TBD"))
    if booking.delivery_address:
      rows.append(("Address", booking.delivery_address.full_address))
  else:
    rows.append(("Pickup time", booking.pickup_time or "TBD"))
  for add_on in booking.add_ons:
    rows.append(("Add-on", f"{add_on.name} ({_money(add_on.price)})"))
  if booking.design_notes:
    rows.append(("Notes", booking.design_notes))
  rows.append(("Paid", _money(booking.amount_paid)))
  return "".join(
      f"<tr><td><strong>{html.escape(label)}</strong></td>"
      f"<td>{html.escape(str(value))}</td></tr>"
      for label, value in rows
  )


def _image_block(image: Optional[str]) -> str:
  if not image:
    return ""
  return f'<p><img src="{html.escape(image)}" alt="" width="240"></p>'


def render_operator_email(notice: OrderNotice, image: Optional[str]) -> str:
  booking = notice.booking
  customer = booking.customer
  uploads = ""
  for label, url in (
      ("Edible image", booking.edible_image_url),
      ("Reference image", booking.reference_image_url),
  ):
    if url:
      uploads += (
          f'<p>{label}: <a href="{html.escape(url)}">{html.escape(url)}</a></p>'
      )
  return (
      "<h2>New order</h2>"
      f"<p>{html.escape(customer.name)} &lt;{html.escape(customer.email)}&gt;"
      f" {html.escape(customer.phone or 'No phone provided')}</p>"
      f"<table>{_details_rows(notice)}</table>"
      f"{uploads}{_image_block(image)}"
  )


def render_customer_email(notice: OrderNotice, image: Optional[str]) -> str:
  return (
      f"<h2>Thank you, {html.escape(notice.booking.customer.name)}!</h2>"
      "<p>Your order is confirmed. Keep your order number to look up or"
      " change your order.</p>"
      f"<table>{_details_rows(notice)}</table>"
      f"{_image_block(image)}"
  )


class NotificationService:
  """Service for the real-time and email notifications of a new booking."""

  def __init__(
      self,
      publisher: Optional[Publisher],
      mailer: Optional[Mailer],
      admin_emails: List[str],
      timeout: float = 10.0,
  ):
    self.publisher = publisher
    self.mailer = mailer
    self.admin_emails = admin_emails
    self.timeout = timeout

  async def publish_new_order(self, notice: OrderNotice) -> None:
    if not self.publisher:
      logger.warning("Realtime channel not configured, skipping publish")
      return
    payload = {
        "bookingId": notice.booking_id,
        "orderNumber": notice.order_number,
        "customerName": notice.booking.customer.name,
        "productName": notice.booking.product_name,
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }
    await asyncio.wait_for(
        self.publisher.publish(ORDERS_CHANNEL, NEW_ORDER_EVENT, payload),
        timeout=self.timeout,
    )

  async def send_operator_email(
      self, notice: OrderNotice, image: Optional[str] = None
  ) -> None:
    if not self.mailer or not self.admin_emails:
      logger.warning("Operator email not configured, skipping")
      return
    booking = notice.booking
    subject = (
        f"New Order: {booking.product_name} for"
        f" {booking.order_date.strftime('%b %d, %Y')}"
    )
    await asyncio.wait_for(
        self.mailer.send(
            self.admin_emails, subject, render_operator_email(notice, image)
        ),
        timeout=self.timeout,
    )

  async def send_customer_email(
      self, notice: OrderNotice, image: Optional[str] = None
  ) -> None:
    email = notice.booking.customer.email
    if not self.mailer or not email:
      logger.warning(
          "Customer email skipped for booking %s", notice.booking_id
      )
      return
    await asyncio.wait_for(
        self.mailer.send(
            email,
            f"Order Confirmation #{notice.order_number}",
            render_customer_email(notice, image),
        ),
        timeout=self.timeout,
    )
