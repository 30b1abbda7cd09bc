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

"""Integration tests for the fulfillment server."""

import asyncio
import json
import os
import shutil
import tempfile
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest import mock

from absl.testing import absltest
from fastapi.testclient import TestClient
from order_fulfillment import config
from order_fulfillment import db
from order_fulfillment import dependencies
from order_fulfillment.testing import fakes
from order_fulfillment.server import app
from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

CUSTOMER = {
    "name": "Jane Doe",
    "email": "Jane.Doe@Example.com",
    "phone": "555-0100",
}


def _cart_item(name: str, **fields: Any) -> Dict[str, Any]:
  item = {
      "id": 7,
      "name": name,
      "size": '8"',
      "flavor": "chocolate",
      "price": 42.5,
      "addOns": [{"id": "candles", "name": "Candles", "price": 2}],
      "fulfillmentType": "pickup",
      "pickupDate": "2026-11-05",
      "pickupTime": "2:00 PM",
  }
  item.update(fields)
  return item


class IntegrationTest(absltest.TestCase):
  """Integration tests for the fulfillment server application."""

  def setUp(self) -> None:
    """Sets up a temporary DB, fake collaborators and dependency overrides."""
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    self.db_path = os.path.join(self.test_dir, "test_fulfillment.db")

    self.engine = create_async_engine(
        f"sqlite+aiosqlite:///{self.db_path}", echo=False, poolclass=NullPool
    )
    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async def init_schema() -> None:
      async with self.engine.begin() as conn:
        await conn.run_sync(db.Base.metadata.create_all)

    asyncio.run(init_schema())

    self.payments = fakes.FakePaymentProvider()
    self.assets = fakes.FakeAssetStore()
    self.mailer = fakes.FakeMailer()
    self.publisher = fakes.FakePublisher()
    self.settings = config.Settings(
        admin_emails=["ops@example.com"], external_call_timeout=2.0
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
      async with self.session_factory() as session:
        yield session

    app.dependency_overrides[dependencies.get_db] = override_get_db
    app.dependency_overrides[dependencies.get_settings] = lambda: self.settings
    app.dependency_overrides[dependencies.get_payment_provider] = (
        lambda: self.payments
    )
    app.dependency_overrides[dependencies.get_asset_store] = lambda: self.assets
    app.dependency_overrides[dependencies.get_mailer] = lambda: self.mailer
    app.dependency_overrides[dependencies.get_publisher] = (
        lambda: self.publisher
    )

    self.client = TestClient(app)

  def tearDown(self) -> None:
    """Cleans up the test environment."""
    app.dependency_overrides.clear()
    asyncio.run(self.engine.dispose())
    shutil.rmtree(self.test_dir)
    super().tearDown()

  # --- Helpers ---

  def _stage(
      self,
      session_id: str,
      items: List[Dict[str, Any]],
      customer: Optional[Dict[str, str]] = None,
      discount_code: Optional[str] = None,
      amount_total: int = 4250,
  ) -> None:
    """Registers a paid session and its staged checkout."""
    self.payments.add_session(session_id, amount_total=amount_total)
    data = {
        "cartItems": items,
        "customerInfo": customer or CUSTOMER,
    }
    if discount_code:
      data["discountCode"] = {"code": discount_code, "percentage": 10}

    async def save() -> None:
      async with self.session_factory() as session:
        await db.save_staged_checkout(session, session_id, data)
        await session.commit()

    asyncio.run(save())

  def _bookings(self, session_id: str) -> List[db.Booking]:
    async def load() -> List[db.Booking]:
      async with self.session_factory() as session:
        return await db.get_bookings_by_session(session, session_id)

    return asyncio.run(load())

  def _booking_count(self) -> int:
    async def count() -> int:
      async with self.session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(db.Booking)
        )
        return result.scalar_one()

    return asyncio.run(count())

  def _confirm(self, session_id: str):
    return self.client.get(
        "/checkout-success", params={"session_id": session_id}
    )

  def _webhook(self, session_id: str, headers: Optional[Dict] = None):
    event = {
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id}},
    }
    return self.client.post(
        "/webhooks/stripe", content=json.dumps(event), headers=headers or {}
    )

  def _create_booking(self, session_id: str = "cs_lifecycle", **fields):
    self._stage(session_id, [_cart_item("Birthday Cake", **fields)])
    response = self._confirm(session_id)
    self.assertEqual(response.status_code, 200, response.text)
    return response.json()["orders"][0]

  # --- Confirmation ---

  def test_single_item_checkout(self) -> None:
    """Tests a paid single-item session end to end."""
    with self.client:
      self._stage("cs_single", [_cart_item("Birthday Cake")])
      response = self._confirm("cs_single")
      self.assertEqual(response.status_code, 200, response.text)
      body = response.json()

      self.assertTrue(body["success"])
      self.assertFalse(body["already_processed"])
      self.assertEqual(body["customer_name"], "Jane Doe")
      self.assertEqual(body["customer_phone"], "555-0100")
      self.assertNotIn("errors", body)
      self.assertLen(body["orders"], 1)
      order = body["orders"][0]
      self.assertEqual(order["name"], "Birthday Cake")
      self.assertEqual(order["due_date"], "2026-11-05T00:00:00")
      self.assertRegex(order["order_number"], r"^\d{10}-\d{3}$")

      (booking,) = self._bookings("cs_single")
      self.assertEqual(booking.id, order["id"])
      self.assertEqual(booking.status, "pending")
      self.assertEqual(booking.payment_status, "paid")
      self.assertEqual(booking.amount_paid, 42.5)
      self.assertEqual(booking.size, '8"')
      self.assertEqual(booking.add_ons[0]["name"], "Candles")
      self.assertEqual(booking.pickup_time, "2:00 PM")

      # One operator and one customer email, one realtime event.
      self.assertLen(self.mailer.sent, 2)
      self.assertEqual(self.mailer.sent[0]["to"], ["ops@example.com"])
      self.assertEqual(self.mailer.sent[1]["to"], CUSTOMER["email"])
      self.assertEqual(
          self.mailer.sent[1]["subject"],
          f"Order Confirmation #{order['order_number']}",
      )
      self.assertLen(self.publisher.events, 1)
      channel, event, payload = self.publisher.events[0]
      self.assertEqual((channel, event), ("orders", "new-order"))
      self.assertEqual(payload["bookingId"], order["id"])

      async def load_side_records():
        async with self.session_factory() as session:
          staged = await db.get_staged_checkout(session, "cs_single")
          entry = await db.get_email_list_entry(
              session, "jane.doe@example.com"
          )
          return staged, entry

      staged, entry = asyncio.run(load_side_records())
      self.assertIsNone(staged)
      self.assertIsNotNone(entry)
      self.assertEqual(entry.source, "order")

  def test_replay_returns_stored_result(self) -> None:
    """Tests that confirming a session twice creates nothing new."""
    with self.client:
      self._stage(
          "cs_replay",
          [_cart_item("Cake A"), _cart_item("Cake B", pickupDate="2026-11-06")],
      )
      first = self._confirm("cs_replay").json()
      emails_sent = len(self.mailer.sent)
      events_sent = len(self.publisher.events)

      second = self._confirm("cs_replay")
      self.assertEqual(second.status_code, 200)
      second = second.json()

      self.assertTrue(second["already_processed"])
      self.assertEqual(second["customer_name"], "Jane Doe")
      self.assertEqual(
          [(o["id"], o["order_number"]) for o in second["orders"]],
          [(o["id"], o["order_number"]) for o in first["orders"]],
      )
      self.assertEqual(self._booking_count(), 2)
      self.assertLen(self.mailer.sent, emails_sent)
      self.assertLen(self.publisher.events, events_sent)

  def test_webhook_after_redirect_is_absorbed(self) -> None:
    with self.client:
      self._stage("cs_both", [_cart_item("Birthday Cake")])
      first = self._confirm("cs_both").json()

      response = self._webhook("cs_both")
      self.assertEqual(response.status_code, 200, response.text)
      self.assertTrue(response.json()["already_processed"])
      self.assertEqual(self._booking_count(), 1)

      # And the redirect still answers after the webhook.
      again = self._confirm("cs_both").json()
      self.assertEqual(again["orders"][0]["id"], first["orders"][0]["id"])

  def test_webhook_fulfills_first(self) -> None:
    with self.client:
      self._stage("cs_hook", [_cart_item("Birthday Cake")])
      response = self._webhook("cs_hook")
      self.assertEqual(response.status_code, 200, response.text)
      body = response.json()
      self.assertTrue(body["fulfilled"])
      self.assertFalse(body["already_processed"])
      self.assertEqual(body["orders"], 1)

      redirect = self._confirm("cs_hook").json()
      self.assertTrue(redirect["already_processed"])
      self.assertLen(redirect["orders"], 1)

  def test_webhook_ignores_other_events(self) -> None:
    response = self.client.post(
        "/webhooks/stripe",
        content=json.dumps({"type": "payment_intent.created", "data": {}}),
    )
    self.assertEqual(response.status_code, 200)
    self.assertEqual(response.json(), {"received": True})
    self.assertEmpty(self.payments.retrieved)

  def test_webhook_rejects_bad_signature(self) -> None:
    self.payments.webhook_signature = "t=1,v1=good"
    self._stage("cs_sig", [_cart_item("Birthday Cake")])
    response = self._webhook("cs_sig", headers={"Stripe-Signature": "bad"})
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "INVALID_SIGNATURE")
    self.assertEqual(self._booking_count(), 0)

    response = self._webhook(
        "cs_sig", headers={"Stripe-Signature": "t=1,v1=good"}
    )
    self.assertEqual(response.status_code, 200)
    self.assertEqual(self._booking_count(), 1)

  def test_one_bad_date_does_not_fail_the_batch(self) -> None:
    with self.client:
      self._stage(
          "cs_partial",
          [
              _cart_item("Cake A"),
              _cart_item("Cake B", pickupDate="next tuesday"),
              _cart_item("Cake C", pickupDate=None, orderDate="2026-11-09"),
          ],
      )
      response = self._confirm("cs_partial")
      self.assertEqual(response.status_code, 200)
      body = response.json()

      self.assertEqual(
          [o["name"] for o in body["orders"]], ["Cake A", "Cake C"]
      )
      self.assertEqual(body["orders"][1]["due_date"], "2026-11-09T00:00:00")
      self.assertLen(body["errors"], 1)
      self.assertIn("No date found for Cake B", body["errors"][0])
      self.assertLen(self._bookings("cs_partial"), 2)

  def test_asset_move_failure_keeps_temp_url(self) -> None:
    self.assets.should_succeed = False
    temp_url = "https://cdn.test/temp/upload-1.png"
    with self.client:
      self._stage(
          "cs_asset_fail", [_cart_item("Photo Cake", edibleImageUrl=temp_url)]
      )
      body = self._confirm("cs_asset_fail").json()

      self.assertLen(body["orders"], 1)
      self.assertEqual(
          body["errors"],
          ["Image for Photo Cake could not be moved to permanent storage"],
      )
      (booking,) = self._bookings("cs_asset_fail")
      self.assertEqual(booking.edible_image_url, temp_url)

  def test_assets_are_moved_under_the_booking(self) -> None:
    with self.client:
      self._stage(
          "cs_asset",
          [
              _cart_item(
                  "Photo Cake",
                  edibleImageUrl="https://cdn.test/temp/edible.png",
                  referenceImageUrl="https://cdn.test/temp/ref.jpg",
                  image="https://cdn.test/products/cake.png",
              )
          ],
      )
      body = self._confirm("cs_asset").json()
      self.assertNotIn("errors", body)

      (booking,) = self._bookings("cs_asset")
      self.assertEqual(
          booking.edible_image_url,
          f"https://cdn.test/orders/edible-images/{booking.id}/edible.png",
      )
      self.assertEqual(
          booking.reference_image_url,
          f"https://cdn.test/orders/edible-images/{booking.id}/ref.jpg",
      )
      self.assertEqual(booking.image, "https://cdn.test/products/cake.png")
      self.assertLen(self.assets.moves, 2)
      self.assertIn(booking.edible_image_url, self.mailer.sent[0]["html"])

  def test_notification_failures_keep_the_booking(self) -> None:
    self.mailer.should_succeed = False
    self.publisher.should_succeed = False
    with self.client:
      self._stage("cs_mail_fail", [_cart_item("Birthday Cake")])
      body = self._confirm("cs_mail_fail").json()

      self.assertLen(body["orders"], 1)
      self.assertLen(body["errors"], 2)
      for error in body["errors"]:
        self.assertIn("Email failed for Birthday Cake", error)
      self.assertLen(self._bookings("cs_mail_fail"), 1)

  def test_email_list_failure_keeps_order_and_notifications(self) -> None:
    with self.client:
      self._stage("cs_list_fail", [_cart_item("Birthday Cake")])
      with mock.patch.object(
          db, "add_email_list_entry", side_effect=RuntimeError("list down")
      ):
        response = self._confirm("cs_list_fail")

      self.assertEqual(response.status_code, 200, response.text)
      body = response.json()
      self.assertNotIn("errors", body)
      self.assertLen(body["orders"], 1)
      (booking,) = self._bookings("cs_list_fail")
      self.assertEqual(booking.id, body["orders"][0]["id"])
      self.assertLen(self.mailer.sent, 2)
      self.assertLen(self.publisher.events, 1)

  def test_unpaid_session_creates_nothing(self) -> None:
    self._stage("cs_unpaid", [_cart_item("Birthday Cake")])
    self.payments.add_session("cs_unpaid", payment_status="unpaid")
    response = self._confirm("cs_unpaid")
    self.assertEqual(response.status_code, 400)
    self.assertEqual(
        response.json(),
        {"error": "Payment not completed", "code": "PAYMENT_NOT_COMPLETED"},
    )
    self.assertEqual(self._booking_count(), 0)
    self.assertEmpty(self.mailer.sent)

  def test_missing_session_id(self) -> None:
    response = self.client.get("/checkout-success")
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "MISSING_REFERENCE")
    self.assertEmpty(self.payments.retrieved)

  def test_provider_failure(self) -> None:
    self.payments.should_succeed = False
    response = self._confirm("cs_down")
    self.assertEqual(response.status_code, 500)
    self.assertEqual(
        response.json()["error"], "Failed to retrieve checkout session"
    )

  def test_no_order_data(self) -> None:
    self.payments.add_session("cs_empty")
    response = self._confirm("cs_empty")
    self.assertEqual(response.status_code, 404)
    self.assertEqual(response.json()["code"], "ORDER_DATA_NOT_FOUND")

  def test_malformed_staged_checkout(self) -> None:
    self.payments.add_session("cs_bad")

    async def save() -> None:
      async with self.session_factory() as session:
        await db.save_staged_checkout(
            session, "cs_bad", {"cartItems": "not a list"}
        )
        await session.commit()

    asyncio.run(save())
    response = self._confirm("cs_bad")
    self.assertEqual(response.status_code, 422)
    self.assertEqual(response.json()["code"], "MALFORMED_CHECKOUT_DATA")
    self.assertEqual(self._booking_count(), 0)

  def test_metadata_fallback(self) -> None:
    self.payments.add_session(
        "cs_meta",
        amount_total=1999,
        customer_email="buyer@example.com",
        metadata={
            "customerName": "Sam Roe",
            "cartItems": json.dumps([_cart_item("Cupcakes")]),
        },
    )
    with self.client:
      response = self._confirm("cs_meta")
      self.assertEqual(response.status_code, 200, response.text)
      body = response.json()
      self.assertEqual(body["customer_name"], "Sam Roe")
      self.assertEqual(body["customer_email"], "buyer@example.com")
      (booking,) = self._bookings("cs_meta")
      self.assertEqual(booking.amount_paid, 19.99)

  def test_discount_usage_counted_once(self) -> None:
    async def seed() -> None:
      async with self.session_factory() as session:
        session.add(
            db.DiscountCode(
                code="SAVE10",
                percentage=10,
                active=True,
                usage_count=0,
                created_at=db.utcnow(),
                updated_at=db.utcnow(),
            )
        )
        await session.commit()

    async def usage() -> int:
      async with self.session_factory() as session:
        return (await db.get_discount_code(session, "SAVE10")).usage_count

    asyncio.run(seed())
    with self.client:
      self._stage(
          "cs_discount", [_cart_item("Birthday Cake")], discount_code="SAVE10"
      )
      self._confirm("cs_discount")
      self._confirm("cs_discount")
      self.assertEqual(asyncio.run(usage()), 1)

  # --- Booking management ---

  def test_status_transitions(self) -> None:
    with self.client:
      order = self._create_booking()
      url = f"/bookings/{order['id']}"

      response = self.client.patch(url, json={"status": "confirmed"})
      self.assertEqual(response.json(), {"success": True, "modified": True})
      response = self.client.patch(url, json={"status": "confirmed"})
      self.assertEqual(response.json(), {"success": True, "modified": False})
      response = self.client.patch(url, json={"status": "forfeited"})
      self.assertTrue(response.json()["modified"])

      response = self.client.patch(url, json={"status": "pending"})
      self.assertEqual(response.status_code, 409)
      self.assertEqual(response.json()["code"], "INVALID_STATUS_TRANSITION")

      response = self.client.patch(url, json={"status": "cancelled"})
      self.assertEqual(response.status_code, 422)

      response = self.client.patch(
          "/bookings/missing", json={"status": "confirmed"}
      )
      self.assertEqual(response.status_code, 404)

  def test_reschedule(self) -> None:
    with self.client:
      order = self._create_booking()
      url = f"/bookings/{order['id']}/reschedule"

      response = self.client.post(url, json={"new_date": "2026-11-10"})
      self.assertEqual(response.status_code, 400)
      self.assertEqual(response.json()["code"], "RESCHEDULE_WINDOW_EXCEEDED")

      response = self.client.post(url, json={"new_date": "2026-11-04"})
      self.assertEqual(response.status_code, 400)
      self.assertEqual(response.json()["code"], "INVALID_REQUEST")

      response = self.client.post(url, json={"new_date": "soon"})
      self.assertEqual(response.status_code, 400)

      response = self.client.post(url, json={"new_date": "2026-11-07"})
      self.assertEqual(response.status_code, 200, response.text)
      body = response.json()
      self.assertEqual(body["order_date"], "2026-11-07T00:00:00")
      self.assertEqual(body["pickup_date"], "2026-11-07T00:00:00")

  def test_change_time(self) -> None:
    with self.client:
      order = self._create_booking(
          fulfillmentType="delivery",
          deliveryTime="10:00 AM",
          deliveryAddress={"street": "1 Main St", "fullAddress": "1 Main St"},
      )
      url = f"/bookings/{order['id']}/change-time"

      response = self.client.post(url, json={"new_time": "3:30 pm"})
      self.assertEqual(response.status_code, 200, response.text)
      self.assertEqual(response.json()["delivery_time"], "3:30 pm")
      self.assertEqual(response.json()["pickup_time"], "2:00 PM")

      response = self.client.post(url, json={"new_time": "15h30"})
      self.assertEqual(response.status_code, 400)

  def test_forfeited_booking_cannot_be_modified(self) -> None:
    with self.client:
      order = self._create_booking()
      response = self.client.post(f"/bookings/{order['id']}/forfeit")
      self.assertEqual(response.json(), {"success": True, "modified": True})

      (booking,) = self._bookings("cs_lifecycle")
      self.assertEqual(booking.status, "forfeited")
      self.assertIsNotNone(booking.forfeited_at)

      response = self.client.post(
          f"/bookings/{order['id']}/reschedule",
          json={"new_date": "2026-11-06"},
      )
      self.assertEqual(response.status_code, 409)
      self.assertEqual(response.json()["code"], "ORDER_NOT_MODIFIABLE")

  def test_order_lookup(self) -> None:
    with self.client:
      order = self._create_booking()
      response = self.client.get(
          "/orders/lookup", params={"order_number": f"#{order['order_number']}"}
      )
      self.assertEqual(response.status_code, 200)
      bookings = response.json()["bookings"]
      self.assertEqual([b["id"] for b in bookings], [order["id"]])
      self.assertEqual(bookings[0]["customer_email"], CUSTOMER["email"])

      response = self.client.get(
          "/orders/lookup", params={"order_number": "0000000000-000"}
      )
      self.assertEqual(response.status_code, 404)
      response = self.client.get("/orders/lookup")
      self.assertEqual(response.status_code, 400)

  def test_list_bookings_by_date_range(self) -> None:
    with self.client:
      self._stage(
          "cs_range",
          [
              _cart_item("Late", pickupDate="2026-11-20"),
              _cart_item("Early", pickupDate="2026-11-02"),
              _cart_item("Middle", pickupDate="2026-11-10"),
          ],
      )
      self._confirm("cs_range")

      response = self.client.get(
          "/bookings",
          params={"start_date": "2026-11-01", "end_date": "2026-11-15"},
      )
      self.assertEqual(response.status_code, 200)
      names = [b["product_name"] for b in response.json()["bookings"]]
      self.assertEqual(names, ["Early", "Middle"])

      response = self.client.get("/bookings")
      self.assertLen(response.json()["bookings"], 3)

      response = self.client.get("/bookings", params={"start_date": "nope"})
      self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
  absltest.main()
