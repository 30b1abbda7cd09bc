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

"""Tests for discount validation and booking lifecycle changes."""

import asyncio
import datetime
import os
import shutil
import tempfile

from absl.testing import absltest
from order_fulfillment import db
from order_fulfillment.enums import FulfillmentType
from order_fulfillment.exceptions import InvalidRequestError
from order_fulfillment.exceptions import OrderNotModifiableError
from order_fulfillment.exceptions import RescheduleWindowExceededError
from order_fulfillment.models import CustomerInfo
from order_fulfillment.models import NewBooking
from order_fulfillment.services.booking_service import BookingService
from order_fulfillment.services.discount_service import DiscountService
from order_fulfillment.services.lifecycle_service import LifecycleService
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

DUE = datetime.datetime(2026, 11, 5)


class _DatabaseTestCase(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    db_path = os.path.join(self.test_dir, "test.db")
    self.engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool
    )
    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

  def tearDown(self):
    shutil.rmtree(self.test_dir)
    super().tearDown()

  def _run(self, test):
    async def wrapper():
      async with self.engine.begin() as conn:
        await conn.run_sync(db.Base.metadata.create_all)
      try:
        async with self.session_factory() as session:
          await test(session)
      finally:
        await self.engine.dispose()

    asyncio.run(wrapper())


class LifecycleServiceTest(_DatabaseTestCase):

  async def _create(self, session, **fields):
    bookings = BookingService(session)
    created = await bookings.create_booking(
        NewBooking(
            order_date=DUE,
            pickup_date=DUE,
            customer=CustomerInfo(name="Jane", email="jane@example.com"),
            product_name="Birthday Cake",
            **fields,
        )
    )
    return LifecycleService(bookings, reschedule_window_days=3), created.id

  def test_reschedule_counts_partial_days_up(self):
    async def test(session):
      service, booking_id = await self._create(session)

      # 3 days and 6 hours rounds up to 4.
      with self.assertRaises(RescheduleWindowExceededError):
        await service.reschedule(booking_id, "2026-11-08T06:00:00")
      with self.assertRaises(InvalidRequestError):
        await service.reschedule(booking_id, "2026-11-05")
      with self.assertRaises(InvalidRequestError):
        await service.reschedule(booking_id, "tomorrow")

      # One hour later counts as one day.
      booking = await service.reschedule(booking_id, "2026-11-05T01:00:00")
      self.assertEqual(booking.order_date, DUE + datetime.timedelta(hours=1))

      booking = await service.reschedule(booking_id, "2026-11-08T01:00:00")
      self.assertEqual(booking.pickup_date, datetime.datetime(2026, 11, 8, 1))

    self._run(test)

  def test_change_time_writes_the_right_slot(self):
    async def test(session):
      service, pickup_id = await self._create(session, pickup_time="9:00 AM")
      booking = await service.change_time(pickup_id, " 11:30 AM ")
      self.assertEqual(booking.pickup_time, "11:30 AM")
      self.assertIsNone(booking.delivery_time)

      delivery_service, delivery_id = await self._create(
          session, fulfillment_type=FulfillmentType.DELIVERY, line_index=1
      )
      booking = await delivery_service.change_time(delivery_id, "4:00 PM")
      self.assertEqual(booking.delivery_time, "4:00 PM")

      with self.assertRaises(InvalidRequestError):
        await service.change_time(pickup_id, "noon")

    self._run(test)

  def test_forfeit_is_terminal(self):
    async def test(session):
      service, booking_id = await self._create(session)
      self.assertTrue(await service.forfeit(booking_id))
      with self.assertRaises(OrderNotModifiableError):
        await service.forfeit(booking_id)
      with self.assertRaises(OrderNotModifiableError):
        await service.change_time(booking_id, "1:00 PM")

    self._run(test)


class DiscountServiceTest(_DatabaseTestCase):

  def _seed(self, session, code, **fields):
    values = dict(
        code=code,
        percentage=10,
        active=True,
        usage_count=0,
        created_at=db.utcnow(),
        updated_at=db.utcnow(),
    )
    values.update(fields)
    session.add(db.DiscountCode(**values))

  def test_validate(self):
    async def test(session):
      yesterday = db.utcnow() - datetime.timedelta(days=1)
      self._seed(session, "OK")
      self._seed(session, "OFF", active=False)
      self._seed(session, "OLD", expires_at=yesterday)
      self._seed(session, "FULL", usage_count=5, max_uses=5)
      self._seed(session, "UNLIMITED", usage_count=99, max_uses=0)
      await session.commit()

      service = DiscountService(session)
      self.assertTrue((await service.validate("OK")).valid)
      self.assertTrue((await service.validate("UNLIMITED")).valid)
      self.assertFalse((await service.validate("ok")).valid)
      self.assertEqual(
          (await service.validate("OFF")).error,
          "This discount code is no longer active",
      )
      self.assertEqual(
          (await service.validate("OLD")).error,
          "This discount code has expired",
      )
      self.assertEqual(
          (await service.validate("FULL")).error,
          "This discount code has reached its usage limit",
      )
      self.assertEqual(
          (await service.validate("NOPE")).error, "Invalid discount code"
      )

    self._run(test)

  def test_increment_usage(self):
    async def test(session):
      self._seed(session, "OK")
      await session.commit()
      service = DiscountService(session)
      validation = await service.validate("OK")
      discount_id = validation.discount_code.id
      self.assertTrue(await service.increment_usage(discount_id))

      discount = await db.get_discount_code(session, "OK")
      await session.refresh(discount)
      self.assertEqual(discount.usage_count, 1)

    self._run(test)


if __name__ == "__main__":
  absltest.main()
