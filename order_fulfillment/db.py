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

"""Database management and persistence layer for the fulfillment server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite).

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup.
- WAL Mode: Automatically enables SQLite Write-Ahead Logging so the
  confirmation endpoint and the provider webhook can write concurrently.
- Declarative Models: Defines tables for bookings, staged checkouts, discount
  codes and the marketing email list.
- A unique constraint on (stripe_session_id, line_index), which is what
  actually prevents two concurrent confirmations of one session from both
  inserting bookings.
- Data Access Helpers: A suite of asynchronous functions for CRUD operations on
  the database models.
"""

import datetime
import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
import uuid

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import delete
from sqlalchemy import Float
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import UniqueConstraint
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime.datetime:
  """Naive UTC timestamp, the form SQLite stores."""
  return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class DatabaseManager:
  """Manages the database engine and sessions without using global variables."""

  def __init__(self) -> None:
    self.engine: Optional[AsyncEngine] = None
    self.session_factory: Optional[sessionmaker] = None

  async def init_db(self, db_path: str) -> None:
    """Initializes the database engine and creates tables."""
    url = f"sqlite+aiosqlite:///{db_path}"
    self.engine = create_async_engine(url, echo=False)

    async with self.engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)

  async def close(self) -> None:
    """Closes the database engine."""
    if self.engine:
      await self.engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class Booking(Base):
  __tablename__ = "bookings"
  __table_args__ = (
      UniqueConstraint(
          "stripe_session_id", "line_index", name="uq_booking_session_line"
      ),
  )

  id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
  order_number = Column(String, index=True)
  order_date = Column(DateTime, index=True)
  created_at = Column(DateTime)
  status = Column(String)

  customer_name = Column(String)
  customer_email = Column(String)
  customer_phone = Column(String, nullable=True)

  product_id = Column(String, nullable=True)
  product_name = Column(String)
  size = Column(String)
  flavor = Column(String)
  design_notes = Column(String)
  price = Column(Float)
  add_ons = Column(JSON)  # List of {id, name, price}
  image = Column(String, nullable=True)
  edible_image_url = Column(String, nullable=True)
  reference_image_url = Column(String, nullable=True)
  is_editable_photo = Column(Boolean, default=False)
  fulfillment_type = Column(String, nullable=True)  # 'pickup' or 'delivery'
  pickup_date = Column(DateTime, nullable=True)
  pickup_time = Column(String, nullable=True)
  delivery_time = Column(String, nullable=True)
  delivery_address = Column(JSON, nullable=True)

  stripe_session_id = Column(String, nullable=True, index=True)
  line_index = Column(Integer, default=0)
  stripe_payment_intent_id = Column(String, nullable=True)
  amount_paid = Column(Float, default=0)  # Dollars, as captured
  payment_status = Column(String, nullable=True)

  forfeited_at = Column(DateTime, nullable=True)


class StagedCheckout(Base):
  __tablename__ = "staged_checkouts"

  session_id = Column(String, primary_key=True)
  # Storefront payload: {cartItems, customerInfo, discountCode}
  data = Column(JSON)
  created_at = Column(DateTime)


class DiscountCode(Base):
  __tablename__ = "discount_codes"

  id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
  code = Column(String, unique=True)  # Case-sensitive
  percentage = Column(Integer)
  active = Column(Boolean, default=True)
  usage_count = Column(Integer, default=0)
  max_uses = Column(Integer, nullable=True)  # None means unlimited
  expires_at = Column(DateTime, nullable=True)
  created_at = Column(DateTime)
  updated_at = Column(DateTime)


class EmailListEntry(Base):
  __tablename__ = "email_list"

  email = Column(String, primary_key=True)  # Lower-cased
  name = Column(String)
  source = Column(String)
  added_at = Column(DateTime)


# --- Data Access Helpers ---


async def insert_booking(
    session: AsyncSession, values: Dict[str, Any]
) -> Booking:
  """Adds a booking and flushes it so the primary key is assigned.

  Args:
    session: The database session to use.
    values: Column values for the new row.

  Returns:
    The flushed Booking object.

  Raises:
    sqlalchemy.exc.IntegrityError: If a booking for the same session line
      already exists.
  """
  booking = Booking(**values)
  session.add(booking)
  await session.flush()
  return booking


async def get_booking(
    session: AsyncSession, booking_id: str
) -> Optional[Booking]:
  """Retrieves a booking by ID, reloading it if already in the session."""
  return await session.get(Booking, booking_id, populate_existing=True)


async def get_bookings_by_session(
    session: AsyncSession, stripe_session_id: str
) -> List[Booking]:
  """Retrieves every booking created for a payment session, in cart order."""
  result = await session.execute(
      select(Booking)
      .where(Booking.stripe_session_id == stripe_session_id)
      .order_by(Booking.line_index)
  )
  return list(result.scalars().all())


async def get_bookings_by_order_number(
    session: AsyncSession, order_number: str
) -> List[Booking]:
  """Retrieves bookings by their display order number."""
  result = await session.execute(
      select(Booking).where(Booking.order_number == order_number)
  )
  return list(result.scalars().all())


async def list_bookings(
    session: AsyncSession,
    start: Optional[datetime.datetime] = None,
    end: Optional[datetime.datetime] = None,
) -> List[Booking]:
  """Retrieves bookings due within [start, end], ascending by due date.

  Args:
    session: The database session to use.
    start: Inclusive lower bound; unbounded if None.
    end: Inclusive upper bound; unbounded if None.

  Returns:
    A list of Booking objects.
  """
  stmt = select(Booking)
  if start is not None:
    stmt = stmt.where(Booking.order_date >= start)
  if end is not None:
    stmt = stmt.where(Booking.order_date <= end)
  result = await session.execute(stmt.order_by(Booking.order_date))
  return list(result.scalars().all())


async def update_booking_fields(
    session: AsyncSession, booking_id: str, **values: Any
) -> bool:
  """Overwrites columns of a booking. Returns whether a row matched."""
  result = await session.execute(
      update(Booking).where(Booking.id == booking_id).values(**values)
  )
  return result.rowcount > 0


async def update_booking_status(
    session: AsyncSession,
    booking_id: str,
    status: str,
    expected_status: str,
    **values: Any,
) -> bool:
  """Moves a booking from `expected_status` to `status`.

  The update only applies while the row still holds `expected_status`, so a
  concurrent transition cannot be silently overwritten.

  Args:
    session: The database session to use.
    booking_id: The booking to update.
    status: The new status.
    expected_status: The status the caller validated the transition from.
    **values: Extra columns to set alongside the status.

  Returns:
    Whether a row was modified.
  """
  result = await session.execute(
      update(Booking)
      .where(Booking.id == booking_id)
      .where(Booking.status == expected_status)
      .values(status=status, **values)
  )
  return result.rowcount > 0


async def save_staged_checkout(
    session: AsyncSession, session_id: str, data: Dict[str, Any]
) -> None:
  """Saves or replaces the pre-payment staging record for a session."""
  existing = await session.get(StagedCheckout, session_id)
  if existing:
    existing.data = data
  else:
    session.add(
        StagedCheckout(session_id=session_id, data=data, created_at=utcnow())
    )


async def get_staged_checkout(
    session: AsyncSession, session_id: str
) -> Optional[Dict[str, Any]]:
  """Retrieves the staging payload for a session."""
  result = await session.get(StagedCheckout, session_id)
  if result:
    return result.data
  return None


async def delete_staged_checkout(
    session: AsyncSession, session_id: str
) -> bool:
  """Deletes the staging record for a session."""
  result = await session.execute(
      delete(StagedCheckout).where(StagedCheckout.session_id == session_id)
  )
  return result.rowcount > 0


async def get_discount_code(
    session: AsyncSession, code: str
) -> Optional[DiscountCode]:
  """Retrieves a discount code by its exact (case-sensitive) code."""
  result = await session.execute(
      select(DiscountCode).where(DiscountCode.code == code)
  )
  return result.scalar_one_or_none()


async def increment_discount_usage(
    session: AsyncSession, discount_id: str
) -> bool:
  """Atomically increments a discount code's usage counter."""
  result = await session.execute(
      update(DiscountCode)
      .where(DiscountCode.id == discount_id)
      .values(
          usage_count=DiscountCode.usage_count + 1, updated_at=utcnow()
      )
  )
  return result.rowcount > 0


async def get_email_list_entry(
    session: AsyncSession, email: str
) -> Optional[EmailListEntry]:
  """Retrieves a marketing list entry by lower-cased email."""
  return await session.get(EmailListEntry, email)


async def add_email_list_entry(
    session: AsyncSession, email: str, name: str, source: str
) -> None:
  """Adds a marketing list entry."""
  session.add(
      EmailListEntry(email=email, name=name, source=source, added_at=utcnow())
  )
