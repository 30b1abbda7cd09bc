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

"""Utility script to dump the booking ledger.

This script reads from the configured SQLite database and prints every booking
due within an optional date range, with its status, customer and payment.
It is useful for preparing the day's production list and for verifying the
state of the server.

Usage:
  python -m order_fulfillment.dump_bookings --db_path=... \
      [--start_date=2026-10-01] [--end_date=2026-10-31]
"""

import asyncio
import sys

from absl import app as absl_app
from absl import flags
from order_fulfillment import db
from order_fulfillment.services.booking_service import parse_due_date
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

FLAGS = flags.FLAGS

# db_path is shared with the server flags when both are imported.
try:
  flags.DEFINE_string("db_path", None, "Path to the fulfillment DB")
except flags.DuplicateFlagError:
  pass
flags.DEFINE_string("start_date", None, "First due date to include")
flags.DEFINE_string("end_date", None, "Last due date to include")


def format_booking(booking: db.Booking) -> str:
  """Renders one booking as a block of lines."""
  lines = [
      f"#{booking.order_number} {booking.order_date:%Y-%m-%d}"
      f" [{booking.status}] {booking.product_name}"
      f" ({booking.size}, {booking.flavor})",
      f"  Customer: {booking.customer_name} <{booking.customer_email}>"
      f" {booking.customer_phone or ''}".rstrip(),
  ]
  if booking.fulfillment_type == "delivery":
    address = (booking.delivery_address or {}).get("full_address", "")
    lines.append(f"  Delivery {booking.delivery_time or 'TBD'} {address}")
  else:
    lines.append(f"  Pickup {booking.pickup_time or 'TBD'}")
  for add_on in booking.add_ons or []:
    lines.append(f"  + {add_on.get('name')} ${add_on.get('price', 0):.2f}")
  if booking.design_notes:
    lines.append(f"  Notes: {booking.design_notes}")
  lines.append(f"  Paid: ${booking.amount_paid or 0:.2f}")
  return "\n".join(lines)


async def dump_bookings():
  """Queries the database and prints the bookings in range."""
  if not FLAGS.db_path:
    print("Error: --db_path is required.")
    sys.exit(1)

  start = parse_due_date(FLAGS.start_date)
  end = parse_due_date(FLAGS.end_date)
  if (FLAGS.start_date and start is None) or (FLAGS.end_date and end is None):
    print("Error: dates must be ISO 8601, e.g. 2026-10-01.")
    sys.exit(1)

  db_url = f"sqlite+aiosqlite:///{FLAGS.db_path}"
  engine = create_async_engine(db_url, echo=False)
  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  async with session_factory() as session:
    bookings = await db.list_bookings(session, start, end)

  await engine.dispose()

  if not bookings:
    print("No bookings found.")
    return

  for booking in bookings:
    print(format_booking(booking))
    print("-" * 60)


def main(argv):
  """Main entry point for the booking dump script."""
  del argv
  asyncio.run(dump_bookings())


def run() -> None:
  absl_app.run(main)


if __name__ == "__main__":
  run()
