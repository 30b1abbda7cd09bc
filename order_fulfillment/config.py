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

"""Shared configuration and startup logic for the fulfillment server."""

import contextlib
import dataclasses
import os
from typing import List

from absl import flags
from fastapi import FastAPI
from order_fulfillment import db

FLAGS = flags.FLAGS

SERVER_VERSION = "1.0.0"


# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("db_path", None, "Path to the fulfillment DB")
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_string(
      "stripe_secret_key",
      os.environ.get("STRIPE_SECRET_KEY"),
      "Stripe secret API key",
  )
  flags.DEFINE_string(
      "stripe_webhook_secret",
      os.environ.get("STRIPE_WEBHOOK_SECRET"),
      "Signing secret for Stripe webhook events",
  )
  flags.DEFINE_string(
      "storage_access_key",
      os.environ.get("BUNNY_STORAGE_ACCESS_KEY"),
      "Bunny storage zone password",
  )
  flags.DEFINE_string(
      "storage_zone", os.environ.get("BUNNY_STORAGE_ZONE"), "Storage zone"
  )
  flags.DEFINE_string(
      "storage_hostname",
      os.environ.get("BUNNY_STORAGE_HOSTNAME", "storage.bunnycdn.com"),
      "Storage API hostname",
  )
  flags.DEFINE_string(
      "storage_cdn_url",
      os.environ.get("BUNNY_CDN_URL"),
      "Public CDN base URL of the storage zone",
  )
  flags.DEFINE_string(
      "mailtrap_api_token",
      os.environ.get("MAILTRAP_API_TOKEN"),
      "Mailtrap sending API token",
  )
  flags.DEFINE_string(
      "admin_email",
      os.environ.get("ADMIN_EMAIL", ""),
      "Comma separated operator addresses for new order emails",
  )
  flags.DEFINE_string(
      "from_email",
      os.environ.get("FROM_EMAIL", "orders@localhost"),
      "Sender address of outgoing email",
  )
  flags.DEFINE_string(
      "pusher_app_id", os.environ.get("PUSHER_APP_ID"), "Pusher app ID"
  )
  flags.DEFINE_string("pusher_key", os.environ.get("PUSHER_KEY"), "Pusher key")
  flags.DEFINE_string(
      "pusher_secret", os.environ.get("PUSHER_SECRET"), "Pusher secret"
  )
  flags.DEFINE_string(
      "pusher_cluster",
      os.environ.get("PUSHER_CLUSTER", "us2"),
      "Pusher cluster",
  )
  flags.DEFINE_integer(
      "reschedule_window_days",
      3,
      "How many days a customer may push a booking back",
  )
  flags.DEFINE_float(
      "external_call_timeout",
      10.0,
      "Timeout in seconds for every call to an external service",
  )
except flags.DuplicateFlagError:
  pass


@dataclasses.dataclass(frozen=True)
class Settings:
  """Resolved server settings.

  Empty values mean the collaborator is not configured. Request handlers read
  settings through `dependencies.get_settings` so tests can override them
  without parsing flags.
  """

  stripe_secret_key: str = ""
  stripe_webhook_secret: str = ""
  storage_access_key: str = ""
  storage_zone: str = ""
  storage_hostname: str = "storage.bunnycdn.com"
  storage_cdn_url: str = ""
  mailtrap_api_token: str = ""
  admin_emails: List[str] = dataclasses.field(default_factory=list)
  from_email: str = "orders@localhost"
  pusher_app_id: str = ""
  pusher_key: str = ""
  pusher_secret: str = ""
  pusher_cluster: str = "us2"
  reschedule_window_days: int = 3
  external_call_timeout: float = 10.0


def load_settings() -> Settings:
  """Builds `Settings` from the parsed flags."""
  if not FLAGS.is_parsed():
    return Settings()
  return Settings(
      stripe_secret_key=FLAGS.stripe_secret_key or "",
      stripe_webhook_secret=FLAGS.stripe_webhook_secret or "",
      storage_access_key=FLAGS.storage_access_key or "",
      storage_zone=FLAGS.storage_zone or "",
      storage_hostname=FLAGS.storage_hostname or "storage.bunnycdn.com",
      storage_cdn_url=(FLAGS.storage_cdn_url or "").rstrip("/"),
      mailtrap_api_token=FLAGS.mailtrap_api_token or "",
      admin_emails=[
          email.strip()
          for email in (FLAGS.admin_email or "").split(",")
          if email.strip()
      ],
      from_email=FLAGS.from_email or "orders@localhost",
      pusher_app_id=FLAGS.pusher_app_id or "",
      pusher_key=FLAGS.pusher_key or "",
      pusher_secret=FLAGS.pusher_secret or "",
      pusher_cluster=FLAGS.pusher_cluster or "us2",
      reschedule_window_days=FLAGS.reschedule_window_days,
      external_call_timeout=FLAGS.external_call_timeout,
  )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Lifespan manager that opens and closes the database."""
  del app  # Unused.
  # In tests the flags are unparsed and the DB dependency is overridden.
  if FLAGS.is_parsed() and FLAGS.db_path:
    await db.manager.init_db(FLAGS.db_path)
  yield
  await db.manager.close()
