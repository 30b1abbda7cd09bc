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

"""FastAPI dependencies for the fulfillment server.

This module wires the services together for each request:
- Settings resolved from flags.
- One database session per request, shared by every service of the request.
- Adapters for the payment provider, asset store, mailer and realtime channel.
  Unconfigured adapters resolve to None and their steps are skipped.
"""

from typing import AsyncGenerator, Optional

from fastapi import Depends
from order_fulfillment import config
from order_fulfillment import db
from order_fulfillment.clients.mailer import Mailer
from order_fulfillment.clients.mailer import MailtrapMailer
from order_fulfillment.clients.payments import PaymentProvider
from order_fulfillment.clients.payments import StripePaymentProvider
from order_fulfillment.clients.realtime import Publisher
from order_fulfillment.clients.realtime import PusherPublisher
from order_fulfillment.clients.storage import AssetStore
from order_fulfillment.clients.storage import BunnyAssetStore
from order_fulfillment.services.asset_service import AssetPromoter
from order_fulfillment.services.booking_service import BookingService
from order_fulfillment.services.confirmation_service import ConfirmationResolver
from order_fulfillment.services.discount_service import DiscountService
from order_fulfillment.services.fulfillment_service import FulfillmentService
from order_fulfillment.services.lifecycle_service import LifecycleService
from order_fulfillment.services.marketing_service import MarketingListService
from order_fulfillment.services.notification_service import NotificationService
from sqlalchemy.ext.asyncio import AsyncSession


def get_settings() -> config.Settings:
  """Dependency provider for the server settings."""
  return config.load_settings()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for a DB session."""
  async with db.manager.session_factory() as session:
    yield session


def get_payment_provider(
    settings: config.Settings = Depends(get_settings),
) -> PaymentProvider:
  return StripePaymentProvider(
      settings.stripe_secret_key, settings.stripe_webhook_secret or None
  )


def get_asset_store(
    settings: config.Settings = Depends(get_settings),
) -> Optional[AssetStore]:
  if not (settings.storage_access_key and settings.storage_zone):
    return None
  return BunnyAssetStore(
      access_key=settings.storage_access_key,
      storage_zone=settings.storage_zone,
      storage_hostname=settings.storage_hostname,
      cdn_url=settings.storage_cdn_url,
      timeout=settings.external_call_timeout,
  )


def get_mailer(
    settings: config.Settings = Depends(get_settings),
) -> Optional[Mailer]:
  if not settings.mailtrap_api_token:
    return None
  return MailtrapMailer(
      api_token=settings.mailtrap_api_token,
      from_email=settings.from_email,
      timeout=settings.external_call_timeout,
  )


def get_publisher(
    settings: config.Settings = Depends(get_settings),
) -> Optional[Publisher]:
  if not (
      settings.pusher_app_id and settings.pusher_key and settings.pusher_secret
  ):
    return None
  return PusherPublisher(
      app_id=settings.pusher_app_id,
      key=settings.pusher_key,
      secret=settings.pusher_secret,
      cluster=settings.pusher_cluster,
      timeout=settings.external_call_timeout,
  )


def get_notification_service(
    settings: config.Settings = Depends(get_settings),
    publisher: Optional[Publisher] = Depends(get_publisher),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> NotificationService:
  """Dependency provider for NotificationService."""
  return NotificationService(
      publisher,
      mailer,
      settings.admin_emails,
      timeout=settings.external_call_timeout,
  )


def get_booking_service(
    session: AsyncSession = Depends(get_db),
) -> BookingService:
  """Dependency provider for BookingService."""
  return BookingService(session, MarketingListService(session))


def get_fulfillment_service(
    settings: config.Settings = Depends(get_settings),
    session: AsyncSession = Depends(get_db),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    asset_store: Optional[AssetStore] = Depends(get_asset_store),
    notifications: NotificationService = Depends(get_notification_service),
    bookings: BookingService = Depends(get_booking_service),
) -> FulfillmentService:
  """Dependency provider for FulfillmentService."""
  timeout = settings.external_call_timeout
  return FulfillmentService(
      resolver=ConfirmationResolver(payment_provider, session, timeout),
      bookings=bookings,
      assets=AssetPromoter(asset_store, timeout),
      notifications=notifications,
      discounts=DiscountService(session),
      session=session,
  )


def get_lifecycle_service(
    settings: config.Settings = Depends(get_settings),
    bookings: BookingService = Depends(get_booking_service),
) -> LifecycleService:
  """Dependency provider for LifecycleService."""
  return LifecycleService(bookings, settings.reschedule_window_days)
