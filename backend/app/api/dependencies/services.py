# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Gateway clients are built once per process; services are built per request
around the request's database session.
"""

from functools import lru_cache
import logging
from typing import Union

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.timezone_utils import Clock, utc_now
from ...integrations import (
    FakeHundredMsClient,
    FakeStripeClient,
    HundredMsClient,
    StripeClient,
)
from ...services.booking_service import BookingService
from ...services.conduct_ledger import ConductLedgerService
from ...services.notification_service import NotificationService
from ...services.settlement_service import SettlementService
from ...services.slot_ledger import SlotLedgerService
from ...services.video_service import VideoService
from ...services.webhook_ledger_service import WebhookLedgerService
from .database import get_db

logger = logging.getLogger(__name__)

PaymentGateway = Union[StripeClient, FakeStripeClient]
VideoPlatform = Union[HundredMsClient, FakeHundredMsClient]


class GatewayConfigurationError(RuntimeError):
    """Raised at startup when production lacks gateway credentials."""


def _require_production_secrets() -> None:
    missing = settings.missing_production_secrets()
    if missing:
        raise GatewayConfigurationError(
            "Missing production gateway configuration: " + ", ".join(missing)
        )


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """Process-wide payment gateway client."""
    if settings.is_production:
        _require_production_secrets()
        return StripeClient(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            currency=settings.stripe_currency,
        )
    if settings.stripe_fake or not settings.stripe_secret_key.get_secret_value():
        logger.warning("STRIPE_SECRET_KEY not configured; using the in-memory payment gateway")
        return FakeStripeClient()
    return StripeClient(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.stripe_currency,
    )


@lru_cache(maxsize=1)
def get_video_platform() -> VideoPlatform:
    """Process-wide 100ms client."""
    access_key = (settings.hundredms_access_key or "").strip()
    app_secret = settings.hundredms_app_secret
    if settings.is_production:
        _require_production_secrets()
    elif settings.hundredms_fake or not access_key or app_secret is None:
        logger.warning("100ms credentials not configured; using the in-memory video client")
        return FakeHundredMsClient()
    return HundredMsClient(
        access_key=access_key,
        app_secret=app_secret,  # type: ignore[arg-type]
        base_url=settings.hundredms_base_url,
        template_id=(settings.hundredms_template_id or "").strip() or None,
    )


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
    """Notification dispatcher; holds no database state."""
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY not configured; notifications will only be logged")
    return NotificationService(
        api_key=settings.resend_api_key, from_address=settings.email_from_address
    )


def get_clock() -> Clock:
    """Source of 'now' for request-scoped services."""
    return utc_now


def get_conduct_ledger_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ConductLedgerService:
    return ConductLedgerService(db, clock)


def get_slot_ledger_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> SlotLedgerService:
    return SlotLedgerService(db, clock, conduct_ledger=ConductLedgerService(db, clock))


def get_booking_service(
    db: Session = Depends(get_db),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
    notification_service: NotificationService = Depends(get_notification_service),
    clock: Clock = Depends(get_clock),
) -> BookingService:
    """Get BookingService instance with proper dependencies."""
    return BookingService(db, payment_gateway, notification_service, clock)


def get_video_service(
    db: Session = Depends(get_db),
    video_platform: VideoPlatform = Depends(get_video_platform),
    clock: Clock = Depends(get_clock),
) -> VideoService:
    return VideoService(db, video_platform, clock)


def get_settlement_service(
    db: Session = Depends(get_db),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> SettlementService:
    return SettlementService(db, payment_gateway, clock)


def get_webhook_ledger_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> WebhookLedgerService:
    return WebhookLedgerService(db, clock)
