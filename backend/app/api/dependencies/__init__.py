# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import get_current_user, require_admin
from .database import get_db
from .services import (
    get_booking_service,
    get_clock,
    get_conduct_ledger_service,
    get_notification_service,
    get_payment_gateway,
    get_settlement_service,
    get_slot_ledger_service,
    get_video_platform,
    get_video_service,
    get_webhook_ledger_service,
)

__all__ = [
    # Auth
    "get_current_user",
    "require_admin",
    # Database
    "get_db",
    # Gateways
    "get_clock",
    "get_payment_gateway",
    "get_video_platform",
    # Services
    "get_booking_service",
    "get_conduct_ledger_service",
    "get_notification_service",
    "get_settlement_service",
    "get_slot_ledger_service",
    "get_video_service",
    "get_webhook_ledger_service",
]
