# backend/app/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import (
    admin,
    bookings,
    health,
    payments,
    prometheus,
    slots,
    webhooks_hundredms,
)

__all__ = [
    "admin",
    "bookings",
    "health",
    "payments",
    "prometheus",
    "slots",
    "webhooks_hundredms",
]
