# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for the Lumexa booking core.

This package provides the repository layer for data access,
separating business logic from database queries.

Usage:
    from app.repositories import RepositoryFactory

    # In a service:
    slots = RepositoryFactory.create_slot_repository(db)
    if not slots.reserve(slot_id):
        ...
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .conduct_repository import ConductRepository
from .factory import RepositoryFactory
from .slot_repository import SlotRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ConductRepository",
    "RepositoryFactory",
    "SlotRepository",
]
