# backend/app/repositories/slot_repository.py
"""
Slot Repository for the Lumexa booking core.

The reservation flag is only ever flipped through conditional UPDATEs:
``reserve`` succeeds for exactly one caller even when many race for the
same slot, and ``release`` is safe to repeat.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.slot import Slot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SlotRepository(BaseRepository[Slot]):
    """Data access for teacher slots."""

    def __init__(self, db: Session):
        super().__init__(db, Slot)

    def reserve(self, slot_id: str) -> bool:
        """
        Atomically mark a free slot as booked.

        Returns True when this call flipped the flag, False when the slot was
        already booked or does not exist.
        """
        affected = self._conditional_update(
            [Slot.id == slot_id, Slot.is_booked.is_(False)],
            {"is_booked": True},
        )
        return affected == 1

    def release(self, slot_id: str) -> None:
        """Mark a slot as free. Repeating the call is harmless."""
        self._conditional_update([Slot.id == slot_id], {"is_booked": False})

    def find_overlapping(
        self,
        teacher_id: str,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_slot_id: Optional[str] = None,
    ) -> Optional[Slot]:
        """
        Return one slot of ``teacher_id`` intersecting [start_at, end_at).

        Touching ranges (one ends exactly when the other starts) do not
        overlap.
        """
        try:
            query = self.db.query(Slot).filter(
                Slot.teacher_id == teacher_id,
                Slot.start_at < end_at,
                Slot.end_at > start_at,
            )
            if exclude_slot_id is not None:
                query = query.filter(Slot.id != exclude_slot_id)
            return query.order_by(Slot.start_at.asc()).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking slot overlap for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to check slot overlap: {str(e)}") from e

    def list_for_teacher(
        self,
        teacher_id: str,
        *,
        starting_after: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Slot]:
        """List a teacher's slots ordered by start time."""
        query = self._build_query().filter(Slot.teacher_id == teacher_id)
        if starting_after is not None:
            query = query.filter(Slot.start_at >= starting_after)
        return self._execute_query(query.order_by(Slot.start_at.asc()).limit(limit))

    def list_open_for_teachers(self, teacher_ids: List[str], *, starting_after: datetime) -> List[Slot]:
        """Unbooked slots of the given teachers that start after ``starting_after``."""
        if not teacher_ids:
            return []
        query = self._build_query().filter(
            Slot.teacher_id.in_(teacher_ids),
            Slot.is_booked.is_(False),
            Slot.start_at > starting_after,
        )
        return self._execute_query(query.order_by(Slot.teacher_id.asc(), Slot.start_at.asc()))
