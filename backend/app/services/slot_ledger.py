"""
Slot Ledger Service for the Lumexa booking core.

Teachers publish slots here. Publishing validates the window (not in the
past beyond a small grace period, start before end, duration within bounds)
and rejects overlap with the teacher's other slots. The teacher profile row
is locked for the overlap check and insert so two concurrent publishes
cannot both pass the check.

Reservation itself is a single conditional UPDATE in SlotRepository; the
booking orchestrator calls reserve/release inside its own transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MARKETPLACE_SLOTS_PER_TEACHER
from ..core.exceptions import (
    AvailabilityOverlapException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from ..core.timezone_utils import Clock, ensure_utc
from ..models.slot import Slot
from ..models.teacher import TeacherProfile
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .conduct_ledger import ConductLedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketplaceEntry:
    teacher: TeacherProfile
    slots: List[Slot]


@dataclass(frozen=True)
class MarketplacePage:
    entries: List[MarketplaceEntry]
    total: int
    page: int
    per_page: int


def _format_range(start_at: datetime, end_at: datetime) -> str:
    return f"{ensure_utc(start_at).isoformat()}/{ensure_utc(end_at).isoformat()}"


class SlotLedgerService(BaseService):
    """Publishing and reserving teacher slots."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        conduct_ledger: Optional[ConductLedgerService] = None,
    ):
        super().__init__(db, clock)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_profile_repository(db)
        self.conduct_ledger = conduct_ledger or ConductLedgerService(db, clock)

    def _validate_window(self, start_at: datetime, end_at: datetime) -> tuple[datetime, datetime]:
        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        if start_at >= end_at:
            raise ValidationException("Slot must start before it ends", code="INVALID_SLOT_RANGE")

        grace = timedelta(minutes=settings.slot_past_grace_minutes)
        if start_at < self.now() - grace:
            raise ValidationException("Slot cannot start in the past", code="SLOT_IN_PAST")

        duration_minutes = (end_at - start_at).total_seconds() / 60
        if duration_minutes < settings.slot_min_duration_minutes:
            raise ValidationException(
                f"Slot must be at least {settings.slot_min_duration_minutes} minutes",
                code="SLOT_TOO_SHORT",
                details={"duration_minutes": duration_minutes},
            )
        if duration_minutes > settings.slot_max_duration_minutes:
            raise ValidationException(
                f"Slot cannot exceed {settings.slot_max_duration_minutes} minutes",
                code="SLOT_TOO_LONG",
                details={"duration_minutes": duration_minutes},
            )
        return start_at, end_at

    def _load_teacher_for_update(self, owner_user_id: str) -> TeacherProfile:
        teacher = self.teacher_repository.get_by_user_id(owner_user_id, for_update=True)
        if teacher is None:
            raise NotFoundException("Teacher profile not found")
        return teacher

    def _check_overlap(
        self,
        teacher_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_slot_id: Optional[str] = None,
    ) -> None:
        conflicting = self.slot_repository.find_overlapping(
            teacher_id, start_at, end_at, exclude_slot_id=exclude_slot_id
        )
        if conflicting is not None:
            raise AvailabilityOverlapException(
                _format_range(start_at, end_at),
                _format_range(conflicting.start_at, conflicting.end_at),
            )

    @BaseService.measure_operation("create_slot")
    def create_slot(self, owner_user_id: str, start_at: datetime, end_at: datetime) -> Slot:
        """Publish a new slot for the calling teacher."""
        with self.transaction():
            teacher = self._load_teacher_for_update(owner_user_id)
            self.conduct_ledger.ensure_not_suspended(teacher.id)
            start_at, end_at = self._validate_window(start_at, end_at)
            self._check_overlap(teacher.id, start_at, end_at)
            slot = self.slot_repository.create(
                teacher_id=teacher.id,
                start_at=start_at,
                end_at=end_at,
                is_booked=False,
            )

        self.log_operation("create_slot", slot_id=slot.id, teacher_id=teacher.id)
        return slot

    @BaseService.measure_operation("update_slot")
    def update_slot(
        self,
        owner_user_id: str,
        slot_id: str,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
    ) -> Slot:
        """Move an unbooked slot. Omitted bounds keep their value; booked slots are frozen."""
        with self.transaction():
            teacher = self._load_teacher_for_update(owner_user_id)
            slot = self.slot_repository.get_by_id(slot_id)
            if slot is None:
                raise NotFoundException("Slot not found", details={"slot_id": slot_id})
            if slot.teacher_id != teacher.id:
                raise ForbiddenException("Only the owning teacher can change this slot")
            if slot.is_booked:
                raise ConflictException("Booked slots cannot be changed", code="SLOT_BOOKED")
            self.conduct_ledger.ensure_not_suspended(teacher.id)

            start_at, end_at = self._validate_window(
                start_at if start_at is not None else slot.start_at,
                end_at if end_at is not None else slot.end_at,
            )
            self._check_overlap(teacher.id, start_at, end_at, exclude_slot_id=slot.id)
            slot.start_at = start_at
            slot.end_at = end_at
            self.slot_repository.flush()

        self.log_operation("update_slot", slot_id=slot.id, teacher_id=teacher.id)
        return slot

    def list_teacher_slots(self, owner_user_id: str) -> List[Slot]:
        teacher = self.teacher_repository.get_by_user_id(owner_user_id)
        if teacher is None:
            raise NotFoundException("Teacher profile not found")
        return self.slot_repository.list_for_teacher(teacher.id, starting_after=self.now())

    @BaseService.measure_operation("list_marketplace")
    def list_marketplace(self, page: int, per_page: int) -> MarketplacePage:
        """
        Bookable teachers with their next open slots.

        Suspended teachers are left out entirely. Each teacher shows at most
        MARKETPLACE_SLOTS_PER_TEACHER upcoming unbooked slots.
        """
        teachers = self.teacher_repository.list_bookable(
            offset=(page - 1) * per_page, limit=per_page
        )
        total = self.teacher_repository.count_bookable()
        open_slots = self.slot_repository.list_open_for_teachers(
            [teacher.id for teacher in teachers], starting_after=self.now()
        )
        by_teacher: dict[str, List[Slot]] = {teacher.id: [] for teacher in teachers}
        for slot in open_slots:
            bucket = by_teacher[slot.teacher_id]
            if len(bucket) < MARKETPLACE_SLOTS_PER_TEACHER:
                bucket.append(slot)
        entries = [MarketplaceEntry(teacher=t, slots=by_teacher[t.id]) for t in teachers]
        return MarketplacePage(entries=entries, total=total, page=page, per_page=per_page)

    def reserve(self, slot_id: str) -> None:
        """
        Mark a slot booked. Exactly one concurrent caller wins.

        Flushes only; the caller's transaction commits.
        """
        if not self.slot_repository.reserve(slot_id):
            raise SlotUnavailableException(slot_id)

    def release(self, slot_id: str) -> None:
        """Free a slot again. Idempotent; flushes only."""
        self.slot_repository.release(slot_id)
