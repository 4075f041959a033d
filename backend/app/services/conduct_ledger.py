"""
Conduct Ledger Service for the Lumexa booking core.

Tracks teacher strikes. Three strikes suspend a teacher automatically and an
admin can also suspend one directly. A suspended teacher cannot publish slots
or receive new bookings, and only an admin reset lifts the suspension.
Strikes never decay on their own.

Methods that write (issue_strike, record_cancellation) flush only; the
caller's transaction decides when they commit so a strike is never stored
without the cancellation that caused it.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException, TeacherSuspendedException
from ..core.timezone_utils import Clock, start_of_month
from ..models.conduct import CancellationEvent, CancellationInitiator, TeacherConductState
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .refund_policy_engine import RefundDecision, StrikeDecision

logger = logging.getLogger(__name__)


class ConductLedgerService(BaseService):
    """Strike counter and suspension state per teacher."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.conduct_repository = RepositoryFactory.create_conduct_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_profile_repository(db)

    def get_state(self, teacher_id: str) -> TeacherConductState:
        return self.conduct_repository.ensure_state(teacher_id)

    def is_suspended(self, teacher_id: str) -> bool:
        state = self.conduct_repository.get_state(teacher_id)
        return bool(state and state.is_suspended)

    def ensure_not_suspended(self, teacher_id: str) -> None:
        if self.is_suspended(teacher_id):
            raise TeacherSuspendedException(teacher_id)

    def teacher_cancellations_this_month(self, teacher_id: str) -> int:
        """Teacher-initiated cancellations already recorded this calendar month (UTC)."""
        return self.conduct_repository.count_teacher_cancellations(
            teacher_id, since=start_of_month(self.now())
        )

    def issue_strike(self, teacher_id: str, *, reason: str) -> TeacherConductState:
        """Add a strike; the third one suspends the teacher in the same statement."""
        state = self.conduct_repository.increment_strike(teacher_id, now=self.now())
        prometheus_metrics.inc_strike(bool(state.is_suspended))
        self.logger.warning(
            "Strike issued to teacher %s (%s/3)",
            teacher_id,
            state.strike_count,
            extra={
                "teacher_id": teacher_id,
                "strike_count": state.strike_count,
                "is_suspended": state.is_suspended,
                "reason": reason,
            },
        )
        if state.is_suspended:
            self.logger.warning(
                "Teacher %s suspended after reaching the strike limit",
                teacher_id,
                extra={"teacher_id": teacher_id},
            )
        return state

    def record_cancellation(
        self,
        *,
        booking_id: str,
        teacher_id: str,
        initiator: CancellationInitiator,
        hours_before_class: float,
        refund: RefundDecision,
        strike: StrikeDecision,
        is_no_show: bool = False,
    ) -> CancellationEvent:
        return self.conduct_repository.record_cancellation(
            booking_id=booking_id,
            teacher_id=teacher_id,
            initiator=initiator.value,
            hours_before_class=hours_before_class,
            refund_percent=refund.refund_percent,
            refund_cents=refund.refund_cents,
            is_no_show=is_no_show,
            strike_issued=strike.issue_strike,
            occurred_at=self.now(),
        )

    @BaseService.measure_operation("reset_strikes")
    def reset_strikes(self, teacher_id: str, *, admin_user_id: str) -> TeacherConductState:
        """Admin action: clear strikes and lift the suspension."""
        if self.teacher_repository.get_by_id(teacher_id) is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        with self.transaction():
            state = self.conduct_repository.reset(teacher_id, now=self.now())
        self.log_operation(
            "reset_strikes",
            teacher_id=teacher_id,
            admin_user_id=admin_user_id,
        )
        return state

    @BaseService.measure_operation("suspend_teacher")
    def suspend_teacher(
        self, teacher_id: str, *, admin_user_id: str, reason: str
    ) -> TeacherConductState:
        """Admin action: suspend a teacher regardless of strikes. Lifted by reset_strikes."""
        if self.teacher_repository.get_by_id(teacher_id) is None:
            raise NotFoundException("Teacher not found", details={"teacher_id": teacher_id})
        with self.transaction():
            state = self.conduct_repository.suspend(teacher_id, now=self.now())
        self.logger.warning(
            "Teacher %s suspended by admin %s",
            teacher_id,
            admin_user_id,
            extra={
                "teacher_id": teacher_id,
                "admin_user_id": admin_user_id,
                "strike_count": state.strike_count,
                "reason": reason,
            },
        )
        return state

    @property
    def free_cancellations_per_month(self) -> int:
        return settings.free_teacher_cancellations_per_month
