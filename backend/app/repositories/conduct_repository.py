# backend/app/repositories/conduct_repository.py
"""
Conduct Repository: strike counters and the cancellation event log.

The strike counter is incremented by a single UPDATE whose SET clauses read
the pre-update value, so concurrent strikes never lose an increment and the
suspension flag is raised in the same statement that reaches the limit.
"""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy import case, func, true
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.constants import MAX_STRIKES
from ..core.exceptions import RepositoryException
from ..models.conduct import CancellationEvent, CancellationInitiator, TeacherConductState
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConductRepository(BaseRepository[TeacherConductState]):
    def __init__(self, db: Session):
        super().__init__(db, TeacherConductState)

    def get_state(self, teacher_id: str) -> Optional[TeacherConductState]:
        try:
            return self.db.get(TeacherConductState, teacher_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading conduct state for {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to load conduct state: {str(e)}") from e

    def ensure_state(self, teacher_id: str) -> TeacherConductState:
        """
        Return the state row, creating it on first use.

        Creation is ``INSERT ... ON CONFLICT DO NOTHING`` so two transactions
        racing to create the same row both end up reading the winner's row.
        """
        existing = self.get_state(teacher_id)
        if existing is not None:
            return existing
        insert = pg_insert if self.dialect_name == "postgresql" else sqlite_insert
        try:
            stmt = (
                insert(TeacherConductState)
                .values(teacher_id=teacher_id, strike_count=0, is_suspended=False)
                .on_conflict_do_nothing(index_elements=["teacher_id"])
            )
            self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating conduct state for {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to create conduct state: {str(e)}") from e
        state = self.get_state(teacher_id)
        if state is None:
            raise RepositoryException(f"Conduct state for {teacher_id} could not be created")
        return state

    def increment_strike(self, teacher_id: str, *, now: datetime) -> TeacherConductState:
        """Add one strike (capped) and suspend when the cap is reached."""
        state = self.ensure_state(teacher_id)
        self._conditional_update(
            [TeacherConductState.teacher_id == teacher_id],
            {
                "strike_count": case(
                    (TeacherConductState.strike_count >= MAX_STRIKES, MAX_STRIKES),
                    else_=TeacherConductState.strike_count + 1,
                ),
                "is_suspended": case(
                    (TeacherConductState.strike_count + 1 >= MAX_STRIKES, true()),
                    else_=TeacherConductState.is_suspended,
                ),
                "updated_at": now,
            },
        )
        self.db.refresh(state)
        return state

    def suspend(self, teacher_id: str, *, now: datetime) -> TeacherConductState:
        """Raise the suspension flag without touching the strike count."""
        state = self.ensure_state(teacher_id)
        self._conditional_update(
            [TeacherConductState.teacher_id == teacher_id],
            {"is_suspended": True, "updated_at": now},
        )
        self.db.refresh(state)
        return state

    def reset(self, teacher_id: str, *, now: datetime) -> TeacherConductState:
        state = self.ensure_state(teacher_id)
        self._conditional_update(
            [TeacherConductState.teacher_id == teacher_id],
            {"strike_count": 0, "is_suspended": False, "updated_at": now},
        )
        self.db.refresh(state)
        return state

    def record_cancellation(self, **fields) -> CancellationEvent:
        try:
            event = CancellationEvent(**fields)
            self.db.add(event)
            self.db.flush()
            return event
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording cancellation event: {str(e)}")
            raise RepositoryException(f"Failed to record cancellation: {str(e)}") from e

    def count_teacher_cancellations(self, teacher_id: str, *, since: datetime) -> int:
        """Teacher-initiated cancellations recorded at or after ``since``."""
        query = self.db.query(func.count(CancellationEvent.id)).filter(
            CancellationEvent.teacher_id == teacher_id,
            CancellationEvent.initiator == CancellationInitiator.TEACHER.value,
            CancellationEvent.occurred_at >= since,
        )
        return int(self._execute_scalar(query) or 0)
