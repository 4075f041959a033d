# backend/app/repositories/teacher_repository.py
"""Teacher profile data access."""

from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from app.database.session_utils import supports_row_locks

from ..core.exceptions import RepositoryException
from ..models.conduct import TeacherConductState
from ..models.teacher import TeacherProfile
from .base_repository import BaseRepository


class TeacherProfileRepository(BaseRepository[TeacherProfile]):
    def __init__(self, db: Session):
        super().__init__(db, TeacherProfile)

    def get_by_user_id(self, user_id: str, *, for_update: bool = False) -> Optional[TeacherProfile]:
        """
        Fetch the profile owned by ``user_id``.

        With ``for_update`` the profile row doubles as the per-teacher lock
        that serializes slot creation (overlap check + insert).
        """
        try:
            query = self.db.query(TeacherProfile).filter(TeacherProfile.user_id == user_id)
            if for_update and supports_row_locks(self.db):
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading teacher profile for user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to load teacher profile: {str(e)}") from e

    def set_payout_account(self, teacher_id: str, account_id: str, *, onboarded: bool) -> None:
        self._conditional_update(
            [TeacherProfile.id == teacher_id],
            {"stripe_account_id": account_id, "stripe_onboarded": onboarded},
        )

    def _bookable_query(self) -> Query:
        return (
            self.db.query(TeacherProfile)
            .outerjoin(TeacherConductState, TeacherConductState.teacher_id == TeacherProfile.id)
            .filter(
                or_(
                    TeacherConductState.is_suspended.is_(None),
                    TeacherConductState.is_suspended.is_(False),
                )
            )
        )

    def list_bookable(self, *, offset: int, limit: int) -> List[TeacherProfile]:
        """Teachers that are not suspended, oldest profile first."""
        query = (
            self._bookable_query()
            .options(joinedload(TeacherProfile.user))
            .order_by(TeacherProfile.id.asc())
            .offset(offset)
            .limit(limit)
        )
        return self._execute_query(query)

    def count_bookable(self) -> int:
        query = self._bookable_query().with_entities(func.count(TeacherProfile.id))
        return int(self._execute_scalar(query) or 0)
