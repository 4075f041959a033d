# backend/app/repositories/user_repository.py
"""User and student lookups used for caller authorization."""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.student import Student
from ..models.user import User
from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_active(self, user_id: str) -> Optional[User]:
        user = self.get_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user


class StudentRepository(BaseRepository[Student]):
    def __init__(self, db: Session):
        super().__init__(db, Student)
