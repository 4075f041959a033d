# backend/app/models/user.py
"""
User model for the Lumexa booking core.

Users are parents (who book classes for their students), teachers (who
publish slots and run classes) or admins. Profile management lives in a
different service; this core only needs identity, role and contact email.
"""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class UserRole(str, Enum):
    """Roles recognized by the booking core."""

    PARENT = "parent"
    TEACHER = "teacher"
    ADMIN = "admin"


class User(Base):
    """Authenticated account. ``id`` is the ``sub`` claim of access tokens."""

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.PARENT.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    teacher_profile = relationship("TeacherProfile", back_populates="user", uselist=False)
    students = relationship("Student", back_populates="parent")

    __table_args__ = (
        CheckConstraint("role IN ('parent', 'teacher', 'admin')", name="ck_users_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
