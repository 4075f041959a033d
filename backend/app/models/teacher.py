# backend/app/models/teacher.py
"""
Teacher profile model.

Holds the data the booking core needs about a teacher: the hourly rate used
to price bookings and the Stripe Connect account payouts are routed to.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class TeacherProfile(Base):
    """Teacher-facing profile attached one-to-one to a User."""

    __tablename__ = "teacher_profiles"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, unique=True)
    hourly_rate_cents = Column(Integer, nullable=False)

    # Stripe Connect payout destination
    stripe_account_id = Column(String(255), nullable=True)
    stripe_onboarded = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="teacher_profile")
    slots = relationship("Slot", back_populates="teacher")
    conduct_state = relationship("TeacherConductState", uselist=False, back_populates="teacher")

    __table_args__ = (
        CheckConstraint("hourly_rate_cents >= 0", name="ck_teacher_profiles_rate_non_negative"),
    )

    @property
    def can_receive_payouts(self) -> bool:
        return bool(self.stripe_account_id) and bool(self.stripe_onboarded)
