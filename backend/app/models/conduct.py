# backend/app/models/conduct.py
"""
Teacher conduct models.

TeacherConductState carries the strike counter and suspension flag; it is
only written by ConductRepository. CancellationEvent is an append-only log
of every cancellation, used to count a teacher's cancellations per month.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class CancellationInitiator(str, Enum):
    """Who is responsible for a cancellation."""

    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class TeacherConductState(Base):
    __tablename__ = "teacher_conduct_states"

    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), primary_key=True)
    strike_count = Column(Integer, nullable=False, default=0)
    is_suspended = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    teacher = relationship("TeacherProfile", back_populates="conduct_state")

    __table_args__ = (
        CheckConstraint("strike_count >= 0 AND strike_count <= 3", name="ck_conduct_strike_range"),
        CheckConstraint("strike_count < 3 OR is_suspended", name="ck_conduct_suspended_at_max"),
    )


class CancellationEvent(Base):
    """One row per cancellation. Never updated or deleted."""

    __tablename__ = "cancellation_events"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, unique=True)
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    initiator = Column(String(10), nullable=False)
    hours_before_class = Column(Float, nullable=False)
    refund_percent = Column(Integer, nullable=False)
    refund_cents = Column(Integer, nullable=False)
    is_no_show = Column(Boolean, nullable=False, default=False)
    strike_issued = Column(Boolean, nullable=False, default=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("initiator IN ('TEACHER', 'STUDENT')", name="ck_cancellation_initiator"),
        Index("ix_cancellation_events_teacher_time", "teacher_id", "initiator", "occurred_at"),
    )
