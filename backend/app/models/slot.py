# backend/app/models/slot.py
"""
Slot model.

A slot is a bookable time window published by a teacher. ``is_booked`` is
the reservation flag; it only ever changes through conditional UPDATEs in
SlotRepository so two concurrent bookings cannot both win the same slot.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Slot(Base):
    __tablename__ = "slots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    teacher = relationship("TeacherProfile", back_populates="slots")
    bookings = relationship("Booking", back_populates="slot")

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_slots_start_before_end"),
        Index("ix_slots_teacher_start", "teacher_id", "start_at"),
    )

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)

    def __repr__(self) -> str:
        return f"<Slot {self.id} teacher={self.teacher_id} {self.start_at}-{self.end_at}>"
