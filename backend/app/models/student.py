# backend/app/models/student.py
"""Student model. Students are minors booked by their parent's account."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    parent_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    parent = relationship("User", back_populates="students")
    bookings = relationship("Booking", back_populates="student")
