# backend/app/models/booking.py
"""
Booking model for the Lumexa booking core.

A booking binds one student to one slot. Money is authorized when the
booking is created and only captured once the video platform reports that
the recorded class finished. ``payment_status`` moves forward only:

    PENDING -> CAPTURED  (settlement webhook)
    PENDING -> REFUNDED  (cancellation)
    PENDING -> FAILED    (authorization failure)

Every transition is a conditional UPDATE keyed on the current status, see
BookingRepository.transition_payment_status.
"""

from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class PaymentStatus(str, Enum):
    """Payment lifecycle of a booking."""

    PENDING = "PENDING"  # Authorized (or awaiting authorization), not captured
    CAPTURED = "CAPTURED"  # Class completed and funds captured
    REFUNDED = "REFUNDED"  # Cancelled; refund percentage applied
    FAILED = "FAILED"  # Authorization failed; slot released

    @classmethod
    def active(cls) -> tuple["PaymentStatus", ...]:
        """Statuses that hold the slot."""
        return (cls.PENDING, cls.CAPTURED)


_ACTIVE_STATUS_SQL = "payment_status IN ('PENDING', 'CAPTURED')"


class Booking(Base):
    """
    A student's reservation of a teacher's slot.

    Refunded and failed bookings keep their row for history; the partial
    unique index only covers active statuses so the slot can be re-booked.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    slot_id = Column(String(26), ForeignKey("slots.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("students.id"), nullable=False, index=True)

    # Payment
    payment_status = Column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    payment_intent_ref = Column(String(255), nullable=True, comment="Stripe PaymentIntent id")
    amount_cents = Column(Integer, nullable=False)
    platform_fee_cents = Column(Integer, nullable=False, default=0)
    refunded_cents = Column(Integer, nullable=False, default=0)

    # Settlement retry tracking
    capture_failed_at = Column(DateTime(timezone=True), nullable=True)
    capture_retry_count = Column(Integer, nullable=False, default=0)
    capture_error = Column(Text, nullable=True)

    # Recording: session ref is written once; the claim guards start_recording
    recording_session_ref = Column(String(255), nullable=True)
    recording_claim_id = Column(String(26), nullable=True)
    recording_claimed_at = Column(DateTime(timezone=True), nullable=True)
    recording_location = Column(Text, nullable=True)

    # Cancellation tracking
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    slot = relationship("Slot", back_populates="bookings")
    student = relationship("Student", back_populates="bookings")
    cancelled_by = relationship("User", foreign_keys=[cancelled_by_id])

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('PENDING', 'CAPTURED', 'REFUNDED', 'FAILED')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("amount_cents >= 0", name="ck_bookings_amount_non_negative"),
        CheckConstraint(
            "refunded_cents >= 0 AND refunded_cents <= amount_cents",
            name="ck_bookings_refund_within_amount",
        ),
        Index(
            "uq_bookings_active_slot",
            "slot_id",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.payment_status in {status.value for status in PaymentStatus.active()}

    def __repr__(self) -> str:
        return f"<Booking {self.id} slot={self.slot_id} status={self.payment_status}>"
