# backend/app/repositories/booking_repository.py
"""
Booking Repository for the Lumexa booking core.

Besides plain lookups, this repository holds every conditional write the
booking lifecycle depends on:

- payment status transitions (keyed on the expected current status)
- the recording start claim and the write-once recording session ref
- the write-once recording location

Each helper returns whether it won, so callers can tell "already done by
someone else" apart from success without a read-modify-write race.
"""

from datetime import datetime
import logging
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, PaymentStatus
from ..models.slot import Slot
from ..models.student import Student
from ..models.teacher import TeacherProfile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Data access for bookings."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_with_context(self, booking_id: str) -> Optional[Booking]:
        """Load a booking with its slot, teacher profile and student."""
        try:
            return (
                self.db.query(Booking)
                .options(
                    joinedload(Booking.slot).joinedload(Slot.teacher).joinedload(TeacherProfile.user),
                    joinedload(Booking.student).joinedload(Student.parent),
                )
                .filter(Booking.id == booking_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking: {str(e)}") from e

    def transition_payment_status(
        self,
        booking_id: str,
        *,
        expected: PaymentStatus,
        target: PaymentStatus,
        **extra: Any,
    ) -> bool:
        """
        Move ``payment_status`` from ``expected`` to ``target``.

        ``extra`` columns are written in the same statement. Returns False
        when the booking was not in ``expected`` (the caller lost a race or
        the transition is not allowed).
        """
        values = {"payment_status": target.value, **extra}
        affected = self._conditional_update(
            [Booking.id == booking_id, Booking.payment_status == expected.value],
            values,
        )
        return affected == 1

    def attach_payment_intent(self, booking_id: str, intent_ref: str) -> bool:
        """Store the authorization reference on a still-pending booking."""
        affected = self._conditional_update(
            [
                Booking.id == booking_id,
                Booking.payment_status == PaymentStatus.PENDING.value,
                Booking.payment_intent_ref.is_(None),
            ],
            {"payment_intent_ref": intent_ref},
        )
        return affected == 1

    def claim_recording_start(
        self,
        booking_id: str,
        claim_id: str,
        *,
        now: datetime,
        stale_before: datetime,
    ) -> bool:
        """
        Take the right to call start_recording for this booking.

        Succeeds only while no session ref exists and no fresh claim is held.
        Claims older than ``stale_before`` are treated as abandoned.
        """
        affected = self._conditional_update(
            [
                Booking.id == booking_id,
                Booking.recording_session_ref.is_(None),
                or_(
                    Booking.recording_claim_id.is_(None),
                    Booking.recording_claimed_at < stale_before,
                ),
            ],
            {"recording_claim_id": claim_id, "recording_claimed_at": now},
        )
        return affected == 1

    def release_recording_claim(self, booking_id: str, claim_id: str) -> None:
        self._conditional_update(
            [Booking.id == booking_id, Booking.recording_claim_id == claim_id],
            {"recording_claim_id": None, "recording_claimed_at": None},
        )

    def set_recording_session_ref(self, booking_id: str, session_ref: str) -> bool:
        """Write the recording session ref if, and only if, none is set yet."""
        affected = self._conditional_update(
            [Booking.id == booking_id, Booking.recording_session_ref.is_(None)],
            {"recording_session_ref": session_ref},
        )
        return affected == 1

    def set_recording_location(self, booking_id: str, location: str) -> bool:
        affected = self._conditional_update(
            [Booking.id == booking_id, Booking.recording_location.is_(None)],
            {"recording_location": location},
        )
        return affected == 1

    def record_capture_failure(self, booking_id: str, *, error: str, failed_at: datetime) -> None:
        """Note a failed capture attempt for later retry and reconciliation."""
        try:
            booking = self.get_by_id(booking_id)
            if booking is None:
                return
            booking.capture_failed_at = failed_at
            booking.capture_retry_count = (booking.capture_retry_count or 0) + 1
            booking.capture_error = error[:2000]
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording capture failure for {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to record capture failure: {str(e)}") from e

    def clear_capture_failure(self, booking_id: str) -> None:
        self._conditional_update(
            [Booking.id == booking_id],
            {"capture_error": None, "capture_failed_at": None},
        )
