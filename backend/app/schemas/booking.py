"""Booking request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field

from ..core.constants import MAX_REASON_LENGTH, ULID_PATH_PATTERN
from ..models.conduct import CancellationInitiator
from ._strict_base import StrictModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    """Body of POST /api/v1/bookings."""

    student_id: str = Field(..., pattern=ULID_PATH_PATTERN)
    slot_id: str = Field(..., pattern=ULID_PATH_PATTERN)


class BookingResponse(StrictModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str
    slot_id: str
    student_id: str
    payment_status: str
    amount_cents: int
    platform_fee_cents: int
    refunded_cents: int
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BookingCreateResponse(StrictModel):
    booking: BookingResponse
    payment_client_secret: Optional[str] = Field(
        default=None, description="Client secret used by the payment form to confirm the card"
    )


class BookingCancel(StrictRequestModel):
    """
    Body of POST /api/v1/bookings/{booking_id}/cancel.

    ``initiator`` is informational; the server decides who cancelled from the
    authenticated caller.
    """

    initiator: Optional[CancellationInitiator] = None
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)
    student_verification_code: Optional[str] = Field(default=None, pattern=r"^\d{4,10}$")


class CancellationResponse(StrictModel):
    booking_id: str
    payment_status: str
    initiator: CancellationInitiator
    hours_before_class: float
    refund_percent: int
    refund_cents: int
    policy_basis: str
    strike_issued: bool
    settlement: str


class VerificationCodeResponse(StrictModel):
    booking_id: str
    code: str
