# backend/app/routes/v1/admin.py
"""
Admin actions under /api/v1/admin.

Endpoints:
    POST /teachers/{teacher_id}/reset-strikes  → Clear strikes and lift a suspension
    POST /teachers/{teacher_id}/suspend        → Suspend a teacher regardless of strikes
    POST /bookings/{booking_id}/no-show        → Record a teacher no-show (full refund + strike)
    GET  /bookings/{booking_id}/recording      → Recording session ref and stored location
"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.params import Path

from ...api.dependencies import (
    get_booking_service,
    get_conduct_ledger_service,
    get_settlement_service,
    require_admin,
)
from ...core.constants import ULID_PATH_PATTERN
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.admin import ConductStateResponse, RecordingResponse, SuspendTeacherRequest
from ...schemas.booking import CancellationResponse
from ...services.booking_service import BookingService
from ...services.conduct_ledger import ConductLedgerService
from ...services.settlement_service import SettlementService
from .bookings import cancellation_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-v1"])


@router.post("/teachers/{teacher_id}/reset-strikes", response_model=ConductStateResponse)
async def reset_teacher_strikes(
    teacher_id: str = Path(..., description="Teacher profile ULID", pattern=ULID_PATH_PATTERN),
    admin: User = Depends(require_admin),
    conduct_ledger: ConductLedgerService = Depends(get_conduct_ledger_service),
) -> ConductStateResponse:
    try:
        state = await asyncio.to_thread(
            conduct_ledger.reset_strikes, teacher_id, admin_user_id=admin.id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    logger.info(
        "Admin %s reset strikes for teacher %s",
        admin.id,
        teacher_id,
        extra={"admin_id": admin.id, "teacher_id": teacher_id},
    )
    return ConductStateResponse.model_validate(state)


@router.post("/bookings/{booking_id}/no-show", response_model=CancellationResponse)
async def record_teacher_no_show(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    admin: User = Depends(require_admin),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancellationResponse:
    try:
        outcome = await asyncio.to_thread(
            booking_service.record_teacher_no_show, admin.id, booking_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return cancellation_response(outcome)


@router.post("/teachers/{teacher_id}/suspend", response_model=ConductStateResponse)
async def suspend_teacher(
    payload: SuspendTeacherRequest,
    teacher_id: str = Path(..., description="Teacher profile ULID", pattern=ULID_PATH_PATTERN),
    admin: User = Depends(require_admin),
    conduct_ledger: ConductLedgerService = Depends(get_conduct_ledger_service),
) -> ConductStateResponse:
    try:
        state = await asyncio.to_thread(
            conduct_ledger.suspend_teacher,
            teacher_id,
            admin_user_id=admin.id,
            reason=payload.reason,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return ConductStateResponse.model_validate(state)


@router.get("/bookings/{booking_id}/recording", response_model=RecordingResponse)
async def get_booking_recording(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    admin: User = Depends(require_admin),
    settlement: SettlementService = Depends(get_settlement_service),
) -> RecordingResponse:
    try:
        booking = await asyncio.to_thread(settlement.get_recording, booking_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return RecordingResponse(
        booking_id=booking.id,
        recording_session_ref=booking.recording_session_ref,
        recording_location=booking.recording_location,
    )
