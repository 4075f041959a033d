# backend/app/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService and VideoService.

Endpoints:
    POST /                                - Book a slot for a student
    POST /{booking_id}/cancel             - Cancel a pending booking
    POST /{booking_id}/verification-code  - Parent fetches the cancellation code
    POST /{booking_id}/join               - Join the live class
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.params import Path

from ...api.dependencies import get_booking_service, get_current_user, get_video_service
from ...core.constants import ULID_PATH_PATTERN
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingCreateResponse,
    BookingResponse,
    CancellationResponse,
    VerificationCodeResponse,
)
from ...schemas.video import VideoJoinResponse
from ...services.booking_service import BookingService, CancellationOutcome
from ...services.video_service import VideoService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def cancellation_response(outcome: CancellationOutcome) -> CancellationResponse:
    return CancellationResponse(
        booking_id=outcome.booking.id,
        payment_status=outcome.booking.payment_status,
        initiator=outcome.initiator,
        hours_before_class=round(outcome.hours_before_class, 2),
        refund_percent=outcome.refund.refund_percent,
        refund_cents=outcome.refund.refund_cents,
        policy_basis=outcome.refund.policy_basis,
        strike_issued=outcome.strike.issue_strike,
        settlement=outcome.settlement,
    )


@router.post(
    "",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Slot already booked"}, 502: {"description": "Payment provider unavailable"}},
)
async def create_booking(
    payload: BookingCreate,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """
    Reserve a slot and authorize the payment.

    The card is authorized now and captured only after the recorded class
    has finished.
    """
    try:
        created = await asyncio.to_thread(
            booking_service.create_booking,
            current_user.id,
            payload.student_id,
            payload.slot_id,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error creating booking: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred creating the booking",
        )
    return BookingCreateResponse(
        booking=BookingResponse.model_validate(created.booking),
        payment_client_secret=created.client_secret,
    )


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    payload: Optional[BookingCancel] = None,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancellationResponse:
    """Cancel a pending booking; the refund follows the notice given."""
    payload = payload or BookingCancel()
    try:
        outcome = await asyncio.to_thread(
            booking_service.cancel_booking,
            current_user.id,
            booking_id,
            payload.initiator,
            payload.reason,
            payload.student_verification_code,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error cancelling booking %s: %s", booking_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred cancelling the booking",
        )
    return cancellation_response(outcome)


@router.post("/{booking_id}/verification-code", response_model=VerificationCodeResponse)
async def get_verification_code(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> VerificationCodeResponse:
    """Code the parent hands to the teacher to confirm a student-requested cancellation."""
    try:
        code = await asyncio.to_thread(
            booking_service.issue_student_verification_code, current_user.id, booking_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return VerificationCodeResponse(booking_id=booking_id, code=code)


@router.post(
    "/{booking_id}/join",
    response_model=VideoJoinResponse,
    responses={502: {"description": "Video service unavailable"}},
)
async def join_class(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    service: VideoService = Depends(get_video_service),
) -> VideoJoinResponse:
    """Join a live class.

    Admits the teacher as host and the parent as guest from JOIN_LEAD_MINUTES
    (10 by default) before start until the class ends; outside that window
    the answer is 422 TOO_EARLY or SESSION_ENDED. Returns a 100ms token for
    the room named after the booking. The first admitted join also starts the
    class recording; later joins do not.
    """
    try:
        result = await asyncio.to_thread(service.join_session, booking_id, current_user.id)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error in join_class: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred joining the class",
        )
    return VideoJoinResponse(
        auth_token=result.grant.token,
        room_id=result.grant.room_id,
        room_name=result.grant.room_name,
        role=result.role,
        booking_id=result.booking_id,
        expires_in_seconds=result.grant.expires_in_seconds,
        recording_started=result.recording_started,
    )
