# backend/app/routes/v1/payments.py
"""
Payment API Routes - API v1

Stripe Connect onboarding for teachers under /api/v1/payments.

Endpoints:
    POST /connect/onboarding   → Start (or resume) teacher Stripe onboarding
    POST /connect/status       → Re-check onboarding with Stripe
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...api.dependencies import get_booking_service, get_current_user
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.payments import PayoutOnboardingResponse, PayoutStatusResponse
from ...services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post("/connect/onboarding", response_model=PayoutOnboardingResponse)
async def start_onboarding(
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> PayoutOnboardingResponse:
    """Create the teacher's connected account if needed and return a hosted onboarding link."""
    try:
        link = await asyncio.to_thread(booking_service.start_payout_onboarding, current_user.id)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error starting payout onboarding: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start onboarding",
        )
    return PayoutOnboardingResponse(account_id=link.account_id, onboarding_url=link.url)


@router.post("/connect/status", response_model=PayoutStatusResponse)
async def refresh_onboarding_status(
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> PayoutStatusResponse:
    try:
        teacher = await asyncio.to_thread(booking_service.refresh_payout_status, current_user.id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return PayoutStatusResponse(
        account_id=teacher.stripe_account_id, onboarded=bool(teacher.stripe_onboarded)
    )
