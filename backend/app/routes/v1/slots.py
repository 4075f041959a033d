# backend/app/routes/v1/slots.py
"""
Teacher slot routes - API v1

Versioned slot endpoints under /api/v1/slots.
All business logic delegated to SlotLedgerService.

Endpoints:
    GET /               - List the caller's slots
    GET /marketplace    - Bookable teachers with their next open slots
    POST /              - Publish a new slot
    PATCH /{slot_id}    - Move an unbooked slot
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.params import Path

from ...api.dependencies import get_current_user, get_slot_ledger_service
from ...core.constants import (
    MARKETPLACE_DEFAULT_PER_PAGE,
    MARKETPLACE_MAX_PER_PAGE,
    ULID_PATH_PATTERN,
)
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.slot import (
    MarketplaceResponse,
    MarketplaceTeacher,
    SlotCreate,
    SlotResponse,
    SlotUpdate,
)
from ...services.slot_ledger import SlotLedgerService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["slots-v1"])


@router.get("", response_model=List[SlotResponse])
async def list_my_slots(
    current_user: User = Depends(get_current_user),
    service: SlotLedgerService = Depends(get_slot_ledger_service),
) -> List[SlotResponse]:
    try:
        slots = await asyncio.to_thread(service.list_teacher_slots, current_user.id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.get("/marketplace", response_model=MarketplaceResponse)
async def list_marketplace(
    page: int = Query(1, ge=1),
    per_page: int = Query(MARKETPLACE_DEFAULT_PER_PAGE, ge=1, le=MARKETPLACE_MAX_PER_PAGE),
    current_user: User = Depends(get_current_user),
    service: SlotLedgerService = Depends(get_slot_ledger_service),
) -> MarketplaceResponse:
    """Teachers open for booking, with their next unbooked slots. Suspended teachers are hidden."""
    try:
        result = await asyncio.to_thread(service.list_marketplace, page, per_page)
    except DomainException as exc:
        handle_domain_exception(exc)
    return MarketplaceResponse(
        items=[
            MarketplaceTeacher(
                teacher_id=entry.teacher.id,
                full_name=entry.teacher.user.full_name,
                hourly_rate_cents=entry.teacher.hourly_rate_cents,
                slots=[SlotResponse.model_validate(slot) for slot in entry.slots],
            )
            for entry in result.entries
        ],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        has_next=result.page * result.per_page < result.total,
        has_prev=result.page > 1,
    )


@router.post("", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreate,
    current_user: User = Depends(get_current_user),
    service: SlotLedgerService = Depends(get_slot_ledger_service),
) -> SlotResponse:
    """Publish a bookable window. Suspended teachers cannot publish."""
    try:
        slot = await asyncio.to_thread(
            service.create_slot, current_user.id, payload.start_at, payload.end_at
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error creating slot: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred creating the slot",
        )
    return SlotResponse.model_validate(slot)


@router.patch("/{slot_id}", response_model=SlotResponse)
async def update_slot(
    payload: SlotUpdate,
    slot_id: str = Path(..., description="Slot ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    service: SlotLedgerService = Depends(get_slot_ledger_service),
) -> SlotResponse:
    try:
        slot = await asyncio.to_thread(
            service.update_slot,
            current_user.id,
            slot_id,
            start_at=payload.start_at,
            end_at=payload.end_at,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error updating slot %s: %s", slot_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred updating the slot",
        )
    return SlotResponse.model_validate(slot)
