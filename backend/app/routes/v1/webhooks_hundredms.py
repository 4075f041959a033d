"""
100ms webhook endpoint for class recordings (v1).

Mounted under /api/v1/webhooks/hundredms

A finished recording is the signal that the class happened, so this is
where the held payment gets captured. The sender always gets a 200 once
the signature checks out; anything that goes wrong afterwards is logged,
marked on the webhook ledger and queued for the job runner.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import json
import logging
import re
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from ...api.dependencies import get_settlement_service
from ...core.config import settings
from ...core.constants import ULID_PATTERN
from ...core.exceptions import WebhookAuthenticityException
from ...errors import handle_domain_exception
from ...integrations.hundredms_client import SIGNATURE_HEADER, verify_webhook_signature
from ...models.webhook_event import WebhookEvent
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.hundredms_webhook import RecordingWebhookPayload
from ...schemas.webhook_responses import WebhookAckResponse
from ...services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

WEBHOOK_SOURCE = "hundredms"
_MAX_FUTURE_SKEW = timedelta(minutes=2)
_BOOKING_ID_RE = re.compile(rf"^{ULID_PATTERN}$")


def _check_body_size(content_length_header: Optional[str], raw_body: Optional[bytes] = None) -> None:
    limit = settings.webhook_max_body_bytes
    if content_length_header is not None and content_length_header.strip():
        try:
            declared_size = int(content_length_header.strip())
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid Content-Length header",
            ) from exc
        if declared_size > limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="Webhook payload too large",
            )
    if raw_body is not None and len(raw_body) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Webhook payload too large",
        )


def _verify_signature(request: Request, raw_body: bytes) -> None:
    """Reject the delivery unless the body carries a valid HMAC signature."""
    secret = settings.hundredms_webhook_secret
    if secret is None or not secret.get_secret_value():
        logger.error("HUNDREDMS_WEBHOOK_SECRET not configured; rejecting webhook")
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "unauthenticated")
        handle_domain_exception(WebhookAuthenticityException())
    if not verify_webhook_signature(raw_body, request.headers.get(SIGNATURE_HEADER), secret):
        logger.warning(
            "100ms webhook signature mismatch",
            extra={"evt": "hundredms_webhook_invalid_signature"},
        )
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "unauthenticated")
        handle_domain_exception(WebhookAuthenticityException())


def _parse_payload(raw_body: bytes) -> Optional[RecordingWebhookPayload]:
    try:
        data = json.loads(raw_body.decode("utf-8"))
        return RecordingWebhookPayload.model_validate(data)
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Unreadable 100ms webhook payload: %s", exc)
        return None


def _within_replay_window(event_timestamp: Optional[datetime], now: datetime) -> bool:
    if event_timestamp is None:
        return True
    if event_timestamp.tzinfo is None:
        event_timestamp = event_timestamp.replace(tzinfo=timezone.utc)
    max_age = timedelta(hours=settings.webhook_max_age_hours)
    return now - max_age <= event_timestamp <= now + _MAX_FUTURE_SKEW


def _delivery_key(payload: RecordingWebhookPayload) -> Optional[str]:
    """Dedup key for deliveries that arrive without an event id."""
    if payload.id:
        return None
    data = payload.data
    discriminator = data.session_id or data.recording_location or "no-session"
    return f"{payload.type}:{data.room_name}:{discriminator}"


def _log_delivery(
    settlement: SettlementService,
    payload: RecordingWebhookPayload,
    raw_payload: dict[str, Any],
    headers: dict[str, Any],
) -> WebhookEvent:
    with settlement.transaction():
        return settlement.ledger.log_received(
            source=WEBHOOK_SOURCE,
            event_type=payload.type,
            payload=raw_payload,
            headers=headers,
            event_id=payload.id,
            idempotency_key=_delivery_key(payload),
        )


@router.post("", response_model=WebhookAckResponse)
async def handle_hundredms_webhook(
    request: Request,
    settlement: SettlementService = Depends(get_settlement_service),
) -> WebhookAckResponse:
    """Capture payment for a booking whose class recording has finished."""

    # 1. Size guard, then authenticity over the raw bytes before anything is parsed
    _check_body_size(request.headers.get("content-length"))
    raw_body = await request.body()
    _check_body_size(None, raw_body)
    _verify_signature(request, raw_body)

    # 2. Parse and filter
    payload = _parse_payload(raw_body)
    if payload is None:
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "invalid")
        return WebhookAckResponse(ok=True)

    if not payload.is_recording_finished:
        logger.debug("Ignoring 100ms event type=%s", payload.type)
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "ignored")
        return WebhookAckResponse(ok=True)

    booking_id = (payload.data.room_name or "").strip()
    if not _BOOKING_ID_RE.match(booking_id):
        logger.warning(
            "100ms recording webhook for unrecognized room_name=%s", payload.data.room_name
        )
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "invalid")
        return WebhookAckResponse(ok=True)

    if not _within_replay_window(payload.timestamp, settlement.now()):
        logger.warning(
            "Ignoring 100ms webhook outside the replay window timestamp=%s",
            payload.timestamp.isoformat() if payload.timestamp else None,
            extra={"booking_id": booking_id},
        )
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "stale")
        return WebhookAckResponse(ok=True)

    location = payload.data.recording_location
    raw_payload = payload.model_dump(mode="json")

    # 3. Persistent dedup via the webhook ledger
    try:
        event = await asyncio.to_thread(
            _log_delivery, settlement, payload, raw_payload, dict(request.headers)
        )
    except Exception:
        logger.exception(
            "Could not record 100ms webhook in the ledger",
            extra={"booking_id": booking_id, "event_type": payload.type},
        )
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "failed")
        return WebhookAckResponse(ok=True)

    # 4. Settle; failures are queued, never surfaced to the sender
    try:
        outcome = await asyncio.to_thread(
            settlement.process_recording_event,
            event,
            booking_id=booking_id,
            location=location,
        )
    except Exception:
        logger.exception(
            "100ms webhook processing failed; queueing retry",
            extra={"booking_id": booking_id, "ledger_id": event.id},
        )
        prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, "failed")
        try:
            await asyncio.to_thread(
                settlement.queue_recording_retry,
                event,
                booking_id=booking_id,
                location=location,
            )
        except Exception:
            logger.exception(
                "Failed to queue 100ms webhook retry",
                extra={"booking_id": booking_id, "ledger_id": event.id},
            )
        return WebhookAckResponse(ok=True)

    logger.info(
        "100ms recording webhook handled: %s",
        outcome,
        extra={"booking_id": booking_id, "ledger_id": event.id, "outcome": outcome},
    )
    prometheus_metrics.inc_webhook_event(WEBHOOK_SOURCE, outcome)
    return WebhookAckResponse(ok=True)
