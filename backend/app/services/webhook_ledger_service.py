"""Ledger of inbound webhook deliveries.

Every verified delivery is written before it is acted on. The ledger is what
makes recording webhooks idempotent: a delivery whose event is already
``processed`` is acknowledged without touching the booking again, and a
``failed`` one can be claimed again by the next delivery or the retry job.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import RepositoryException
from app.core.timezone_utils import Clock
from app.models.webhook_event import WebhookEvent
from app.repositories.factory import RepositoryFactory
from app.services.base import BaseService

_SENSITIVE_HEADERS = {
    "authorization",
    "stripe-signature",
    "x-api-key",
    "x-hundredms-signature",
}

TERMINAL_STATUSES = frozenset({"processed", "ignored"})


class WebhookLedgerService(BaseService):
    """Business logic for webhook ledger entries."""

    def __init__(self, db: Session, clock: Optional[Clock] = None) -> None:
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_webhook_event_repository(db)

    def _find_existing_event(
        self,
        *,
        source: str,
        event_id: str | None,
        idempotency_key: str | None,
    ) -> WebhookEvent | None:
        if event_id:
            existing = self.repository.find_by_source_and_event_id(source, event_id)
            if existing is not None:
                return existing
        if idempotency_key:
            return self.repository.find_by_source_and_idempotency_key(source, idempotency_key)
        return None

    def _note_retry(self, event: WebhookEvent, headers: dict[str, Any] | None) -> WebhookEvent:
        event.retry_count = (event.retry_count or 0) + 1
        event.last_retry_at = self.now()
        if headers is not None:
            event.headers = headers
        self.repository.flush()
        return event

    @BaseService.measure_operation("webhook_ledger.log_received")
    def log_received(
        self,
        *,
        source: str,
        event_type: str,
        payload: dict[str, Any],
        headers: dict[str, Any] | None = None,
        event_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> WebhookEvent:
        """
        Log a received webhook before processing.

        A redelivery of a known event returns the existing row with its
        retry counter bumped instead of creating a second one.
        """
        safe_headers = self._sanitize_headers(headers) if headers else None
        existing = self._find_existing_event(
            source=source,
            event_id=event_id,
            idempotency_key=idempotency_key,
        )
        if existing:
            return self._note_retry(existing, safe_headers)

        try:
            return self.repository.create(
                source=source,
                event_type=event_type or "unknown",
                event_id=event_id,
                payload=payload,
                headers=safe_headers,
                status="received",
                idempotency_key=idempotency_key,
                received_at=self.now(),
                retry_count=0,
            )
        except RepositoryException as exc:
            # Another worker inserted the same event first.
            if isinstance(exc.__cause__, IntegrityError):
                existing = self._find_existing_event(
                    source=source,
                    event_id=event_id,
                    idempotency_key=idempotency_key,
                )
                if existing is not None:
                    return self._note_retry(existing, safe_headers)
            raise

    def is_settled(self, event: WebhookEvent) -> bool:
        return event.status in TERMINAL_STATUSES

    @BaseService.measure_operation("webhook_ledger.mark_processing")
    def mark_processing(self, event: WebhookEvent) -> bool:
        """Attempt to claim an event for processing."""
        claimed = self.repository.claim_for_processing(event.id)
        if claimed:
            event.status = "processing"
            event.processing_error = None
            event.processed_at = None
        return claimed

    @BaseService.measure_operation("webhook_ledger.mark_processed")
    def mark_processed(
        self,
        event: WebhookEvent,
        *,
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
        duration_ms: int | None = None,
        status: str = "processed",
    ) -> WebhookEvent:
        """Mark webhook as successfully processed."""
        event.status = status
        event.processed_at = self.now()
        event.related_entity_type = related_entity_type
        event.related_entity_id = related_entity_id
        event.processing_duration_ms = duration_ms
        self.repository.flush()
        return event

    @BaseService.measure_operation("webhook_ledger.mark_failed")
    def mark_failed(
        self,
        event: WebhookEvent,
        *,
        error: str,
        duration_ms: int | None = None,
    ) -> WebhookEvent:
        """Mark webhook as failed so a later delivery or job can claim it."""
        event.status = "failed"
        event.processing_error = error[:2000]
        event.processed_at = self.now()
        event.processing_duration_ms = duration_ms
        self.repository.flush()
        return event

    def get_event(self, ledger_id: str) -> WebhookEvent | None:
        return self.repository.get_event(ledger_id)

    def _sanitize_headers(self, headers: dict[str, Any]) -> dict[str, Any]:
        return {
            key: ("***" if key.lower() in _SENSITIVE_HEADERS else value)
            for key, value in headers.items()
        }

    @staticmethod
    def elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)
