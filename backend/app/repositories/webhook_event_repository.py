"""Repository helpers for webhook event ledger."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import RepositoryException
from app.models.webhook_event import WebhookEvent
from app.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)

_CLAIMABLE_STATUSES = ("received", "failed")


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook ledger queries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def get_event(self, event_id: str) -> WebhookEvent | None:
        return self.get_by_id(event_id)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> WebhookEvent | None:
        try:
            return (
                self._build_query()
                .filter(WebhookEvent.source == source, WebhookEvent.event_id == event_id)
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to look up webhook %s/%s: %s", source, event_id, exc)
            raise RepositoryException("Failed to look up webhook event") from exc

    def find_by_source_and_idempotency_key(
        self, source: str, idempotency_key: str
    ) -> WebhookEvent | None:
        try:
            return (
                self._build_query()
                .filter(
                    WebhookEvent.source == source,
                    WebhookEvent.idempotency_key == idempotency_key,
                )
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to look up webhook %s/%s: %s", source, idempotency_key, exc)
            raise RepositoryException("Failed to look up webhook event") from exc

    def claim_for_processing(self, ledger_id: str) -> bool:
        """Move a received/failed event to processing; False if someone else holds it."""
        affected = self._conditional_update(
            [WebhookEvent.id == ledger_id, WebhookEvent.status.in_(_CLAIMABLE_STATUSES)],
            {"status": "processing", "processing_error": None, "processed_at": None},
        )
        return affected == 1
