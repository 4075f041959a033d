"""
Settlement Service for the Lumexa booking core.

Money is captured only after the video platform reports the recorded class
is complete. The booking is moved PENDING -> CAPTURED by a conditional
UPDATE and committed before the gateway is called, so a redelivered webhook
or a concurrent retry never captures twice. Gateway calls carry idempotency
keys derived from the booking id for the same reason.

Work that fails against a provider is written to the background job table
and drained by ``run_due_jobs``, which an external scheduler calls.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    JOB_CANCELLATION_SETTLEMENT,
    JOB_CAPTURE_PAYMENT,
    JOB_RECORDING_ENDED,
)
from ..core.exceptions import NotFoundException
from ..core.timezone_utils import Clock
from ..integrations.stripe_client import FakeStripeClient, PaymentGatewayError, StripeClient
from ..models.booking import Booking, PaymentStatus
from ..models.webhook_event import WebhookEvent
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .webhook_ledger_service import WebhookLedgerService

logger = logging.getLogger(__name__)

PaymentGateway = Union[StripeClient, FakeStripeClient]


def capture_key(booking_id: str) -> str:
    return f"capture:{booking_id}"


def apply_cancellation_settlement(
    gateway: PaymentGateway,
    *,
    booking_id: str,
    intent_ref: str,
    refund_percent: int,
    refund_cents: int,
) -> str:
    """
    Move money for a cancelled booking.

    100% voids the authorization, 0% captures in full, anything between
    captures and then refunds the refund amount.
    """
    if refund_percent >= 100:
        gateway.cancel(intent_ref, idempotency_key=f"cancel:{booking_id}")
        return "voided"
    gateway.capture(intent_ref, idempotency_key=capture_key(booking_id))
    if refund_cents > 0:
        gateway.refund_partial(
            intent_ref,
            amount_cents=refund_cents,
            idempotency_key=f"refund:{booking_id}",
        )
        return "partially_refunded"
    return "captured"


class SettlementService(BaseService):
    """Captures payment on class completion and runs settlement retries."""

    def __init__(
        self,
        db: Session,
        payment_gateway: PaymentGateway,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.payment_gateway = payment_gateway
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.job_repository = RepositoryFactory.create_background_job_repository(db)
        self.ledger = WebhookLedgerService(db, clock)

    def get_recording(self, booking_id: str) -> Booking:
        """Admin lookup of where a class recording was stored, if anywhere yet."""
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})
        return booking

    @BaseService.measure_operation("handle_recording_ended")
    def handle_recording_ended(self, booking_id: str, location: Optional[str]) -> str:
        """
        Finalize a booking whose recorded class finished.

        Returns a short outcome label. Only a PENDING booking with a payment
        intent is captured; cancelled, failed and already captured bookings
        are left alone.
        """
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            logger.warning(
                "Recording finished for unknown booking %s", booking_id, extra={"booking_id": booking_id}
            )
            return "unknown_booking"

        if location:
            with self.transaction():
                self.booking_repository.set_recording_location(booking_id, location)

        status = booking.payment_status
        if status == PaymentStatus.CAPTURED.value:
            return "already_captured"
        if status != PaymentStatus.PENDING.value:
            logger.info(
                "Recording finished for %s booking %s; nothing to capture",
                status,
                booking_id,
                extra={"booking_id": booking_id, "payment_status": status},
            )
            return "not_capturable"

        intent_ref = booking.payment_intent_ref
        if not intent_ref:
            logger.warning(
                "Booking %s finished without a payment authorization",
                booking_id,
                extra={"booking_id": booking_id},
            )
            return "no_authorization"

        with self.transaction():
            moved = self.booking_repository.transition_payment_status(
                booking_id,
                expected=PaymentStatus.PENDING,
                target=PaymentStatus.CAPTURED,
            )
        if not moved:
            return "already_settled"
        prometheus_metrics.inc_payment_transition(PaymentStatus.CAPTURED.value)

        try:
            self.payment_gateway.capture(intent_ref, idempotency_key=capture_key(booking_id))
        except PaymentGatewayError as exc:
            prometheus_metrics.inc_gateway_failure("stripe", "capture")
            with self.transaction():
                self.booking_repository.record_capture_failure(
                    booking_id, error=exc.message, failed_at=self.now()
                )
                self.job_repository.enqueue(
                    type=JOB_CAPTURE_PAYMENT,
                    payload={"booking_id": booking_id, "intent_ref": intent_ref},
                    available_at=self.now(),
                )
            logger.error(
                "Capture failed for booking %s; retry queued",
                booking_id,
                extra={"booking_id": booking_id, "stripe_code": exc.code},
            )
            return "capture_queued"

        self.log_operation("payment_captured", booking_id=booking_id)
        return "captured"

    def process_recording_event(
        self, event: WebhookEvent, *, booking_id: str, location: Optional[str]
    ) -> str:
        """Run ``handle_recording_ended`` under the webhook ledger's claim."""
        if self.ledger.is_settled(event):
            return "duplicate"
        with self.transaction():
            claimed = self.ledger.mark_processing(event)
        if not claimed:
            return "in_progress"

        start = time.monotonic()
        try:
            outcome = self.handle_recording_ended(booking_id, location)
        except Exception as exc:
            with self.transaction():
                self.ledger.mark_failed(
                    event, error=str(exc), duration_ms=self.ledger.elapsed_ms(start)
                )
            raise

        with self.transaction():
            self.ledger.mark_processed(
                event,
                related_entity_type="booking",
                related_entity_id=booking_id,
                duration_ms=self.ledger.elapsed_ms(start),
            )
        return outcome

    def queue_recording_retry(self, event: WebhookEvent, *, booking_id: str, location: Optional[str]) -> str:
        with self.transaction():
            job_id = self.job_repository.enqueue(
                type=JOB_RECORDING_ENDED,
                payload={"ledger_id": event.id, "booking_id": booking_id, "location": location},
                available_at=self.now(),
            )
        return job_id

    def queue_cancellation_settlement(
        self, *, booking_id: str, intent_ref: str, refund_percent: int, refund_cents: int
    ) -> str:
        with self.transaction():
            job_id = self.job_repository.enqueue(
                type=JOB_CANCELLATION_SETTLEMENT,
                payload={
                    "booking_id": booking_id,
                    "intent_ref": intent_ref,
                    "refund_percent": refund_percent,
                    "refund_cents": refund_cents,
                },
                available_at=self.now(),
            )
        return job_id

    # Background jobs

    def _run_capture_job(self, payload: Dict[str, Any]) -> None:
        booking_id = payload["booking_id"]
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None or booking.payment_status != PaymentStatus.CAPTURED.value:
            logger.info("Skipping capture retry for booking %s", booking_id)
            return
        try:
            self.payment_gateway.capture(
                payload["intent_ref"], idempotency_key=capture_key(booking_id)
            )
        except PaymentGatewayError as exc:
            with self.transaction():
                self.booking_repository.record_capture_failure(
                    booking_id, error=exc.message, failed_at=self.now()
                )
            raise
        with self.transaction():
            self.booking_repository.clear_capture_failure(booking_id)

    def _run_cancellation_job(self, payload: Dict[str, Any]) -> None:
        apply_cancellation_settlement(
            self.payment_gateway,
            booking_id=payload["booking_id"],
            intent_ref=payload["intent_ref"],
            refund_percent=int(payload["refund_percent"]),
            refund_cents=int(payload["refund_cents"]),
        )

    def _run_recording_job(self, payload: Dict[str, Any]) -> None:
        event = self.ledger.get_event(payload["ledger_id"])
        if event is None:
            raise NotFoundException("Webhook event not found", details={"ledger_id": payload["ledger_id"]})
        self.process_recording_event(
            event, booking_id=payload["booking_id"], location=payload.get("location")
        )

    def _dispatch(self, job_type: str, payload: Dict[str, Any]) -> None:
        handlers = {
            JOB_CAPTURE_PAYMENT: self._run_capture_job,
            JOB_CANCELLATION_SETTLEMENT: self._run_cancellation_job,
            JOB_RECORDING_ENDED: self._run_recording_job,
        }
        handler = handlers.get(job_type)
        if handler is None:
            raise ValueError(f"Unknown job type: {job_type}")
        handler(payload)

    @BaseService.measure_operation("run_due_jobs")
    def run_due_jobs(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Drain due jobs once. Failed jobs are rescheduled with backoff."""
        summary = {"succeeded": 0, "failed": 0, "skipped": 0}
        jobs = self.job_repository.fetch_due(limit=limit or settings.jobs_batch, now=self.now())
        for job in jobs:
            job_id, job_type, payload = job.id, job.type, dict(job.payload or {})
            with self.transaction():
                claimed = self.job_repository.mark_running(job_id, now=self.now())
            if not claimed:
                summary["skipped"] += 1
                continue
            try:
                self._dispatch(job_type, payload)
            except Exception as exc:
                logger.error(
                    "Background job %s (%s) failed: %s",
                    job_id,
                    job_type,
                    str(exc),
                    extra={"job_id": job_id, "job_type": job_type},
                )
                with self.transaction():
                    self.job_repository.mark_failed(job_id, str(exc), now=self.now())
                summary["failed"] += 1
            else:
                with self.transaction():
                    self.job_repository.mark_succeeded(job_id, now=self.now())
                summary["succeeded"] += 1
        return summary
