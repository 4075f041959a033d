"""VideoService: admission to live classes.

Validates the caller and the join window, mints a room-scoped access token
for the 100ms room named after the booking, and starts the class recording
exactly once. Recording problems never block a join.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import logging
from typing import Optional, Union

from sqlalchemy.orm import Session
import ulid

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    ExternalServiceException,
    ForbiddenException,
    NotFoundException,
    SessionEndedException,
    TooEarlyException,
)
from ..core.timezone_utils import Clock, ensure_utc
from ..domain.actors import resolve_booking_actor
from ..domain.video_utils import join_opens_at, minutes_until, token_ttl_seconds
from ..integrations.hundredms_client import (
    FakeHundredMsClient,
    HundredMsClient,
    HundredMsError,
    VideoAccessGrant,
)
from ..models.booking import PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

VideoPlatform = Union[HundredMsClient, FakeHundredMsClient]

_CLOSED_STATUSES = {PaymentStatus.REFUNDED.value, PaymentStatus.FAILED.value}


@dataclass(frozen=True)
class JoinResult:
    booking_id: str
    role: str
    grant: VideoAccessGrant
    recording_started: bool


class VideoService(BaseService):
    """Service layer for video class admission."""

    def __init__(
        self,
        db: Session,
        hundredms_client: VideoPlatform,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(db, clock)
        self.hundredms_client = hundredms_client
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("join_session")
    def join_session(self, booking_id: str, user_id: str) -> JoinResult:
        """
        Admit a participant to the class room.

        The window is [start - join lead, end] on the server clock. The
        token lives until the class ends plus a short grace period.
        """
        booking = self.booking_repository.get_with_context(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})

        actor = resolve_booking_actor(booking, user_id)
        if actor is None:
            raise ForbiddenException("You are not a participant of this booking")

        if booking.payment_status in _CLOSED_STATUSES:
            raise ConflictException(
                "Booking is no longer active",
                code="BOOKING_INACTIVE",
                details={"payment_status": booking.payment_status},
            )

        now = self.now()
        start_at = ensure_utc(booking.slot.start_at)
        end_at = ensure_utc(booking.slot.end_at)
        opens_at = join_opens_at(start_at, settings.join_lead_minutes)
        if now < opens_at:
            raise TooEarlyException(minutes_until(now, opens_at))
        if now > end_at:
            raise SessionEndedException()

        ttl = token_ttl_seconds(now, end_at, settings.video_token_grace_seconds)
        try:
            grant = self.hundredms_client.mint_access_token(
                identity=user_id,
                room_name=booking.id,
                role=actor.video_role,
                ttl_seconds=ttl,
                grants=("publish", "subscribe"),
            )
        except HundredMsError as e:
            prometheus_metrics.inc_gateway_failure("hundredms", "mint_access_token")
            logger.error(
                "100ms token minting failed for booking %s user %s: %s",
                booking_id,
                user_id,
                e.message,
                extra={"status_code": e.status_code},
            )
            raise ExternalServiceException("hundredms") from e

        recording_started = self._start_recording_once(booking.id)
        self.log_operation("join_session", booking_id=booking.id, role=actor.video_role)
        return JoinResult(
            booking_id=booking.id,
            role=actor.video_role,
            grant=grant,
            recording_started=recording_started,
        )

    def _start_recording_once(self, booking_id: str) -> bool:
        """
        Start the class recording if nobody has yet.

        Only the caller that wins the claim talks to the video platform; the
        session ref is then written with IS NULL as a guard. Returns True when
        this call started the recording.
        """
        claim_id = str(ulid.ULID())
        now = self.now()
        stale_before = now - timedelta(seconds=settings.recording_claim_timeout_seconds)
        with self.transaction():
            claimed = self.booking_repository.claim_recording_start(
                booking_id, claim_id, now=now, stale_before=stale_before
            )
        if not claimed:
            return False

        try:
            session_ref = self.hundredms_client.start_recording(room_name=booking_id)
        except HundredMsError as e:
            prometheus_metrics.inc_gateway_failure("hundredms", "start_recording")
            logger.warning(
                "Recording start failed for booking %s: %s",
                booking_id,
                e.message,
                extra={"booking_id": booking_id, "status_code": e.status_code},
            )
            with self.transaction():
                self.booking_repository.release_recording_claim(booking_id, claim_id)
            return False

        with self.transaction():
            stored = self.booking_repository.set_recording_session_ref(booking_id, session_ref)
            self.booking_repository.release_recording_claim(booking_id, claim_id)
        if not stored:
            logger.warning(
                "Recording session ref already set for booking %s; keeping the first one",
                booking_id,
                extra={"booking_id": booking_id, "discarded_ref": session_ref},
            )
        return stored
