# backend/app/services/booking_service.py
"""
Booking Orchestrator for the Lumexa booking core.

Creating a booking reserves the slot and inserts the PENDING booking in one
transaction, then authorizes (never captures) payment once the transaction
has committed. Cancelling runs the refund and strike policy, moves the
booking PENDING -> REFUNDED, releases the slot and records the cancellation
in one transaction, then moves money through the gateway.

No database transaction is held open across a gateway call. Gateway
failures after a commit are queued as background jobs instead of undoing
the booking change.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import hashlib
import hmac
import logging
from typing import Callable, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    ExternalServiceException,
    ForbiddenException,
    InvalidPaymentTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import Clock, ensure_utc, hours_between
from ..domain.actors import ParentActor, TeacherActor, resolve_booking_actor
from ..integrations.stripe_client import (
    FakeStripeClient,
    OnboardingLink,
    PaymentGatewayError,
    StripeClient,
)
from ..models.booking import Booking, PaymentStatus
from ..models.conduct import CancellationInitiator, TeacherConductState
from ..models.teacher import TeacherProfile
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .conduct_ledger import ConductLedgerService
from .notification_service import NotificationService
from .refund_policy_engine import RefundDecision, StrikeDecision, calculate_refund, decide_strike
from .settlement_service import SettlementService, apply_cancellation_settlement
from .slot_ledger import SlotLedgerService

logger = logging.getLogger(__name__)

PaymentGateway = Union[StripeClient, FakeStripeClient]


@dataclass(frozen=True)
class BookingCreated:
    booking: Booking
    client_secret: Optional[str]


@dataclass(frozen=True)
class CancellationOutcome:
    booking: Booking
    initiator: CancellationInitiator
    hours_before_class: float
    refund: RefundDecision
    strike: StrikeDecision
    conduct_state: Optional[TeacherConductState]
    settlement: str


def booking_amount_cents(hourly_rate_cents: int, duration_minutes: int) -> int:
    """Price of a slot at the teacher's hourly rate, rounded half-up to a cent."""
    return (hourly_rate_cents * duration_minutes + 30) // 60


def platform_fee_cents(amount_cents: int, fee_percentage: float) -> int:
    fee = Decimal(amount_cents) * Decimal(str(fee_percentage)) / Decimal(100)
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def student_verification_code(booking_id: str) -> str:
    """Deterministic per-booking code a parent hands to the teacher."""
    digits = settings.student_verification_code_digits
    digest = hmac.new(
        settings.secret_key.get_secret_value().encode("utf-8"),
        f"student-cancellation:{booking_id}".encode("utf-8"),
        hashlib.sha256,
    ).digest()
    number = int.from_bytes(digest[:8], "big") % (10**digits)
    return f"{number:0{digits}d}"


class BookingService(BaseService):
    """Service layer for the booking lifecycle."""

    def __init__(
        self,
        db: Session,
        payment_gateway: PaymentGateway,
        notification_service: Optional[NotificationService] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.payment_gateway = payment_gateway
        self.notification_service = notification_service or NotificationService()
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.student_repository = RepositoryFactory.create_student_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_profile_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.conduct_ledger = ConductLedgerService(db, clock)
        self.slot_ledger = SlotLedgerService(db, clock, conduct_ledger=self.conduct_ledger)
        self.settlement = SettlementService(db, payment_gateway, clock)

    # Helpers

    def _load_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_with_context(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})
        return booking

    def _notify(self, label: str, send: Callable[[], bool]) -> None:
        try:
            send()
        except Exception as e:
            logger.error(f"Failed to send {label} notification: {str(e)}")

    def _teacher_for_user(self, user_id: str) -> TeacherProfile:
        teacher = self.teacher_repository.get_by_user_id(user_id)
        if teacher is None:
            raise ForbiddenException("Only teachers can manage payouts")
        return teacher

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(self, caller_id: str, student_id: str, slot_id: str) -> BookingCreated:
        """
        Book a slot for a student and authorize payment.

        The reservation and the PENDING booking commit together. A gateway
        failure afterwards moves the booking to FAILED and frees the slot.
        """
        student = self.student_repository.get_by_id(student_id)
        if student is None:
            raise NotFoundException("Student not found", details={"student_id": student_id})
        if student.parent_id != caller_id:
            raise ForbiddenException("You can only book classes for your own students")

        slot = self.slot_repository.get_by_id(slot_id)
        if slot is None:
            raise NotFoundException("Slot not found", details={"slot_id": slot_id})
        if ensure_utc(slot.start_at) <= self.now():
            raise ValidationException("Slot has already started", code="SLOT_IN_PAST")

        teacher = slot.teacher
        self.conduct_ledger.ensure_not_suspended(teacher.id)

        amount = booking_amount_cents(teacher.hourly_rate_cents, slot.duration_minutes)
        fee = platform_fee_cents(amount, settings.stripe_platform_fee_percentage)

        with self.transaction():
            self.slot_ledger.reserve(slot.id)
            booking = self.booking_repository.create(
                slot_id=slot.id,
                student_id=student.id,
                payment_status=PaymentStatus.PENDING.value,
                amount_cents=amount,
                platform_fee_cents=fee,
                refunded_cents=0,
            )
        booking_id = booking.id
        self.log_operation("booking_reserved", booking_id=booking_id, slot_id=slot.id)

        client_secret = self._authorize(booking_id, slot.id, student.id, teacher, amount, fee)

        booking = self._load_booking(booking_id)
        self._notify(
            "booking_confirmed",
            lambda: self.notification_service.send_booking_confirmed(booking),
        )
        return BookingCreated(booking=booking, client_secret=client_secret)

    def _authorize(
        self,
        booking_id: str,
        slot_id: str,
        student_id: str,
        teacher: TeacherProfile,
        amount: int,
        fee: int,
    ) -> Optional[str]:
        if not teacher.can_receive_payouts:
            logger.warning(
                "Teacher %s has no payout destination; booking %s left unauthorized",
                teacher.id,
                booking_id,
                extra={"booking_id": booking_id, "teacher_id": teacher.id},
            )
            return None

        try:
            authorization = self.payment_gateway.authorize(
                amount_cents=amount,
                application_fee_cents=fee,
                destination_account_id=teacher.stripe_account_id,
                metadata={
                    "booking_id": booking_id,
                    "slot_id": slot_id,
                    "student_id": student_id,
                    "teacher_id": teacher.id,
                },
                idempotency_key=f"authorize:{booking_id}",
            )
        except PaymentGatewayError as exc:
            prometheus_metrics.inc_gateway_failure("stripe", "authorize")
            with self.transaction():
                failed = self.booking_repository.transition_payment_status(
                    booking_id,
                    expected=PaymentStatus.PENDING,
                    target=PaymentStatus.FAILED,
                )
                if failed:
                    self.slot_ledger.release(slot_id)
            if failed:
                prometheus_metrics.inc_payment_transition(PaymentStatus.FAILED.value)
            logger.error(
                "Payment authorization failed for booking %s",
                booking_id,
                extra={"booking_id": booking_id, "stripe_code": exc.code},
            )
            raise ExternalServiceException("stripe") from exc

        with self.transaction():
            self.booking_repository.attach_payment_intent(booking_id, authorization.intent_ref)
        return authorization.client_secret

    # Cancellation

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        caller_id: str,
        booking_id: str,
        claimed_initiator: Optional[CancellationInitiator] = None,
        reason: Optional[str] = None,
        student_verification_code: Optional[str] = None,
    ) -> CancellationOutcome:
        """
        Cancel a PENDING booking on behalf of its teacher or the student's parent.

        The initiator comes from who the caller is, never from the request.
        A teacher records a student-requested cancellation by presenting the
        verification code issued to the parent.
        """
        booking = self._load_booking(booking_id)
        actor = resolve_booking_actor(booking, caller_id)
        if actor is None:
            raise ForbiddenException("You are not a participant of this booking")

        initiator = actor.initiator
        if isinstance(actor, TeacherActor) and student_verification_code:
            if not self.verify_student_code(booking.id, student_verification_code):
                raise ForbiddenException(
                    "Invalid student verification code", code="INVALID_VERIFICATION_CODE"
                )
            initiator = CancellationInitiator.STUDENT

        if claimed_initiator is not None and claimed_initiator != initiator:
            logger.warning(
                "Cancellation initiator claim %s ignored for booking %s; caller resolved as %s",
                claimed_initiator.value,
                booking.id,
                initiator.value,
                extra={"booking_id": booking.id, "caller_id": caller_id},
            )

        return self._cancel(
            booking,
            initiator=initiator,
            cancelled_by_id=caller_id,
            reason=reason,
            is_no_show=False,
        )

    @BaseService.measure_operation("record_teacher_no_show")
    def record_teacher_no_show(self, admin_id: str, booking_id: str) -> CancellationOutcome:
        """Admin action: the teacher never showed up. Full refund plus a strike."""
        admin = self.user_repository.get_active(admin_id)
        if admin is None or not admin.is_admin:
            raise ForbiddenException("Admin access required")
        booking = self._load_booking(booking_id)
        if self.now() < ensure_utc(booking.slot.start_at):
            raise ValidationException(
                "A no-show can only be recorded after the class start", code="CLASS_NOT_STARTED"
            )
        return self._cancel(
            booking,
            initiator=CancellationInitiator.TEACHER,
            cancelled_by_id=admin_id,
            reason="Teacher no-show",
            is_no_show=True,
        )

    def _cancel(
        self,
        booking: Booking,
        *,
        initiator: CancellationInitiator,
        cancelled_by_id: str,
        reason: Optional[str],
        is_no_show: bool,
    ) -> CancellationOutcome:
        if booking.payment_status != PaymentStatus.PENDING.value:
            raise InvalidPaymentTransitionException(
                booking.id, booking.payment_status, PaymentStatus.REFUNDED.value
            )

        now = self.now()
        teacher_id = booking.slot.teacher_id
        hours = hours_between(now, booking.slot.start_at)
        refund = calculate_refund(booking.amount_cents, hours, is_no_show)

        conduct_state: Optional[TeacherConductState] = None
        with self.transaction():
            # The teacher row lock (PostgreSQL) and the booking write (SQLite)
            # serialize the monthly count per teacher.
            self.teacher_repository.get_by_id(teacher_id, for_update=True)
            moved = self.booking_repository.transition_payment_status(
                booking.id,
                expected=PaymentStatus.PENDING,
                target=PaymentStatus.REFUNDED,
                refunded_cents=refund.refund_cents,
                cancelled_at=now,
                cancelled_by_id=cancelled_by_id,
                cancellation_reason=reason,
            )
            if not moved:
                self.db.refresh(booking)
                raise InvalidPaymentTransitionException(
                    booking.id, booking.payment_status, PaymentStatus.REFUNDED.value
                )
            self.slot_ledger.release(booking.slot_id)
            prior = (
                self.conduct_ledger.teacher_cancellations_this_month(teacher_id)
                if initiator == CancellationInitiator.TEACHER
                else 0
            )
            strike = decide_strike(
                initiator,
                hours,
                prior,
                self.conduct_ledger.free_cancellations_per_month,
            )
            self.conduct_ledger.record_cancellation(
                booking_id=booking.id,
                teacher_id=teacher_id,
                initiator=initiator,
                hours_before_class=hours,
                refund=refund,
                strike=strike,
                is_no_show=is_no_show,
            )
            if strike.issue_strike:
                conduct_state = self.conduct_ledger.issue_strike(
                    teacher_id, reason=strike.policy_basis
                )

        prometheus_metrics.inc_payment_transition(PaymentStatus.REFUNDED.value)
        self.log_operation(
            "booking_cancelled",
            booking_id=booking.id,
            initiator=initiator.value,
            refund_percent=refund.refund_percent,
            strike_issued=strike.issue_strike,
        )

        settlement = self._settle_cancellation(booking, refund)

        self._notify(
            "cancellation_notice",
            lambda: self.notification_service.send_cancellation_notice(
                booking,
                refund,
                cancelled_by_teacher=initiator == CancellationInitiator.TEACHER,
                reason=reason,
            ),
        )
        if conduct_state is not None:
            state = conduct_state
            self._notify(
                "strike_warning",
                lambda: self.notification_service.send_strike_warning(booking.slot.teacher, state),
            )

        return CancellationOutcome(
            booking=booking,
            initiator=initiator,
            hours_before_class=hours,
            refund=refund,
            strike=strike,
            conduct_state=conduct_state,
            settlement=settlement,
        )

    def _settle_cancellation(self, booking: Booking, refund: RefundDecision) -> str:
        intent_ref = booking.payment_intent_ref
        if not intent_ref:
            return "no_authorization"
        try:
            return apply_cancellation_settlement(
                self.payment_gateway,
                booking_id=booking.id,
                intent_ref=intent_ref,
                refund_percent=refund.refund_percent,
                refund_cents=refund.refund_cents,
            )
        except PaymentGatewayError as exc:
            prometheus_metrics.inc_gateway_failure("stripe", exc.operation or "cancellation")
            self.settlement.queue_cancellation_settlement(
                booking_id=booking.id,
                intent_ref=intent_ref,
                refund_percent=refund.refund_percent,
                refund_cents=refund.refund_cents,
            )
            logger.error(
                "Cancellation settlement failed for booking %s; retry queued",
                booking.id,
                extra={"booking_id": booking.id, "stripe_code": exc.code},
            )
            return "queued"

    # Student verification code

    @BaseService.measure_operation("issue_student_verification_code")
    def issue_student_verification_code(self, caller_id: str, booking_id: str) -> str:
        booking = self._load_booking(booking_id)
        actor = resolve_booking_actor(booking, caller_id)
        if not isinstance(actor, ParentActor):
            raise ForbiddenException("Only the student's parent can request this code")
        if booking.payment_status != PaymentStatus.PENDING.value:
            raise ConflictException(
                "Booking can no longer be cancelled", code="BOOKING_NOT_CANCELLABLE"
            )
        return student_verification_code(booking.id)

    def verify_student_code(self, booking_id: str, code: str) -> bool:
        return hmac.compare_digest(student_verification_code(booking_id), code.strip())

    # Payout onboarding

    @BaseService.measure_operation("start_payout_onboarding")
    def start_payout_onboarding(self, caller_id: str) -> OnboardingLink:
        teacher = self._teacher_for_user(caller_id)
        try:
            link = self.payment_gateway.create_payout_onboarding_link(
                teacher_id=teacher.id,
                email=teacher.user.email,
                existing_account_id=teacher.stripe_account_id,
                refresh_url=settings.connect_refresh_url,
                return_url=settings.connect_return_url,
            )
        except PaymentGatewayError as exc:
            prometheus_metrics.inc_gateway_failure("stripe", "onboarding_link")
            raise ExternalServiceException("stripe") from exc

        if link.account_id != teacher.stripe_account_id:
            with self.transaction():
                self.teacher_repository.set_payout_account(
                    teacher.id, link.account_id, onboarded=False
                )
        return link

    @BaseService.measure_operation("refresh_payout_status")
    def refresh_payout_status(self, caller_id: str) -> TeacherProfile:
        teacher = self._teacher_for_user(caller_id)
        if not teacher.stripe_account_id:
            return teacher
        try:
            onboarded = self.payment_gateway.is_account_onboarded(teacher.stripe_account_id)
        except PaymentGatewayError as exc:
            prometheus_metrics.inc_gateway_failure("stripe", "account_status")
            raise ExternalServiceException("stripe") from exc

        if onboarded != teacher.stripe_onboarded:
            with self.transaction():
                self.teacher_repository.set_payout_account(
                    teacher.id, teacher.stripe_account_id, onboarded=onboarded
                )
        return teacher
