# backend/app/services/notification_service.py
"""
Notification Dispatcher for the Lumexa booking core.

Sends the booking emails through Resend, rendered from the Jinja2
templates in ``app/templates/email``. Delivery is fire-and-forget: a failed
send is logged and reported as False, it never fails the booking operation
that triggered it. Without a Resend API key emails are logged instead of sent.
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError
import resend

from ..core.config import settings
from ..core.constants import BRAND_NAME, MAX_STRIKES
from ..core.timezone_utils import ensure_utc
from ..models.booking import Booking
from ..models.conduct import TeacherConductState
from ..models.teacher import TeacherProfile
from .refund_policy_engine import RefundDecision

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


def _cents(value: int) -> str:
    return f"${value / 100:,.2f}"


def _format_datetime(value: datetime) -> str:
    return ensure_utc(value).strftime("%B %d, %Y at %H:%M UTC")


def _build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(_TEMPLATE_DIR),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["cents"] = _cents
    env.filters["format_datetime"] = _format_datetime
    return env


class NotificationService:
    """Renders and sends booking lifecycle emails."""

    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.from_address = from_address or settings.email_from_address
        self.env = _build_environment()
        if self.api_key:
            resend.api_key = self.api_key
        else:
            logger.info("Resend API key not configured; emails will be logged only")

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self.env.get_template(f"email/{template_name}.html")
        return template.render(brand_name=BRAND_NAME, **context)

    def _send(self, *, to_email: str, subject: str, template_name: str, context: Dict[str, Any]) -> bool:
        try:
            html_content = self.render(template_name, context)
        except TemplateError as exc:
            logger.error("Failed to render %s email: %s", template_name, exc)
            return False

        if not self.api_key:
            logger.info(
                "Email (not sent): %s -> %s",
                subject,
                to_email,
                extra={"template": template_name, "to_email": to_email},
            )
            return True

        try:
            resend.Emails.send(
                {
                    "from": self.from_address,
                    "to": to_email,
                    "subject": subject,
                    "html": html_content,
                }
            )
        except Exception as exc:
            logger.error(
                "Failed to send %s email to %s: %s",
                template_name,
                to_email,
                str(exc),
                extra={"template": template_name},
            )
            return False

        logger.info("Email sent to %s - Subject: %s", to_email, subject)
        return True

    def send_booking_confirmed(self, booking: Booking) -> bool:
        parent = booking.student.parent
        teacher_user = booking.slot.teacher.user
        return self._send(
            to_email=parent.email,
            subject=f"{BRAND_NAME}: class booked for {booking.student.name}",
            template_name="booking_confirmed",
            context={
                "recipient_name": parent.full_name or parent.email,
                "student_name": booking.student.name,
                "teacher_name": teacher_user.full_name or teacher_user.email,
                "start_at": booking.slot.start_at,
                "amount_cents": booking.amount_cents,
            },
        )

    def send_cancellation_notice(
        self,
        booking: Booking,
        refund: RefundDecision,
        *,
        cancelled_by_teacher: bool,
        reason: Optional[str] = None,
    ) -> bool:
        """Notify the party that did not cancel; the parent always hears about refunds."""
        parent = booking.student.parent
        teacher_user = booking.slot.teacher.user
        recipient = parent if cancelled_by_teacher else teacher_user
        sent = self._send(
            to_email=recipient.email,
            subject=f"{BRAND_NAME}: class cancelled",
            template_name="cancellation_notice",
            context={
                "recipient_name": recipient.full_name or recipient.email,
                "start_at": booking.slot.start_at,
                "cancelled_by_teacher": cancelled_by_teacher,
                "refund_cents": refund.refund_cents if recipient is parent else 0,
                "refund_percent": refund.refund_percent,
                "amount_cents": booking.amount_cents,
                "reason": reason,
            },
        )
        if recipient is not parent and refund.refund_cents > 0:
            sent = self._send(
                to_email=parent.email,
                subject=f"{BRAND_NAME}: refund for cancelled class",
                template_name="cancellation_notice",
                context={
                    "recipient_name": parent.full_name or parent.email,
                    "start_at": booking.slot.start_at,
                    "cancelled_by_teacher": False,
                    "refund_cents": refund.refund_cents,
                    "refund_percent": refund.refund_percent,
                    "amount_cents": booking.amount_cents,
                    "reason": None,
                },
            ) and sent
        return sent

    def send_strike_warning(self, teacher: TeacherProfile, state: TeacherConductState) -> bool:
        user = teacher.user
        subject = (
            f"{BRAND_NAME}: account suspended"
            if state.is_suspended
            else f"{BRAND_NAME}: cancellation strike {state.strike_count} of {MAX_STRIKES}"
        )
        return self._send(
            to_email=user.email,
            subject=subject,
            template_name="strike_warning",
            context={
                "recipient_name": user.full_name or user.email,
                "strike_count": state.strike_count,
                "max_strikes": MAX_STRIKES,
                "is_suspended": state.is_suspended,
            },
        )
