# backend/app/schemas/__init__.py
"""
Pydantic schemas for the Lumexa booking core.
"""

from .admin import ConductStateResponse
from .booking import (
    BookingCancel,
    BookingCreate,
    BookingCreateResponse,
    BookingResponse,
    CancellationResponse,
    VerificationCodeResponse,
)
from .health import HealthLiteResponse, HealthResponse
from .hundredms_webhook import RecordingWebhookData, RecordingWebhookPayload
from .payments import PayoutOnboardingResponse, PayoutStatusResponse
from .slot import SlotCreate, SlotResponse, SlotUpdate
from .video import VideoJoinResponse
from .webhook_responses import WebhookAckResponse

__all__ = [
    "BookingCancel",
    "BookingCreate",
    "BookingCreateResponse",
    "BookingResponse",
    "CancellationResponse",
    "ConductStateResponse",
    "HealthLiteResponse",
    "HealthResponse",
    "PayoutOnboardingResponse",
    "PayoutStatusResponse",
    "RecordingWebhookData",
    "RecordingWebhookPayload",
    "SlotCreate",
    "SlotResponse",
    "SlotUpdate",
    "VerificationCodeResponse",
    "VideoJoinResponse",
    "WebhookAckResponse",
]
