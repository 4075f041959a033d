"""
Database models for the Lumexa booking core.

The models are organized by functionality:
- Identity: User, TeacherProfile, Student
- Scheduling: Slot, Booking
- Conduct: TeacherConductState, CancellationEvent
- Infrastructure: WebhookEvent ledger, BackgroundJob retry queue
"""

from .background_job import BackgroundJob
from .booking import Booking, PaymentStatus
from .conduct import CancellationEvent, CancellationInitiator, TeacherConductState
from .slot import Slot
from .student import Student
from .teacher import TeacherProfile
from .user import User, UserRole
from .webhook_event import WebhookEvent

__all__ = [
    "BackgroundJob",
    "Booking",
    "CancellationEvent",
    "CancellationInitiator",
    "PaymentStatus",
    "Slot",
    "Student",
    "TeacherConductState",
    "TeacherProfile",
    "User",
    "UserRole",
    "WebhookEvent",
]
