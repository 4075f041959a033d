"""Who is acting on a booking.

A caller's relationship to a booking is resolved once from the booking's
slot teacher and the student's parent. Services branch on the actor type
instead of comparing ids in several places.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from app.models.conduct import CancellationInitiator


@dataclass(frozen=True)
class TeacherActor:
    user_id: str
    teacher_id: str

    @property
    def initiator(self) -> CancellationInitiator:
        return CancellationInitiator.TEACHER

    @property
    def video_role(self) -> str:
        return "host"


@dataclass(frozen=True)
class ParentActor:
    user_id: str
    student_id: str

    @property
    def initiator(self) -> CancellationInitiator:
        return CancellationInitiator.STUDENT

    @property
    def video_role(self) -> str:
        return "guest"


Actor = Union[TeacherActor, ParentActor]


def resolve_booking_actor(booking: Any, user_id: str) -> Optional[Actor]:
    """Return the caller's role on ``booking``, or None for outsiders."""
    teacher = booking.slot.teacher
    if teacher is not None and teacher.user_id == user_id:
        return TeacherActor(user_id=user_id, teacher_id=teacher.id)
    student = booking.student
    if student is not None and student.parent_id == user_id:
        return ParentActor(user_id=user_id, student_id=student.id)
    return None
