"""Video class schemas."""

from __future__ import annotations

from ._strict_base import StrictModel


class VideoJoinResponse(StrictModel):
    """Response from POST /api/v1/bookings/{booking_id}/join."""

    auth_token: str
    room_id: str
    room_name: str
    role: str
    booking_id: str
    expires_in_seconds: int
    recording_started: bool
