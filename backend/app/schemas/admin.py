"""Admin action schemas."""

from typing import Optional

from pydantic import ConfigDict, Field

from ..core.constants import MAX_REASON_LENGTH
from ._strict_base import StrictModel, StrictRequestModel


class ConductStateResponse(StrictModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    teacher_id: str
    strike_count: int
    is_suspended: bool


class SuspendTeacherRequest(StrictRequestModel):
    reason: str = Field(..., min_length=1, max_length=MAX_REASON_LENGTH)


class RecordingResponse(StrictModel):
    """
    Recording references for a booking.

    ``recording_session_ref`` is set when the first participant joins;
    ``recording_location`` once the platform reports the recording finished.
    """

    booking_id: str
    recording_session_ref: Optional[str] = None
    recording_location: Optional[str] = None
