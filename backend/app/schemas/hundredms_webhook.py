"""Inbound 100ms webhook payloads.

Only the fields the settlement path reads are declared; 100ms adds fields
over time, so unknown keys are kept rather than rejected.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

RECORDING_EVENT_TYPES = frozenset({"recording.success", "beam.recording.success"})


class RecordingWebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    room_name: Optional[str] = None
    room_id: Optional[str] = None
    session_id: Optional[str] = None
    location: Optional[str] = None
    recording_path: Optional[str] = None

    @property
    def recording_location(self) -> Optional[str]:
        return self.location or self.recording_path


class RecordingWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = None
    data: RecordingWebhookData = Field(default_factory=RecordingWebhookData)

    @property
    def is_recording_finished(self) -> bool:
        return self.type in RECORDING_EVENT_TYPES
