"""Slot request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AwareDatetime, ConfigDict, Field, model_validator

from ._strict_base import StrictModel, StrictRequestModel


class SlotCreate(StrictRequestModel):
    """Body of POST /api/v1/slots. Times must carry a UTC offset."""

    start_at: AwareDatetime
    end_at: AwareDatetime


class SlotUpdate(StrictRequestModel):
    """Body of PATCH /api/v1/slots/{slot_id}. Omitted fields keep their value."""

    start_at: Optional[AwareDatetime] = None
    end_at: Optional[AwareDatetime] = None

    @model_validator(mode="after")
    def _require_a_change(self) -> "SlotUpdate":
        if self.start_at is None and self.end_at is None:
            raise ValueError("Provide start_at and/or end_at")
        return self


class SlotResponse(StrictModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str
    teacher_id: str
    start_at: datetime
    end_at: datetime
    is_booked: bool


class MarketplaceTeacher(StrictModel):
    teacher_id: str
    full_name: str
    hourly_rate_cents: int
    slots: List[SlotResponse]


class MarketplaceResponse(StrictModel):
    """One page of bookable teachers, each with its next open slots."""

    items: List[MarketplaceTeacher]
    total: int
    page: int = Field(ge=1)
    per_page: int = Field(ge=1)
    has_next: bool
    has_prev: bool
