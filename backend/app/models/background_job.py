# backend/app/models/background_job.py
"""Persisted background jobs for retryable settlement work."""

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from ..database import Base


class BackgroundJob(Base):
    """
    Queued unit of work drained by SettlementService.run_due_jobs.

    Status flow: queued -> running -> succeeded, or back to queued with
    exponential backoff, or failed once attempts are exhausted.
    """

    __tablename__ = "background_jobs"

    id = Column(String(26), primary_key=True, index=True)
    type = Column(String(64), nullable=False)
    payload = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=False,
    )
    status = Column(String(20), nullable=False, default="queued", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    available_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
