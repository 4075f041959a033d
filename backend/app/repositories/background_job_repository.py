"""Repository for persisted background jobs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.config import settings
from ..core.exceptions import RepositoryException
from ..models.background_job import BackgroundJob

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BackgroundJobRepository:
    """Data access helpers for background_jobs table."""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logger

    def enqueue(
        self,
        *,
        type: str,
        payload: dict[str, Any],
        available_at: datetime | None = None,
    ) -> str:
        """Persist a new job ready for processing."""

        try:
            job_id = str(ulid.ULID())
            job = BackgroundJob(
                id=job_id,
                type=type,
                payload=payload,
                status="queued",
                attempts=0,
                available_at=available_at or _utcnow(),
            )
            self.db.add(job)
            self.db.flush()
            return job_id
        except SQLAlchemyError as exc:
            self.logger.error("Failed to enqueue job %s: %s", type, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to enqueue background job") from exc

    def fetch_due(self, *, limit: int = 50, now: datetime | None = None) -> List[BackgroundJob]:
        """Return queued jobs that are ready to run."""

        try:
            cutoff = now or _utcnow()
            jobs = (
                self.db.query(BackgroundJob)
                .filter(
                    BackgroundJob.status == "queued",
                    BackgroundJob.available_at <= cutoff,
                )
                .order_by(BackgroundJob.available_at.asc())
                .limit(limit)
                .all()
            )
            return cast(List[BackgroundJob], jobs)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to fetch due jobs: %s", str(exc))
            raise RepositoryException("Failed to fetch background jobs") from exc

    def mark_running(self, job_id: str, *, now: datetime | None = None) -> bool:
        """Claim a queued job. Returns False when another runner took it first."""

        try:
            affected = (
                self.db.query(BackgroundJob)
                .filter(BackgroundJob.id == job_id, BackgroundJob.status == "queued")
                .update(
                    {
                        BackgroundJob.status: "running",
                        BackgroundJob.updated_at: now or _utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            return affected == 1
        except SQLAlchemyError as exc:
            self.logger.error("Failed to mark job %s running: %s", job_id, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to mark job running") from exc

    def mark_succeeded(self, job_id: str, *, now: datetime | None = None) -> None:
        """Mark a job as completed successfully."""

        try:
            self.db.query(BackgroundJob).filter(BackgroundJob.id == job_id).update(
                {
                    BackgroundJob.status: "succeeded",
                    BackgroundJob.last_error: None,
                    BackgroundJob.updated_at: now or _utcnow(),
                },
                synchronize_session=False,
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to mark job %s succeeded: %s", job_id, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to mark job succeeded") from exc

    def mark_failed(self, job_id: str, error: str, *, now: datetime | None = None) -> None:
        """
        Increment attempt counters and reschedule a job after a failure.

        Jobs that exhaust ``jobs_max_attempts`` are parked with status
        ``failed`` for manual reconciliation. The backoff is measured from
        ``now`` so it agrees with the clock passed to ``fetch_due``.
        """

        try:
            job = self.db.get(BackgroundJob, job_id)
            if job is None:
                self.logger.warning("Attempted to mark missing job %s failed", job_id)
                return

            current = now or _utcnow()
            attempts = (job.attempts or 0) + 1
            base = settings.jobs_backoff_base
            cap = settings.jobs_backoff_cap
            backoff_seconds = min(cap, base * (2 ** (attempts - 1)))

            job.status = "failed" if attempts >= settings.jobs_max_attempts else "queued"
            job.attempts = attempts
            job.available_at = current + timedelta(seconds=backoff_seconds)
            job.last_error = error[:2000]
            job.updated_at = current

            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to reschedule job %s: %s", job_id, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to reschedule background job") from exc

    def get(self, job_id: str) -> BackgroundJob | None:
        return cast(Optional[BackgroundJob], self.db.get(BackgroundJob, job_id))
