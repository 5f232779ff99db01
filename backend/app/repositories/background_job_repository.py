"""Repository for persisted background jobs (the domain-event outbox)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, List, cast

from sqlalchemy import and_, or_
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.config import settings
from ..core.exceptions import RepositoryException
from ..database.session_utils import get_dialect_name
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
        payload: Any,
        available_at: datetime | None = None,
    ) -> str:
        """Persist a new job ready for processing in the caller's transaction."""

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
        except OperationalError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("Failed to enqueue job %s: %s", type, str(exc))
            raise RepositoryException("Failed to enqueue background job") from exc

    def fetch_due(self, *, limit: int = 50) -> List[BackgroundJob]:
        """
        Return queued jobs that are ready to run, oldest first.

        Jobs stuck in ``running`` past the lease (the worker that claimed them
        died mid-batch) are handed out again.

        On PostgreSQL the rows are locked with SKIP LOCKED so several worker
        processes can drain the outbox without handing out the same event twice.
        """

        now = _utcnow()
        lease_expired_at = now - timedelta(seconds=settings.jobs_running_lease_seconds)
        try:
            query = (
                self.db.query(BackgroundJob)
                .filter(
                    or_(
                        and_(
                            BackgroundJob.status == "queued",
                            BackgroundJob.available_at <= now,
                        ),
                        and_(
                            BackgroundJob.status == "running",
                            BackgroundJob.updated_at <= lease_expired_at,
                        ),
                    )
                )
                .order_by(BackgroundJob.available_at.asc(), BackgroundJob.id.asc())
                .limit(limit)
            )
            if get_dialect_name(self.db) == "postgresql":
                query = query.with_for_update(skip_locked=True)
            jobs = cast(List[BackgroundJob], query.all())
            for job in jobs:
                if job.status == "running":
                    self.logger.warning("Reclaiming job %s after its lease expired", job.id)
            return jobs
        except SQLAlchemyError as exc:
            self.logger.error("Failed to fetch due jobs: %s", str(exc))
            raise RepositoryException("Failed to fetch background jobs") from exc

    def _set_status(self, job_id: str, status: str) -> None:
        self.db.query(BackgroundJob).filter(BackgroundJob.id == job_id).update(
            {BackgroundJob.status: status, BackgroundJob.updated_at: _utcnow()}
        )

    def mark_running(self, job_id: str) -> None:
        try:
            self._set_status(job_id, "running")
        except SQLAlchemyError as exc:
            self.logger.error("Failed to mark job %s running: %s", job_id, str(exc))
            raise RepositoryException("Failed to mark job running") from exc

    def mark_succeeded(self, job_id: str) -> None:
        try:
            self._set_status(job_id, "succeeded")
        except SQLAlchemyError as exc:
            self.logger.error("Failed to mark job %s succeeded: %s", job_id, str(exc))
            raise RepositoryException("Failed to mark job succeeded") from exc

    def mark_failed(self, job_id: str, error: str) -> None:
        """Increment attempt counters and reschedule a job after a failure."""

        try:
            job = self.db.get(BackgroundJob, job_id)
            if job is None:
                self.logger.warning("Attempted to mark missing job %s failed", job_id)
                return

            attempts = (job.attempts or 0) + 1
            backoff_seconds = min(
                settings.jobs_backoff_cap, settings.jobs_backoff_base * (2 ** (attempts - 1))
            )

            job.status = "queued"
            job.attempts = attempts
            job.available_at = _utcnow() + timedelta(seconds=backoff_seconds)
            job.last_error = error
            job.updated_at = _utcnow()

            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to reschedule job %s: %s", job_id, str(exc))
            raise RepositoryException("Failed to reschedule background job") from exc

    def list_by_type(self, job_type: str) -> List[BackgroundJob]:
        try:
            return cast(
                List[BackgroundJob],
                self.db.query(BackgroundJob)
                .filter(BackgroundJob.type == job_type)
                .order_by(BackgroundJob.created_at.asc())
                .all(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list jobs of type %s: %s", job_type, str(exc))
            raise RepositoryException("Failed to list background jobs") from exc
