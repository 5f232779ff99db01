"""Outbox drain: run due background jobs through the event handlers."""

import logging

from sqlalchemy.orm import Session

from app.repositories.background_job_repository import BackgroundJobRepository

from .handlers import process_event

logger = logging.getLogger(__name__)


def process_due_jobs(db: Session, *, limit: int = 25) -> int:
    """
    Process up to ``limit`` due jobs, committing after each one.

    A failing job is rescheduled with backoff and never blocks the rest of
    the batch. Returns the number of jobs that succeeded.
    """
    job_repo = BackgroundJobRepository(db)
    jobs = job_repo.fetch_due(limit=limit)
    # Claim the whole batch before the row locks are released
    for job in jobs:
        job_repo.mark_running(job.id)
    db.commit()
    succeeded = 0

    for job in jobs:
        job_id = job.id
        try:
            if not process_event(job.type, job.payload, db):
                logger.warning("Unknown background job type %s; leaving for retry", job.type)
                raise ValueError(f"Unsupported job type: {job.type}")
            job_repo.mark_succeeded(job_id)
            db.commit()
            succeeded += 1
        except Exception as exc:
            db.rollback()
            logger.error("Background job %s failed: %s", job_id, exc)
            job_repo.mark_failed(job_id, str(exc))
            db.commit()

    return succeeded
