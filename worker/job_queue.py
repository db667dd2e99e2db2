"""Database-backed job queue with atomic claiming for exactly-once processing."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from database.models import Job

logger = structlog.get_logger(__name__)

TRACKING_RUN_JOB = "tracking_run"


class JobQueue:
    """Claims, completes and retries jobs stored in the ``jobs`` table."""

    def __init__(
        self,
        session: Session,
        worker_id: str = "api",
        visibility_timeout: int = 900,
        max_retry_count: int = 3,
    ):
        """Initialize job queue.

        Args:
            session: Database session
            worker_id: Unique worker identifier
            visibility_timeout: Seconds before a processing job becomes visible again
            max_retry_count: Maximum number of attempts for a job
        """
        self.session = session
        self.worker_id = worker_id
        self.visibility_timeout = visibility_timeout
        self.max_retry_count = max_retry_count

    def _is_sqlite(self) -> bool:
        bind = self.session.get_bind()
        return bind.dialect.name == "sqlite"

    def enqueue(self, job_type: str, payload: Dict[str, Any]) -> Job:
        """Add a job; it is committed together with the caller's transaction.

        Args:
            job_type: Type of job (e.g. "tracking_run")
            payload: Job payload as dictionary

        Returns:
            The pending job
        """
        job = Job(job_type=job_type, payload=payload, status="pending")
        self.session.add(job)
        self.session.flush()

        logger.info("job_enqueued", job_id=job.id, job_type=job_type)
        return job

    def claim_job(self) -> Optional[Job]:
        """Atomically claim the oldest available job.

        Pending jobs whose backoff has elapsed and processing jobs whose
        visibility timeout expired are available. On PostgreSQL the row is
        locked with FOR UPDATE SKIP LOCKED so concurrent workers never claim
        the same job.

        Returns:
            Job if claimed, None if no jobs are available
        """
        now = datetime.utcnow()
        query = (
            self.session.query(Job)
            .filter(
                or_(
                    and_(
                        Job.status == "pending",
                        or_(Job.visibility_timeout.is_(None), Job.visibility_timeout <= now),
                    ),
                    and_(Job.status == "processing", Job.visibility_timeout < now),
                ),
                Job.retry_count < self.max_retry_count,
            )
            .order_by(Job.created_at.asc(), Job.id.asc())
        )
        if not self._is_sqlite():
            query = query.with_for_update(skip_locked=True)

        try:
            job = query.first()
            if job is None:
                logger.debug("no_jobs_available", worker_id=self.worker_id)
                return None

            job.status = "processing"
            job.claimed_by = self.worker_id
            job.visibility_timeout = now + timedelta(seconds=self.visibility_timeout)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error("job_claim_failed", worker_id=self.worker_id, error=str(e))
            return None

        logger.info(
            "job_claimed",
            job_id=job.id,
            job_type=job.job_type,
            worker_id=self.worker_id,
            retry_count=job.retry_count,
        )
        return job

    def complete_job(self, job: Job) -> bool:
        """Mark a job as completed."""
        try:
            job.status = "completed"
            job.processed_at = datetime.utcnow()
            job.visibility_timeout = None
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error("job_completion_failed", job_id=job.id, worker_id=self.worker_id, error=str(e))
            return False

        logger.info(
            "job_completed",
            job_id=job.id,
            job_type=job.job_type,
            worker_id=self.worker_id,
            retry_count=job.retry_count,
            processing_duration=(job.processed_at - job.created_at).total_seconds(),
        )
        return True

    def fail_job(self, job: Job, error_message: str) -> bool:
        """Record a failed attempt, retrying with exponential backoff.

        Args:
            job: Job that failed
            error_message: Error message describing the failure

        Returns:
            True if the failure was recorded
        """
        try:
            job.retry_count += 1
            job.error_message = error_message

            if job.retry_count >= self.max_retry_count:
                job.status = "failed"
                job.processed_at = datetime.utcnow()
                job.visibility_timeout = None

                logger.error(
                    "job_failed_permanently",
                    job_id=job.id,
                    job_type=job.job_type,
                    worker_id=self.worker_id,
                    retry_count=job.retry_count,
                    error=error_message,
                )
            else:
                job.status = "pending"
                backoff_seconds = min(300, 2 ** job.retry_count * 10)  # Max 5 minutes
                job.visibility_timeout = datetime.utcnow() + timedelta(seconds=backoff_seconds)

                logger.warning(
                    "job_failed_will_retry",
                    job_id=job.id,
                    job_type=job.job_type,
                    worker_id=self.worker_id,
                    retry_count=job.retry_count,
                    next_retry_at=job.visibility_timeout.isoformat(),
                    error=error_message,
                )

            self.session.commit()
            return True

        except Exception as e:
            self.session.rollback()
            logger.error("job_failure_update_failed", job_id=job.id, worker_id=self.worker_id, error=str(e))
            return False

    def extend_visibility(self, job_id: int) -> bool:
        """Push back the visibility timeout of a job this worker still holds.

        Returns:
            True if the job was still processing under this worker
        """
        deadline = datetime.utcnow() + timedelta(seconds=self.visibility_timeout)
        try:
            updated = (
                self.session.query(Job)
                .filter(
                    Job.id == job_id,
                    Job.status == "processing",
                    Job.claimed_by == self.worker_id,
                )
                .update({Job.visibility_timeout: deadline}, synchronize_session=False)
            )
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error("job_visibility_extend_failed", job_id=job_id, worker_id=self.worker_id, error=str(e))
            return False

        logger.debug("job_visibility_extended", job_id=job_id, worker_id=self.worker_id, until=deadline.isoformat())
        return updated == 1

    def get_job(self, job_id: int) -> Optional[Job]:
        return self.session.query(Job).filter(Job.id == job_id).first()

    def get_queue_depth(self) -> int:
        return self.session.query(Job).filter(Job.status == "pending").count()

    def get_queue_stats(self) -> Dict[str, int]:
        """Job counts per status plus expired processing jobs."""
        rows = self.session.query(Job.status, func.count(Job.id)).group_by(Job.status).all()
        stats = {status: count for status, count in rows}

        stats["expired_processing"] = (
            self.session.query(Job)
            .filter(Job.status == "processing", Job.visibility_timeout < datetime.utcnow())
            .count()
        )
        return stats
