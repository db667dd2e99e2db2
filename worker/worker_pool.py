"""Worker pool with bounded concurrency for background jobs."""

import asyncio
import signal
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from core.config import Config, get_config
from database.connection import DatabaseConnection
from database.models import Job
from tracking.executor import RunExecutor
from worker.job_queue import TRACKING_RUN_JOB, JobQueue

logger = structlog.get_logger(__name__)


class UnknownJobTypeError(Exception):
    """A job type no handler is registered for."""


def process_job(job: Job, db_connection: DatabaseConnection, config: Optional[Config] = None):
    """Dispatch a claimed job to its handler.

    Args:
        job: Claimed job
        db_connection: Database connection
        config: Configuration (defaults to the global one)

    Raises:
        UnknownJobTypeError: For job types without a handler
    """
    config = config or get_config()

    if job.job_type == TRACKING_RUN_JOB:
        def heartbeat():
            with db_connection.session() as session:
                JobQueue(
                    session,
                    worker_id=job.claimed_by,
                    visibility_timeout=config.job_visibility_timeout,
                ).extend_visibility(job.id)

        executor = RunExecutor(db_connection, config=config)
        summary = asyncio.run(
            executor.execute(
                job.payload["run_id"],
                notify_email=job.payload.get("notify_email"),
                heartbeat=heartbeat,
            )
        )
        logger.info("tracking_run_job_finished", job_id=job.id, **summary)
        return

    raise UnknownJobTypeError(f"Unknown job type: {job.job_type}")


@dataclass
class WorkerStats:
    """Statistics for a single worker."""

    worker_id: str
    jobs_processed: int = 0
    jobs_failed: int = 0
    last_job_at: Optional[float] = None
    is_running: bool = False


class Worker(threading.Thread):
    """Individual worker that processes jobs from the queue."""

    def __init__(
        self,
        worker_id: str,
        db_connection: DatabaseConnection,
        process_func: Callable[[Job], None],
        poll_interval: float = 1.0,
        config: Optional[Config] = None,
    ):
        """Initialize worker.

        Args:
            worker_id: Unique worker identifier
            db_connection: Database connection
            process_func: Function to process jobs
            poll_interval: Seconds to wait between polling for jobs
            config: Configuration (defaults to the global one)
        """
        super().__init__(name=worker_id, daemon=True)
        self.worker_id = worker_id
        self.db_connection = db_connection
        self.process_func = process_func
        self.poll_interval = poll_interval
        self.config = config or get_config()

        self._stop_event = threading.Event()
        self.stats = WorkerStats(worker_id=worker_id)

        logger.info("worker_initialized", worker_id=worker_id)

    def _queue(self, session) -> JobQueue:
        return JobQueue(
            session,
            worker_id=self.worker_id,
            visibility_timeout=self.config.job_visibility_timeout,
            max_retry_count=self.config.max_retry_count,
        )

    def run_once(self) -> bool:
        """Claim and process a single job.

        Returns:
            True if a job was processed (successfully or not)
        """
        with self.db_connection.session() as session:
            queue = self._queue(session)
            job = queue.claim_job()
            if job is None:
                return False

            self.stats.last_job_at = time.time()
            self._process_job(job, queue)
            return True

    def run(self):
        """Main worker loop."""
        self.stats.is_running = True
        logger.info("worker_started", worker_id=self.worker_id)

        while not self._stop_event.is_set():
            try:
                if not self.run_once():
                    self._stop_event.wait(self.poll_interval)
            except Exception as e:
                logger.error("worker_iteration_error", worker_id=self.worker_id, error=str(e))
                self._stop_event.wait(self.poll_interval)

        self.stats.is_running = False
        logger.info(
            "worker_stopped",
            worker_id=self.worker_id,
            jobs_processed=self.stats.jobs_processed,
            jobs_failed=self.stats.jobs_failed,
        )

    def _process_job(self, job: Job, queue: JobQueue):
        start_time = time.time()
        logger.info(
            "job_processing_started",
            worker_id=self.worker_id,
            job_id=job.id,
            job_type=job.job_type,
        )

        try:
            self.process_func(job)
        except Exception as e:
            error_message = f"{type(e).__name__}: {str(e)}"
            queue.fail_job(job, error_message)
            self.stats.jobs_failed += 1

            logger.error(
                "job_processing_failed",
                worker_id=self.worker_id,
                job_id=job.id,
                job_type=job.job_type,
                duration=time.time() - start_time,
                error=error_message,
            )
            return

        queue.complete_job(job)
        self.stats.jobs_processed += 1
        logger.info(
            "job_processing_completed",
            worker_id=self.worker_id,
            job_id=job.id,
            job_type=job.job_type,
            duration=time.time() - start_time,
        )

    def stop(self):
        """Signal worker to stop."""
        logger.info("worker_stopping", worker_id=self.worker_id)
        self._stop_event.set()

    def is_healthy(self) -> bool:
        return self.stats.is_running


class WorkerPool:
    """Pool of workers with bounded concurrency."""

    def __init__(
        self,
        size: int,
        db_connection: DatabaseConnection,
        process_func: Optional[Callable[[Job], None]] = None,
        poll_interval: float = 1.0,
        config: Optional[Config] = None,
    ):
        """Initialize worker pool.

        Args:
            size: Number of workers in the pool
            db_connection: Database connection
            process_func: Function to process jobs (defaults to ``process_job``)
            poll_interval: Seconds to wait between polling for jobs
            config: Configuration (defaults to the global one)
        """
        self.size = size
        self.db_connection = db_connection
        self.config = config or get_config()
        self.process_func = process_func or (
            lambda job: process_job(job, db_connection, self.config)
        )
        self.poll_interval = poll_interval

        self.workers = []
        self._shutdown_requested = False

        logger.info("worker_pool_initialized", pool_size=size)

    def start(self):
        """Start all workers in the pool."""
        if self.workers:
            logger.warning("worker_pool_already_started")
            return

        for i in range(self.size):
            worker = Worker(
                worker_id=f"worker-{i}",
                db_connection=self.db_connection,
                process_func=self.process_func,
                poll_interval=self.poll_interval,
                config=self.config,
            )
            self.workers.append(worker)
            worker.start()

        logger.info("worker_pool_started", pool_size=self.size)

    def stop(self, timeout: float = 30.0):
        """Stop all workers gracefully.

        Args:
            timeout: Maximum seconds to wait for workers to stop
        """
        if not self.workers:
            return

        logger.info("worker_pool_stopping", pool_size=len(self.workers))
        for worker in self.workers:
            worker.stop()

        start_time = time.time()
        for worker in self.workers:
            remaining_time = max(0, timeout - (time.time() - start_time))
            worker.join(timeout=remaining_time)
            if worker.is_alive():
                logger.warning("worker_did_not_stop", worker_id=worker.worker_id)

        self.workers.clear()
        logger.info("worker_pool_stopped")

    def get_stats(self) -> dict:
        return {
            "pool_size": self.size,
            "workers_running": sum(1 for w in self.workers if w.stats.is_running),
            "total_jobs_processed": sum(w.stats.jobs_processed for w in self.workers),
            "total_jobs_failed": sum(w.stats.jobs_failed for w in self.workers),
        }

    def health_check(self) -> bool:
        if not self.workers:
            return False
        return all(worker.is_healthy() for worker in self.workers)

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        logger.info("shutdown_signal_received", signal=signal_name)
        self._shutdown_requested = True

    def run_forever(self):
        """Run the worker pool until SIGINT or SIGTERM."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.start()
        logger.info("worker_pool_running")

        last_stats = time.time()
        try:
            while not self._shutdown_requested:
                time.sleep(1)
                if time.time() - last_stats >= 60:
                    logger.info("worker_pool_stats", **self.get_stats())
                    last_stats = time.time()
        except KeyboardInterrupt:
            logger.info("keyboard_interrupt_received")
        finally:
            self.stop()
