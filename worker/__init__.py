"""Background job processing.

``worker.worker_pool`` is imported explicitly by the CLI since it depends on
the tracking package, which in turn queues jobs through ``worker.job_queue``.
"""

from worker.job_queue import TRACKING_RUN_JOB, JobQueue

__all__ = ["TRACKING_RUN_JOB", "JobQueue"]
