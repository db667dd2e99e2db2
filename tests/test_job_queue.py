"""Tests for the job queue and the worker loop."""

from datetime import datetime, timedelta

import pytest

from database.models import Job, TrackingRun
from tests.conftest import FakeProvider
from tracking import executor as executor_module
from worker.job_queue import TRACKING_RUN_JOB, JobQueue
from worker.worker_pool import UnknownJobTypeError, Worker, WorkerPool, process_job


def enqueue(db, payload=None, job_type=TRACKING_RUN_JOB):
    with db.session() as session:
        return JobQueue(session).enqueue(job_type, payload or {"run_id": "run-1"}).id


def test_enqueue_creates_pending_job(db):
    job_id = enqueue(db, {"run_id": "abc", "notify_email": None})

    with db.session() as session:
        queue = JobQueue(session)
        job = queue.get_job(job_id)
        assert job.status == "pending"
        assert job.payload == {"run_id": "abc", "notify_email": None}
        assert queue.get_queue_depth() == 1


def test_claim_marks_processing_and_hides_job(db):
    job_id = enqueue(db)

    with db.session() as session:
        queue = JobQueue(session, worker_id="worker-0", visibility_timeout=60)
        job = queue.claim_job()
        assert job.id == job_id
        assert job.status == "processing"
        assert job.claimed_by == "worker-0"
        assert job.visibility_timeout > datetime.utcnow()

        assert queue.claim_job() is None


def test_claim_oldest_first(db):
    first = enqueue(db, {"run_id": "1"})
    enqueue(db, {"run_id": "2"})

    with db.session() as session:
        assert JobQueue(session).claim_job().id == first


def test_expired_processing_job_is_reclaimed(db):
    job_id = enqueue(db)
    with db.session() as session:
        job = session.get(Job, job_id)
        job.status = "processing"
        job.visibility_timeout = datetime.utcnow() - timedelta(seconds=1)

    with db.session() as session:
        queue = JobQueue(session, worker_id="worker-1")
        assert queue.get_queue_stats()["expired_processing"] == 1
        job = queue.claim_job()
        assert job.id == job_id
        assert job.claimed_by == "worker-1"


def test_complete_job(db):
    enqueue(db)
    with db.session() as session:
        queue = JobQueue(session)
        job = queue.claim_job()
        assert queue.complete_job(job)
        assert job.status == "completed"
        assert job.processed_at is not None
        assert queue.get_queue_stats()["completed"] == 1


def test_fail_job_retries_with_backoff(db):
    enqueue(db)
    with db.session() as session:
        queue = JobQueue(session, max_retry_count=3)
        job = queue.claim_job()
        before = datetime.utcnow()
        queue.fail_job(job, "boom")

        assert job.status == "pending"
        assert job.retry_count == 1
        assert job.error_message == "boom"
        assert job.visibility_timeout >= before + timedelta(seconds=20)
        # Backoff hides the job until it elapses
        assert queue.claim_job() is None


def test_fail_job_permanently_after_max_retries(db):
    enqueue(db)
    with db.session() as session:
        queue = JobQueue(session, max_retry_count=1)
        job = queue.claim_job()
        queue.fail_job(job, "boom")

        assert job.status == "failed"
        assert job.retry_count == 1
        assert job.processed_at is not None
        assert queue.claim_job() is None


def test_worker_run_once_completes_job(db, config):
    enqueue(db, {"run_id": "r1"})
    seen = []

    worker = Worker("worker-0", db, process_func=lambda job: seen.append(job.payload["run_id"]), config=config)
    assert worker.run_once() is True
    assert worker.run_once() is False

    assert seen == ["r1"]
    assert worker.stats.jobs_processed == 1
    with db.session() as session:
        assert session.query(Job).one().status == "completed"


def test_worker_run_once_records_failure(db, config):
    enqueue(db)

    def explode(job):
        raise RuntimeError("provider meltdown")

    worker = Worker("worker-0", db, process_func=explode, config=config)
    assert worker.run_once() is True

    assert worker.stats.jobs_failed == 1
    with db.session() as session:
        job = session.query(Job).one()
        assert job.status == "pending"
        assert job.retry_count == 1
        assert job.error_message == "RuntimeError: provider meltdown"


def test_process_job_rejects_unknown_type(db, config):
    job = Job(job_type="mystery", payload={}, status="processing")
    with pytest.raises(UnknownJobTypeError):
        process_job(job, db, config)


def test_pool_stats_before_start(db, config):
    pool = WorkerPool(size=2, db_connection=db, process_func=lambda job: None, config=config)
    assert pool.health_check() is False
    assert pool.get_stats() == {
        "pool_size": 2,
        "workers_running": 0,
        "total_jobs_processed": 0,
        "total_jobs_failed": 0,
    }


def test_extend_visibility_only_for_the_claiming_worker(db):
    job_id = enqueue(db)
    with db.session() as session:
        job = JobQueue(session, worker_id="worker-0", visibility_timeout=1).claim_job()
        first_deadline = job.visibility_timeout

    with db.session() as session:
        assert JobQueue(session, worker_id="worker-0", visibility_timeout=600).extend_visibility(job_id)
        assert not JobQueue(session, worker_id="worker-9", visibility_timeout=600).extend_visibility(job_id)

    with db.session() as session:
        job = session.get(Job, job_id)
        assert job.visibility_timeout >= first_deadline + timedelta(seconds=500)


def test_failed_tracking_run_completes_its_job(db, config, emails, setup, monkeypatch):
    monkeypatch.setattr(executor_module, "build_providers", lambda cfg: {})
    with db.session() as session:
        run = TrackingRun(config_id=setup.config.id, status="pending")
        session.add(run)
        session.flush()
        run_id = run.id
    enqueue(db, {"run_id": run_id, "notify_email": "owner@acme.com"})

    worker = Worker("worker-0", db, process_func=lambda job: process_job(job, db, config), config=config)
    assert worker.run_once() is True
    assert worker.run_once() is False

    with db.session() as session:
        job = session.query(Job).one()
        run = session.get(TrackingRun, run_id)
        assert job.status == "completed"
        assert job.retry_count == 0
        assert run.status == "failed"
    assert [mail["status"] for mail in emails.sent] == ["failed"]


def test_tracking_run_job_refreshes_visibility_between_batches(
    db, config, emails, setup, neutral_openai, monkeypatch
):
    monkeypatch.setattr(
        executor_module, "build_providers", lambda cfg: {"gemini": FakeProvider("gemini", text="acme.com")}
    )

    async def no_favicons(db, domains):
        return 0

    monkeypatch.setattr(executor_module, "fetch_favicons_for_domains", no_favicons)
    with db.session() as session:
        run = TrackingRun(config_id=setup.config.id, status="pending")
        session.add(run)
        session.flush()
        run_id = run.id
    enqueue(db, {"run_id": run_id})

    extended = []
    original = JobQueue.extend_visibility

    def recording_extend(self, job_id):
        extended.append((job_id, self.worker_id))
        return original(self, job_id)

    monkeypatch.setattr(JobQueue, "extend_visibility", recording_extend)

    worker = Worker("worker-3", db, process_func=lambda job: process_job(job, db, config), config=config)
    assert worker.run_once() is True

    with db.session() as session:
        job = session.query(Job).one()
        assert job.status == "completed"
        assert session.get(TrackingRun, run_id).status == "completed"
    assert extended == [(job.id, "worker-3")]
