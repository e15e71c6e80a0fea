"""
Unit tests for the SQLite job queue.

Tests state transitions, lease handling and crash recovery against a real
temporary database.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from infra_common.configs import DockerJobConfig, TerraformConfig
from infra_common.models import JobEvent, QueuedJob
from infra_persistence.sqlite_queue import SQLiteJobQueue


@pytest_asyncio.fixture
async def queue(tmp_path):
    """Create a queue backed by a temporary database."""
    q = SQLiteJobQueue(str(tmp_path / "jobs.db"))
    await q.initialize()

    yield q

    await q.close()


def make_job(job_id: str, **kwargs) -> QueuedJob:
    kwargs.setdefault("action", "generate-docker")
    kwargs.setdefault("config", DockerJobConfig())
    return QueuedJob(id=job_id, **kwargs)


async def expire_lease(queue: SQLiteJobQueue, job_id: str) -> None:
    conn = await queue._get_connection()
    past = datetime.now(UTC) - timedelta(seconds=5)
    await conn.execute(
        "UPDATE jobs SET lease_until = ? WHERE id = ?", (past.isoformat(), job_id)
    )
    await conn.commit()


@pytest.mark.asyncio
async def test_enqueue_and_get(queue):
    await queue.enqueue(
        make_job(
            "job-1",
            action="provision-terraform",
            config=TerraformConfig(region="eu-west-1"),
            resource_id="res-1",
        )
    )

    job = await queue.get_job("job-1")

    assert job is not None
    assert job.state == "waiting"
    assert job.progress == 0
    assert job.resource_id == "res-1"
    assert isinstance(job.config, TerraformConfig)
    assert job.config.region == "eu-west-1"
    assert job.created_at is not None


@pytest.mark.asyncio
async def test_get_nonexistent_job(queue):
    assert await queue.get_job("missing") is None


@pytest.mark.asyncio
async def test_unknown_action_keeps_raw_config(queue):
    await queue.enqueue(make_job("job-x", action="deploy", config={"target": "prod"}))

    job = await queue.get_job("job-x")

    assert job.config == {"target": "prod"}


@pytest.mark.asyncio
async def test_claim_oldest_first(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.enqueue(make_job("job-2"))

    first = await queue.claim("worker-a", lease_seconds=60)
    second = await queue.claim("worker-a", lease_seconds=60)
    third = await queue.claim("worker-a", lease_seconds=60)

    assert first.id == "job-1"
    assert first.state == "active"
    assert first.worker_id == "worker-a"
    assert first.lease_until > datetime.now(UTC)
    assert second.id == "job-2"
    assert third is None


@pytest.mark.asyncio
async def test_concurrent_claims_never_share_a_job(tmp_path):
    db_path = str(tmp_path / "jobs.db")
    queues = [SQLiteJobQueue(db_path) for _ in range(3)]
    for q in queues:
        await q.initialize()

    try:
        for i in range(5):
            await queues[0].enqueue(make_job(f"job-{i}"))

        async def drain(q, worker_id):
            claimed = []
            while (job := await q.claim(worker_id, 60)) is not None:
                claimed.append(job.id)
            return claimed

        results = await asyncio.gather(
            *(drain(q, f"worker-{i}") for i, q in enumerate(queues))
        )

        claimed = [job_id for ids in results for job_id in ids]
        assert sorted(claimed) == [f"job-{i}" for i in range(5)]
    finally:
        for q in queues:
            await q.close()


@pytest.mark.asyncio
async def test_complete_requires_ownership(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.claim("worker-a", 60)

    assert await queue.complete("job-1", "worker-b", {"success": True}) is False
    assert await queue.complete("job-1", "worker-a", {"success": True}) is True

    job = await queue.get_job("job-1")
    assert job.state == "completed"
    assert job.progress == 100
    assert job.return_value == {"success": True}
    assert job.finished_at is not None
    assert await queue.complete("job-1", "worker-a", {}) is False


@pytest.mark.asyncio
async def test_fail(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.claim("worker-a", 60)

    assert await queue.fail("job-1", "worker-a", "Dockerfile generation failed") is True

    job = await queue.get_job("job-1")
    assert job.state == "failed"
    assert job.failed_reason == "Dockerfile generation failed"


@pytest.mark.asyncio
async def test_update_progress_is_clamped(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.claim("worker-a", 60)

    await queue.update_progress("job-1", 150)

    assert (await queue.get_job("job-1")).progress == 100


@pytest.mark.asyncio
async def test_renew_lease(queue):
    await queue.enqueue(make_job("job-1"))
    claimed = await queue.claim("worker-a", 1)

    assert await queue.renew_lease("job-1", "worker-a", 120) is True
    assert await queue.renew_lease("job-1", "worker-b", 120) is False

    job = await queue.get_job("job-1")
    assert job.lease_until > claimed.lease_until


@pytest.mark.asyncio
async def test_release(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.claim("worker-a", 60)

    assert await queue.release("job-1", "worker-a") is True

    job = await queue.get_job("job-1")
    assert job.state == "waiting"
    assert job.worker_id is None
    assert job.attempts == 0


@pytest.mark.asyncio
async def test_remove_waiting_and_active_jobs(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.enqueue(make_job("job-2"))
    await queue.claim("worker-a", 60)

    assert await queue.remove("job-1") is True
    assert await queue.remove("job-2") is True

    assert (await queue.get_job("job-1")).state == "removed"
    assert (await queue.get_job("job-2")).state == "removed"
    assert await queue.renew_lease("job-1", "worker-a", 60) is False
    assert await queue.claim("worker-a", 60) is None


@pytest.mark.asyncio
async def test_remove_finished_or_unknown_job(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.claim("worker-a", 60)
    await queue.complete("job-1", "worker-a", {})

    assert await queue.remove("job-1") is False
    assert await queue.remove("missing") is False
    assert (await queue.get_job("job-1")).state == "completed"


@pytest.mark.asyncio
async def test_requeue_expired(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.enqueue(make_job("job-2"))
    await queue.claim("worker-a", 60)
    await queue.claim("worker-a", 60)
    await expire_lease(queue, "job-1")

    requeued, failed = await queue.requeue_expired(max_attempts=3)

    assert requeued == ["job-1"]
    assert failed == []
    job = await queue.get_job("job-1")
    assert job.state == "waiting"
    assert job.attempts == 1
    assert job.worker_id is None
    assert (await queue.get_job("job-2")).state == "active"


@pytest.mark.asyncio
async def test_requeue_expired_fails_after_max_attempts(queue):
    await queue.enqueue(make_job("job-1"))

    await queue.claim("worker-a", 60)
    await expire_lease(queue, "job-1")
    assert await queue.requeue_expired(max_attempts=2) == (["job-1"], [])

    await queue.claim("worker-a", 60)
    await expire_lease(queue, "job-1")
    assert await queue.requeue_expired(max_attempts=2) == ([], ["job-1"])

    job = await queue.get_job("job-1")
    assert job.state == "failed"
    assert job.attempts == 2
    assert job.failed_reason == "Worker lost while processing job"


@pytest.mark.asyncio
async def test_list_jobs(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.enqueue(make_job("job-2"))
    await queue.claim("worker-a", 60)

    assert [j.id for j in await queue.list_jobs()] == ["job-1", "job-2"]
    assert [j.id for j in await queue.list_jobs(state="waiting")] == ["job-2"]
    assert await queue.list_jobs(state="failed") == []


@pytest.mark.asyncio
async def test_events(queue):
    await queue.enqueue(make_job("job-1"))
    await queue.add_event(JobEvent(type="requeued", job_id="job-1"))
    await queue.add_event(JobEvent(type="failed", job_id="job-1", error="boom"))

    events = await queue.get_events("job-1")

    assert [e.type for e in events] == ["requeued", "failed"]
    assert events[1].error == "boom"
    assert events[0].timestamp is not None


@pytest.mark.asyncio
async def test_state_survives_reopen(tmp_path):
    db_path = str(tmp_path / "jobs.db")
    first = SQLiteJobQueue(db_path)
    await first.initialize()
    await first.enqueue(make_job("job-1"))
    await first.close()

    second = SQLiteJobQueue(db_path)
    await second.initialize()
    try:
        assert (await second.get_job("job-1")).state == "waiting"
    finally:
        await second.close()
