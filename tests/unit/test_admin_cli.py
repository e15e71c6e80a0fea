"""
Unit tests for the automation admin CLI.

Commands run through click's CliRunner against a temporary database selected
with AUTOMATION_DB_PATH.
"""

import asyncio
import json
import os
import time
from datetime import UTC, datetime, timedelta

import pytest
from click.testing import CliRunner

from infra_admin.cli import cli
from infra_codegen.invoker import CREATED_MARKER
from infra_common.configs import DockerJobConfig
from infra_common.models import QueuedJob
from infra_persistence.sqlite_queue import SQLiteJobQueue


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "automation.db")


@pytest.fixture
def runner(db_path):
    return CliRunner(env={"AUTOMATION_DB_PATH": db_path})


def seed_jobs(db_path: str, *job_ids: str, claim: int = 0, expire: bool = False) -> None:
    """Enqueue jobs, optionally claiming the first few and expiring their leases."""

    async def seed():
        queue = SQLiteJobQueue(db_path)
        await queue.initialize()
        try:
            for job_id in job_ids:
                await queue.enqueue(
                    QueuedJob(
                        id=job_id,
                        action="generate-docker",
                        config=DockerJobConfig(),
                        resource_id="res-1",
                    )
                )
            for _ in range(claim):
                job = await queue.claim("worker-a", 60)
                if expire:
                    conn = await queue._get_connection()
                    past = datetime.now(UTC) - timedelta(seconds=5)
                    await conn.execute(
                        "UPDATE jobs SET lease_until = ? WHERE id = ?",
                        (past.isoformat(), job.id),
                    )
                    await conn.commit()
        finally:
            await queue.close()

    asyncio.run(seed())


class TestResourceCommands:
    def test_create_and_show(self, runner):
        result = runner.invoke(
            cli, ["resource", "create", "res-1", "--name", "web", "--type", "terraform"]
        )

        assert result.exit_code == 0, result.output
        assert "Resource created successfully" in result.output

        result = runner.invoke(cli, ["resource", "show", "res-1"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["id"] == "res-1"
        assert data["status"] == "pending"
        assert data["config"] == {}

    def test_create_duplicate(self, runner):
        args = ["resource", "create", "res-1", "--name", "web", "--type", "docker"]
        runner.invoke(cli, args)

        result = runner.invoke(cli, args)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_show_missing(self, runner):
        result = runner.invoke(cli, ["resource", "show", "missing"])

        assert result.exit_code == 1
        assert "Resource not found" in result.output

    def test_list(self, runner):
        assert "No resources found." in runner.invoke(cli, ["resource", "list"]).output

        runner.invoke(cli, ["resource", "create", "res-1", "--name", "web", "--type", "docker"])
        result = runner.invoke(cli, ["resource", "list", "--json"])

        assert [r["id"] for r in json.loads(result.output)] == ["res-1"]


class TestJobCommands:
    def test_list_and_filter(self, runner, db_path):
        seed_jobs(db_path, "job-1", "job-2", claim=1)

        result = runner.invoke(cli, ["job", "list", "--json"])
        assert result.exit_code == 0
        assert [j["id"] for j in json.loads(result.output)] == ["job-1", "job-2"]

        result = runner.invoke(cli, ["job", "list", "--state", "waiting", "--json"])
        assert [j["id"] for j in json.loads(result.output)] == ["job-2"]

        result = runner.invoke(cli, ["job", "list"])
        assert "job-1" in result.output
        assert "generate-docker" in result.output

    def test_show(self, runner, db_path):
        seed_jobs(db_path, "job-1")

        result = runner.invoke(cli, ["job", "show", "job-1"])

        assert result.exit_code == 0
        details = json.loads(result.output)
        assert details["state"] == "waiting"
        assert details["attempts"] == 0
        assert details["events"] == []

    def test_show_missing(self, runner):
        result = runner.invoke(cli, ["job", "show", "missing"])

        assert result.exit_code == 1
        assert "Job not found" in result.output

    def test_cancel(self, runner, db_path):
        seed_jobs(db_path, "job-1")

        result = runner.invoke(cli, ["job", "cancel", "job-1"])
        assert result.exit_code == 0
        assert "cancelled" in result.output

        result = runner.invoke(cli, ["job", "cancel", "job-1"])
        assert result.exit_code == 1
        assert "not found or already finished" in result.output

    def test_requeue_expired(self, runner, db_path):
        seed_jobs(db_path, "job-1", claim=1, expire=True)

        result = runner.invoke(cli, ["job", "requeue-expired"])

        assert result.exit_code == 0
        assert "Requeued 1 job(s)" in result.output
        assert "job-1" in result.output

        result = runner.invoke(cli, ["job", "requeue-expired"])
        assert "No expired jobs requeued." in result.output

    def test_requeue_expired_reports_failed_jobs(self, runner, db_path):
        seed_jobs(db_path, "job-1", claim=1, expire=True)

        result = runner.invoke(cli, ["job", "requeue-expired", "--max-attempts", "1"])

        assert result.exit_code == 0
        assert "Failed 1 job(s) after 1 lost attempts" in result.output
        assert "job-1" in result.output
        assert "Requeued" not in result.output


class TestWorkdirCommands:
    def test_cleanup(self, runner, tmp_path):
        work_dir = tmp_path / "work"
        old_dir = work_dir / "old-task"
        old_dir.mkdir(parents=True)
        (old_dir / CREATED_MARKER).touch()
        past = time.time() - 7200
        os.utime(old_dir / CREATED_MARKER, (past, past))
        (work_dir / "new-task").mkdir()

        result = runner.invoke(
            cli, ["workdir", "cleanup", "--work-dir", str(work_dir), "--max-age", "3600000"]
        )

        assert result.exit_code == 0, result.output
        assert "Removed 1 working directory" in result.output
        assert not old_dir.exists()
        assert (work_dir / "new-task").exists()
