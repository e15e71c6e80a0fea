"""
SQLite implementation of the durable job queue.

Uses aiosqlite for async operations. The database file can be shared between
the API server (enqueue, status, cancel) and any number of worker processes
(claim, lease renewal, outcome). State transitions are conditional UPDATEs so
concurrent workers never claim the same job twice.
"""

import json
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite

from infra_common.configs import parse_job_config
from infra_common.models import JobEvent, QueuedJob
from infra_common.repository import JobQueue

logger = logging.getLogger(__name__)

JOB_COLUMNS = (
    "id, action, resource_id, config, state, progress, return_value, "
    "failed_reason, attempts, worker_id, lease_until, created_at, started_at, finished_at"
)


def _now() -> datetime:
    return datetime.now(UTC)


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteJobQueue(JobQueue):
    """
    SQLite-based job queue implementation.

    Uses a single database file with two tables:
    - jobs: Job payload, state and lease bookkeeping
    - job_events: Lifecycle events for each job
    """

    def __init__(self, db_path: str = "automation.db"):
        """
        Initialize the SQLite queue.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            # Allow the server and workers to use the file concurrently
            await self._connection.execute("PRAGMA journal_mode = WAL")
            await self._connection.execute("PRAGMA busy_timeout = 5000")
            await self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    async def initialize(self) -> None:
        """
        Create database tables if they don't exist.

        Schema:
        - jobs table: action, JSON config, state machine and lease columns
        - job_events table: Sequential events for each job
        """
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                action TEXT NOT NULL,
                resource_id TEXT,
                config TEXT NOT NULL,
                state TEXT NOT NULL,
                progress INTEGER NOT NULL DEFAULT 0,
                return_value TEXT,
                failed_reason TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                worker_id TEXT,
                lease_until TEXT,
                created_at TEXT NOT NULL,
                started_at TEXT,
                finished_at TEXT
            )
        """)

        # Claim and recovery both scan by state
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_jobs_state
            ON jobs(state, created_at)
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS job_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_id TEXT NOT NULL,
                type TEXT NOT NULL,
                error TEXT,
                timestamp TEXT NOT NULL,
                FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
            )
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_job_events_job_id
            ON job_events(job_id)
        """)

        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _row_to_job(self, row: tuple) -> QueuedJob:
        (
            job_id,
            action,
            resource_id,
            config_json,
            state,
            progress,
            return_value_json,
            failed_reason,
            attempts,
            worker_id,
            lease_until,
            created_at,
            started_at,
            finished_at,
        ) = row

        raw_config = json.loads(config_json)
        try:
            config: Any = parse_job_config(action, raw_config)
        except (ValueError, KeyError, TypeError):
            # Unknown actions keep their raw payload; the worker fails them
            config = raw_config

        return QueuedJob(
            id=job_id,
            action=action,
            config=config,
            resource_id=resource_id,
            state=state,
            progress=progress,
            return_value=json.loads(return_value_json) if return_value_json else None,
            failed_reason=failed_reason,
            attempts=attempts,
            worker_id=worker_id,
            lease_until=_parse_time(lease_until),
            created_at=_parse_time(created_at),
            started_at=_parse_time(started_at),
            finished_at=_parse_time(finished_at),
        )

    async def enqueue(self, job: QueuedJob) -> None:
        """
        Add a new job in the waiting state.

        Args:
            job: Job object to persist
        """
        conn = await self._get_connection()

        created_at = job.created_at or _now()
        await conn.execute(
            """
            INSERT INTO jobs (id, action, resource_id, config, state, progress, attempts, created_at)
            VALUES (?, ?, ?, ?, 'waiting', 0, 0, ?)
            """,
            (
                job.id,
                job.action,
                job.resource_id,
                json.dumps(job.config_dict()),
                created_at.isoformat(),
            ),
        )
        await conn.commit()

    async def get_job(self, job_id: str) -> QueuedJob | None:
        """
        Retrieve a job by its ID.

        Args:
            job_id: ID of the job to retrieve

        Returns:
            QueuedJob if found, None otherwise
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT {JOB_COLUMNS} FROM jobs WHERE id = ?", (job_id,)
        )
        row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_job(row)

    async def list_jobs(self, state: str | None = None) -> list[QueuedJob]:
        """
        List jobs, optionally filtered by state, oldest first.

        Args:
            state: Only return jobs in this state

        Returns:
            List of QueuedJob objects
        """
        conn = await self._get_connection()

        if state is None:
            cursor = await conn.execute(
                f"SELECT {JOB_COLUMNS} FROM jobs ORDER BY created_at"
            )
        else:
            cursor = await conn.execute(
                f"SELECT {JOB_COLUMNS} FROM jobs WHERE state = ? ORDER BY created_at",
                (state,),
            )

        rows = await cursor.fetchall()
        return [self._row_to_job(row) for row in rows]

    async def claim(self, worker_id: str, lease_seconds: float) -> QueuedJob | None:
        """
        Move the oldest waiting job to active and lease it to a worker.

        The UPDATE only succeeds while the job is still waiting, so when two
        workers race for the same row exactly one of them wins.

        Args:
            worker_id: Identifier of the claiming worker
            lease_seconds: Lease duration in seconds

        Returns:
            The claimed job, or None when nothing is waiting
        """
        conn = await self._get_connection()

        while True:
            cursor = await conn.execute(
                "SELECT id FROM jobs WHERE state = 'waiting' ORDER BY created_at LIMIT 1"
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            job_id = row[0]
            now = _now()
            cursor = await conn.execute(
                """
                UPDATE jobs
                SET state = 'active', worker_id = ?, lease_until = ?, started_at = ?
                WHERE id = ? AND state = 'waiting'
                """,
                (
                    worker_id,
                    (now + timedelta(seconds=lease_seconds)).isoformat(),
                    now.isoformat(),
                    job_id,
                ),
            )
            await conn.commit()

            if cursor.rowcount == 1:
                return await self.get_job(job_id)

            # Another worker took it first; try the next one
            logger.debug(f"Lost claim race for job {job_id}")

    async def renew_lease(
        self, job_id: str, worker_id: str, lease_seconds: float
    ) -> bool:
        """
        Extend the lease of an active job owned by the worker.

        Args:
            job_id: ID of the job
            worker_id: Owning worker
            lease_seconds: New lease duration from now

        Returns:
            True if the lease was extended
        """
        conn = await self._get_connection()

        lease_until = _now() + timedelta(seconds=lease_seconds)
        cursor = await conn.execute(
            """
            UPDATE jobs SET lease_until = ?
            WHERE id = ? AND state = 'active' AND worker_id = ?
            """,
            (lease_until.isoformat(), job_id, worker_id),
        )
        await conn.commit()
        return cursor.rowcount == 1

    async def update_progress(self, job_id: str, progress: int) -> None:
        """
        Record job progress.

        Args:
            job_id: ID of the job
            progress: Percentage between 0 and 100
        """
        conn = await self._get_connection()

        progress = max(0, min(100, progress))
        await conn.execute(
            "UPDATE jobs SET progress = ? WHERE id = ? AND state = 'active'",
            (progress, job_id),
        )
        await conn.commit()

    async def complete(
        self, job_id: str, worker_id: str, return_value: dict[str, Any]
    ) -> bool:
        """
        Mark an active job as completed with its return value.

        Args:
            job_id: ID of the job
            worker_id: Owning worker
            return_value: JSON-serializable result

        Returns:
            True if the job was still active and owned by the worker
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            UPDATE jobs
            SET state = 'completed', progress = 100, return_value = ?,
                lease_until = NULL, finished_at = ?
            WHERE id = ? AND state = 'active' AND worker_id = ?
            """,
            (json.dumps(return_value), _now().isoformat(), job_id, worker_id),
        )
        await conn.commit()
        return cursor.rowcount == 1

    async def fail(self, job_id: str, worker_id: str | None, reason: str) -> bool:
        """
        Mark an active job as failed.

        Args:
            job_id: ID of the job
            worker_id: Owning worker, or None to fail regardless of owner
            reason: Failure description

        Returns:
            True if the transition happened
        """
        conn = await self._get_connection()

        sql = """
            UPDATE jobs
            SET state = 'failed', failed_reason = ?, lease_until = NULL, finished_at = ?
            WHERE id = ? AND state = 'active'
        """
        params: list[Any] = [reason, _now().isoformat(), job_id]
        if worker_id is not None:
            sql += " AND worker_id = ?"
            params.append(worker_id)

        cursor = await conn.execute(sql, params)
        await conn.commit()
        return cursor.rowcount == 1

    async def release(self, job_id: str, worker_id: str) -> bool:
        """
        Hand an active job back to the waiting state.

        Used on graceful worker shutdown; the attempt counter is not bumped.

        Args:
            job_id: ID of the job
            worker_id: Owning worker

        Returns:
            True if the job was released
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            UPDATE jobs
            SET state = 'waiting', worker_id = NULL, lease_until = NULL,
                started_at = NULL, progress = 0
            WHERE id = ? AND state = 'active' AND worker_id = ?
            """,
            (job_id, worker_id),
        )
        await conn.commit()
        return cursor.rowcount == 1

    async def remove(self, job_id: str) -> bool:
        """
        Remove a waiting or active job.

        The row is kept with state "removed" so a worker still executing the
        job can observe the cancellation.

        Args:
            job_id: ID of the job

        Returns:
            True if removal occurred
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            """
            UPDATE jobs
            SET state = 'removed', lease_until = NULL, finished_at = ?
            WHERE id = ? AND state IN ('waiting', 'active')
            """,
            (_now().isoformat(), job_id),
        )
        await conn.commit()
        return cursor.rowcount == 1

    async def requeue_expired(
        self, max_attempts: int
    ) -> tuple[list[str], list[str]]:
        """
        Recover active jobs whose lease has expired.

        Args:
            max_attempts: Jobs that already used this many attempts are failed

        Returns:
            (IDs put back in the waiting state, IDs failed as lost)
        """
        conn = await self._get_connection()

        now = _now()
        cursor = await conn.execute(
            """
            SELECT id, attempts FROM jobs
            WHERE state = 'active' AND lease_until IS NOT NULL AND lease_until < ?
            """,
            (now.isoformat(),),
        )
        rows = await cursor.fetchall()

        requeued = []
        failed = []
        for job_id, attempts in rows:
            attempts += 1
            if attempts >= max_attempts:
                cursor = await conn.execute(
                    """
                    UPDATE jobs
                    SET state = 'failed', attempts = ?, lease_until = NULL,
                        failed_reason = ?, finished_at = ?
                    WHERE id = ? AND state = 'active' AND lease_until < ?
                    """,
                    (
                        attempts,
                        "Worker lost while processing job",
                        now.isoformat(),
                        job_id,
                        now.isoformat(),
                    ),
                )
                if cursor.rowcount == 1:
                    failed.append(job_id)
                    logger.warning(
                        f"Job {job_id} failed after {attempts} lost attempts"
                    )
            else:
                cursor = await conn.execute(
                    """
                    UPDATE jobs
                    SET state = 'waiting', attempts = ?, worker_id = NULL,
                        lease_until = NULL, started_at = NULL, progress = 0
                    WHERE id = ? AND state = 'active' AND lease_until < ?
                    """,
                    (attempts, job_id, now.isoformat()),
                )
                if cursor.rowcount == 1:
                    requeued.append(job_id)
                    logger.warning(f"Lease expired for job {job_id}, requeued")

        await conn.commit()
        return requeued, failed

    async def add_event(self, event: JobEvent) -> None:
        """
        Add an event to a job's history.

        Args:
            event: Event to add
        """
        conn = await self._get_connection()

        timestamp = event.timestamp or _now()
        await conn.execute(
            """
            INSERT INTO job_events (job_id, type, error, timestamp)
            VALUES (?, ?, ?, ?)
            """,
            (event.job_id, event.type, event.error, timestamp.isoformat()),
        )
        await conn.commit()

    async def get_events(self, job_id: str) -> list[JobEvent]:
        """
        Get all events for a job in insertion order.

        Args:
            job_id: ID of the job

        Returns:
            List of events
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            "SELECT type, error, timestamp FROM job_events WHERE job_id = ? ORDER BY id",
            (job_id,),
        )
        rows = await cursor.fetchall()

        return [
            JobEvent(
                type=event_type,
                job_id=job_id,
                error=error,
                timestamp=datetime.fromisoformat(timestamp),
            )
            for event_type, error, timestamp in rows
        ]
