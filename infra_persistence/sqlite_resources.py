"""
SQLite implementation of the infrastructure resource store.

Status updates are read-modify-merge operations. Each one runs inside a single
IMMEDIATE transaction while holding the store's write lock. The lock covers every
write on the shared connection, so concurrent jobs never overwrite each
other's keys or end up inside each other's transaction.
"""

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from infra_common.models import Resource
from infra_common.repository import ResourceStore

logger = logging.getLogger(__name__)


class SQLiteResourceStore(ResourceStore):
    """
    SQLite-based resource store.

    Uses the resources table (id, name, type, status, JSON config, updated_at).
    """

    def __init__(self, db_path: str = "automation.db"):
        """
        Initialize the resource store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            await self._connection.execute("PRAGMA journal_mode = WAL")
            await self._connection.execute("PRAGMA busy_timeout = 5000")
        return self._connection

    async def initialize(self) -> None:
        """Create the resources table if it doesn't exist."""
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS resources (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                status TEXT NOT NULL,
                config TEXT NOT NULL,
                updated_at TEXT
            )
        """)
        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def create_resource(self, resource: Resource) -> None:
        """
        Persist a new resource record.

        Args:
            resource: Resource to store

        Raises:
            sqlite3.IntegrityError: If the ID is already taken
        """
        conn = await self._get_connection()

        updated_at = resource.updated_at or datetime.now(UTC)
        async with self._write_lock:
            try:
                await conn.execute(
                    """
                    INSERT INTO resources (id, name, type, status, config, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        resource.id,
                        resource.name,
                        resource.type,
                        resource.status,
                        json.dumps(resource.config),
                        updated_at.isoformat(),
                    ),
                )
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    async def get_resource(self, resource_id: str) -> Resource | None:
        """
        Retrieve a resource by its ID.

        Args:
            resource_id: ID of the resource

        Returns:
            Resource if found, None otherwise
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            "SELECT id, name, type, status, config, updated_at FROM resources WHERE id = ?",
            (resource_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_resource(row)

    async def list_resources(self) -> list[Resource]:
        """List all resources ordered by ID."""
        conn = await self._get_connection()

        cursor = await conn.execute(
            "SELECT id, name, type, status, config, updated_at FROM resources ORDER BY id"
        )
        rows = await cursor.fetchall()
        return [self._row_to_resource(row) for row in rows]

    async def update_status(
        self, resource_id: str, status: str, config_patch: dict[str, Any]
    ) -> Resource:
        """
        Set a resource's status and merge keys into its configuration.

        Args:
            resource_id: ID of the resource
            status: New status
            config_patch: Keys merged over the stored configuration

        Returns:
            The updated resource

        Raises:
            KeyError: If the resource does not exist
        """
        conn = await self._get_connection()

        async with self._write_lock:
            # IMMEDIATE takes the write lock up front so other processes
            # cannot interleave between our read and our write
            await conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = await conn.execute(
                    "SELECT id, name, type, status, config, updated_at FROM resources WHERE id = ?",
                    (resource_id,),
                )
                row = await cursor.fetchone()
                if row is None:
                    raise KeyError(f"Resource not found: {resource_id}")

                resource = self._row_to_resource(row)
                resource.config = {**resource.config, **config_patch}
                resource.status = status
                resource.updated_at = datetime.now(UTC)

                await conn.execute(
                    "UPDATE resources SET status = ?, config = ?, updated_at = ? WHERE id = ?",
                    (
                        resource.status,
                        json.dumps(resource.config),
                        resource.updated_at.isoformat(),
                        resource_id,
                    ),
                )
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

        logger.debug(f"Resource {resource_id} status set to {status}")
        return resource

    def _row_to_resource(self, row: tuple) -> Resource:
        resource_id, name, resource_type, status, config_json, updated_at = row
        return Resource(
            id=resource_id,
            name=name,
            type=resource_type,
            status=status,
            config=json.loads(config_json),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )
