"""
Abstract interfaces for job queue and resource persistence.

This module defines the contract that any storage implementation must follow,
allowing easy swapping between SQLite, PostgreSQL, Redis, etc.
"""

from abc import ABC, abstractmethod
from typing import Any

from .models import JobEvent, QueuedJob, Resource


class JobQueue(ABC):
    """
    Abstract base class for the durable automation job queue.

    The queue exclusively owns job state. Implementations must provide
    async-safe access and handle their own connection management.
    """

    @abstractmethod
    async def enqueue(self, job: QueuedJob) -> None:
        """
        Add a new job in the waiting state.

        Args:
            job: Job to persist

        Raises:
            Exception: If a job with the same ID already exists
        """
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> QueuedJob | None:
        """
        Retrieve a job by its ID.

        Args:
            job_id: ID of the job to retrieve

        Returns:
            QueuedJob if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_jobs(self, state: str | None = None) -> list[QueuedJob]:
        """
        List jobs, optionally filtered by state, oldest first.

        Args:
            state: Only return jobs in this state

        Returns:
            List of QueuedJob objects
        """
        pass

    @abstractmethod
    async def claim(self, worker_id: str, lease_seconds: float) -> QueuedJob | None:
        """
        Move the oldest waiting job to active and lease it to a worker.

        Args:
            worker_id: Identifier of the claiming worker
            lease_seconds: Lease duration; the worker must renew before expiry

        Returns:
            The claimed job, or None when nothing is waiting
        """
        pass

    @abstractmethod
    async def renew_lease(
        self, job_id: str, worker_id: str, lease_seconds: float
    ) -> bool:
        """
        Extend the lease of an active job owned by the worker.

        Returns:
            True if the lease was extended, False if the worker lost the job
        """
        pass

    @abstractmethod
    async def update_progress(self, job_id: str, progress: int) -> None:
        """Record job progress (0-100)."""
        pass

    @abstractmethod
    async def complete(
        self, job_id: str, worker_id: str, return_value: dict[str, Any]
    ) -> bool:
        """
        Mark an active job as completed.

        Returns:
            True if the transition happened (job still active and owned)
        """
        pass

    @abstractmethod
    async def fail(self, job_id: str, worker_id: str | None, reason: str) -> bool:
        """
        Mark an active job as failed.

        Args:
            job_id: ID of the job
            worker_id: Owning worker, or None to fail regardless of owner
            reason: Failure description stored as failed_reason

        Returns:
            True if the transition happened
        """
        pass

    @abstractmethod
    async def release(self, job_id: str, worker_id: str) -> bool:
        """
        Hand an active job back to the waiting state without counting an attempt.

        Returns:
            True if the job was released
        """
        pass

    @abstractmethod
    async def remove(self, job_id: str) -> bool:
        """
        Remove a waiting or active job (cancellation).

        Returns:
            True if removal occurred, False for unknown or finished jobs
        """
        pass

    @abstractmethod
    async def requeue_expired(
        self, max_attempts: int
    ) -> tuple[list[str], list[str]]:
        """
        Recover active jobs whose lease has expired.

        Jobs below max_attempts go back to waiting; the rest are failed.

        Returns:
            Tuple of (IDs put back in the waiting state, IDs that were failed)
        """
        pass

    @abstractmethod
    async def add_event(self, event: JobEvent) -> None:
        """Append an event to the job's history."""
        pass

    @abstractmethod
    async def get_events(self, job_id: str) -> list[JobEvent]:
        """Return the job's events in the order they were recorded."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the storage (create tables, etc.).

        Called once at application startup.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close connections and cleanup resources.

        Called at application shutdown.
        """
        pass


class ResourceStore(ABC):
    """
    Abstract base class for infrastructure resource records.

    Status updates merge into the stored configuration; implementations must
    serialize concurrent updates to the same resource.
    """

    @abstractmethod
    async def create_resource(self, resource: Resource) -> None:
        """
        Persist a new resource record.

        Raises:
            Exception: If a resource with the same ID already exists
        """
        pass

    @abstractmethod
    async def get_resource(self, resource_id: str) -> Resource | None:
        """Retrieve a resource by ID, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_resources(self) -> list[Resource]:
        """List all resource records."""
        pass

    @abstractmethod
    async def update_status(
        self, resource_id: str, status: str, config_patch: dict[str, Any]
    ) -> Resource:
        """
        Set a resource's status and merge keys into its configuration.

        Existing configuration keys not named in config_patch are preserved.

        Args:
            resource_id: ID of the resource
            status: New status ("running", "failed", ...)
            config_patch: Keys to merge into the stored configuration

        Returns:
            The updated resource

        Raises:
            KeyError: If the resource does not exist
        """
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage (create tables, etc.)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources."""
        pass
