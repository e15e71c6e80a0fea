"""
Automation service facade.

The boundary the HTTP layer and the dashboard consume: submit a job, query
its status, cancel it. The service only enqueues, reads and removes; job
execution and outcome belong to the worker.
"""

import logging
import uuid
from typing import Any

from infra_common.configs import (
    DockerJobConfig,
    JobConfig,
    KubernetesStackConfig,
    TerraformConfig,
    action_for_kind,
    parse_job_config,
)
from infra_common.models import QueuedJob
from infra_common.repository import JobQueue

logger = logging.getLogger(__name__)


class AutomationService:
    """Public job lifecycle operations on top of an injected job queue."""

    def __init__(self, queue: JobQueue):
        """
        Initialize the service.

        Args:
            queue: Queue that owns job state
        """
        self.queue = queue

    async def create_job(
        self,
        kind: str,
        resource_id: str | None,
        config: JobConfig | dict[str, Any],
    ) -> str:
        """
        Enqueue a job and return immediately.

        Args:
            kind: "terraform", "kubernetes" or "docker"
            resource_id: Resource record updated when the job finishes
            config: Typed config or raw payload for the kind

        Returns:
            ID of the new job

        Raises:
            ValueError: If the kind is unknown or the config doesn't match it
        """
        action = action_for_kind(kind)
        job = QueuedJob(
            id=str(uuid.uuid4()),
            action=action,
            config=parse_job_config(action, config),
            resource_id=resource_id,
        )
        await self.queue.enqueue(job)

        logger.info(f"Queued {action} job {job.id} (resource={resource_id})")
        return job.id

    async def create_terraform_job(
        self, resource_id: str | None, config: TerraformConfig | dict[str, Any]
    ) -> str:
        return await self.create_job("terraform", resource_id, config)

    async def create_kubernetes_job(
        self, resource_id: str | None, config: KubernetesStackConfig | dict[str, Any]
    ) -> str:
        return await self.create_job("kubernetes", resource_id, config)

    async def create_docker_job(
        self, resource_id: str | None, config: DockerJobConfig | dict[str, Any]
    ) -> str:
        return await self.create_job("docker", resource_id, config)

    async def get_job_status(self, job_id: str) -> dict[str, Any] | None:
        """
        Get the current status of a job.

        Returns:
            Status dict (id, state, progress, data, return_value,
            failed_reason), or None if the job is unknown
        """
        job = await self.queue.get_job(job_id)
        if job is None:
            return None
        return job.to_status_dict()

    async def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a waiting or active job.

        For an active job this removes it from the queue; the worker running
        it notices on its next poll and terminates the generator process.

        Returns:
            True if the job was removed
        """
        removed = await self.queue.remove(job_id)
        if removed:
            logger.info(f"Job {job_id} cancelled")
        else:
            logger.info(f"Job {job_id} not cancelled (unknown or already finished)")
        return removed
