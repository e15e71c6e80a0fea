"""
Automation worker that executes queued jobs.

The worker runs a polling loop that:
1. Recovers jobs whose lease expired (a worker died mid-job)
2. Renews leases of its own running jobs and stops jobs that were cancelled
3. Claims waiting jobs up to its concurrency limit
4. Dispatches each job to a generator, persists the outcome on the linked
   resource record and reports the terminal job state
"""

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from infra_codegen.docker import DockerGenerator
from infra_codegen.invoker import GeneratorInvoker, sanitize_task_id
from infra_codegen.kubernetes import KubernetesGenerator
from infra_codegen.terraform import TerraformGenerator
from infra_common.models import JobEvent, QueuedJob
from infra_common.repository import JobQueue, ResourceStore

logger = logging.getLogger(__name__)

JobListener = Callable[[JobEvent], Awaitable[None] | None]


class AutomationWorker:
    """
    Worker that pulls automation jobs from the queue and executes them.

    Jobs are leased: the worker renews the lease of every job it is running
    on each poll cycle, and any job whose lease lapses is handed back to the
    queue (or failed once it has used up max_attempts). Execution is
    therefore at-least-once.
    """

    def __init__(
        self,
        queue: JobQueue,
        resources: ResourceStore,
        invoker: GeneratorInvoker | None = None,
        terraform_generator: TerraformGenerator | None = None,
        kubernetes_generator: KubernetesGenerator | None = None,
        docker_generator: DockerGenerator | None = None,
        artifacts_dir: str | Path = "artifacts",
        concurrency: int = 4,
        poll_interval: float = 1.0,
        lease_seconds: float = 60.0,
        max_attempts: int = 3,
        workdir_max_age_ms: int | None = None,
        cleanup_interval: float = 600.0,
        worker_id: str | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: Durable job queue
            resources: Store for the resource records jobs update
            invoker: Invoker shared by the default generators
            terraform_generator: Generator for provision-terraform jobs
            kubernetes_generator: Generator for provision-kubernetes jobs
            docker_generator: Generator for generate-docker jobs
            artifacts_dir: Where generated files are saved
            concurrency: Maximum number of jobs executed at once
            poll_interval: Seconds between polling cycles
            lease_seconds: Lease duration for claimed jobs
            max_attempts: Lost attempts after which a job is failed
            workdir_max_age_ms: If set, periodically delete older task dirs
            cleanup_interval: Seconds between working-directory cleanups
            worker_id: Identifier recorded on claimed jobs
        """
        self.queue = queue
        self.resources = resources
        self.invoker = invoker or GeneratorInvoker()
        self.terraform = terraform_generator or TerraformGenerator(self.invoker)
        self.kubernetes = kubernetes_generator or KubernetesGenerator(self.invoker)
        self.docker = docker_generator or DockerGenerator(self.invoker)
        self.artifacts_dir = Path(artifacts_dir)
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.lease_seconds = lease_seconds
        self.max_attempts = max_attempts
        self.workdir_max_age_ms = workdir_max_age_ms
        self.cleanup_interval = cleanup_interval
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:12]}"

        self._handlers: dict[
            str, Callable[[QueuedJob], Awaitable[dict[str, Any]]]
        ] = {
            "provision-terraform": self._provision_terraform,
            "provision-kubernetes": self._provision_kubernetes,
            "generate-docker": self._generate_docker,
        }

        # Track running jobs: job_id -> asyncio task executing it
        self.active_jobs: dict[str, asyncio.Task] = {}
        self._listeners: list[JobListener] = []
        self._running = False
        self._task: asyncio.Task | None = None
        self._last_cleanup = 0.0

    def add_listener(self, listener: JobListener) -> None:
        """
        Register a callback for terminal job events.

        Args:
            listener: Sync or async callable receiving each JobEvent
        """
        self._listeners.append(listener)

    async def start(self) -> None:
        """Start the worker polling loop."""
        if self._running:
            logger.warning("Worker already running")
            return

        # Recover jobs left behind by crashed workers before taking new ones
        await self._recover_expired()

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Automation worker {self.worker_id} started")

    async def stop(self) -> None:
        """Stop the worker and hand unfinished jobs back to the queue."""
        if not self._running:
            return

        logger.info("Stopping automation worker...")
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        running = dict(self.active_jobs)
        for task in running.values():
            task.cancel()
        await asyncio.gather(*running.values(), return_exceptions=True)

        for job_id in running:
            if await self.queue.release(job_id, self.worker_id):
                logger.info(f"Released job {job_id} back to the queue")

        self.active_jobs.clear()
        logger.info("Automation worker stopped")

    async def _run_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            try:
                await self.process_once()
                await self._maybe_cleanup_workdirs()
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in worker loop: {e}", exc_info=True)
                await asyncio.sleep(self.poll_interval)

    async def process_once(self) -> list[str]:
        """
        Perform one polling cycle.

        Returns:
            IDs of the jobs claimed during this cycle
        """
        await self._recover_expired()
        await self._sync_active_jobs()

        claimed = []
        while len(self.active_jobs) < self.concurrency:
            job = await self.queue.claim(self.worker_id, self.lease_seconds)
            if job is None:
                break
            claimed.append(job.id)
            self.active_jobs[job.id] = asyncio.create_task(self.execute(job))

        if claimed:
            logger.debug(f"Claimed {len(claimed)} job(s): {claimed}")
        return claimed

    async def _recover_expired(self) -> None:
        requeued, failed = await self.queue.requeue_expired(self.max_attempts)
        for job_id in requeued:
            await self._emit(JobEvent(type="requeued", job_id=job_id), notify=False)

        for job_id in failed:
            job = await self.queue.get_job(job_id)
            if job is None:
                continue
            await self._record_resource_status(job, success=False)
            await self._emit(
                JobEvent(type="failed", job_id=job_id, error=job.failed_reason)
            )

    async def _sync_active_jobs(self) -> None:
        """Renew leases and stop jobs that were cancelled through the queue."""
        for job_id, task in list(self.active_jobs.items()):
            if task.done():
                self.active_jobs.pop(job_id, None)
                continue

            if await self.queue.renew_lease(job_id, self.worker_id, self.lease_seconds):
                continue

            job = await self.queue.get_job(job_id)
            if job is None or job.state == "removed":
                logger.info(f"Job {job_id} was cancelled, stopping its generator")
            else:
                logger.warning(f"Lost lease on job {job_id} (state={job.state}), abandoning it")
            task.cancel()

    async def _maybe_cleanup_workdirs(self) -> None:
        if self.workdir_max_age_ms is None:
            return
        now = time.monotonic()
        if now - self._last_cleanup < self.cleanup_interval:
            return
        self._last_cleanup = now
        removed = await self.invoker.cleanup(self.workdir_max_age_ms)
        if removed:
            logger.info(f"Removed {removed} stale task directories")

    async def execute(self, job: QueuedJob) -> None:
        """
        Execute one claimed job through to its terminal state.

        Args:
            job: Job claimed by this worker
        """
        logger.info(f"Processing job {job.id} (action={job.action})")

        try:
            handler = self._handlers.get(job.action)
            if handler is None:
                await self._fail_job(job, f"Unknown action: {job.action}")
                return

            await self.queue.update_progress(job.id, 10)
            try:
                return_value = await handler(job)
            except asyncio.CancelledError:
                logger.info(f"Job {job.id} interrupted")
                raise
            except Exception as e:
                logger.error(f"Job {job.id} failed: {e}", exc_info=True)
                await self._fail_job(job, str(e), record_resource=True)
                return

            if await self.queue.complete(job.id, self.worker_id, return_value):
                logger.info(f"Job {job.id} completed")
                await self._record_resource_status(
                    job, success=True, artifact_path=return_value.get("artifact_path")
                )
                await self._emit(JobEvent(type="completed", job_id=job.id))
            else:
                logger.warning(f"Job {job.id} finished but is no longer owned by this worker")
        finally:
            self.active_jobs.pop(job.id, None)

    async def _fail_job(
        self, job: QueuedJob, reason: str, record_resource: bool = False
    ) -> None:
        if await self.queue.fail(job.id, self.worker_id, reason):
            if record_resource:
                await self._record_resource_status(job, success=False)
            await self._emit(JobEvent(type="failed", job_id=job.id, error=reason))
        else:
            logger.warning(f"Job {job.id} failed but is no longer owned by this worker")

    async def _record_resource_status(
        self, job: QueuedJob, success: bool, artifact_path: str | None = None
    ) -> None:
        """
        Merge the job outcome into the linked resource record.

        Best effort: a failed write is logged and dropped.
        """
        if not job.resource_id:
            return

        entry: dict[str, Any] = {
            "jobId": job.id,
            "timestamp": datetime.now(UTC).isoformat(),
            "success": success,
        }
        if artifact_path:
            entry["artifactPath"] = artifact_path

        status = "running" if success else "failed"
        try:
            await self.resources.update_status(
                job.resource_id, status, {"lastAutomation": entry}
            )
        except Exception as e:
            logger.error(
                f"Failed to update resource {job.resource_id} for job {job.id}: {e}",
                exc_info=True,
            )

    async def _emit(self, event: JobEvent, notify: bool = True) -> None:
        if event.timestamp is None:
            event.timestamp = datetime.now(UTC)

        try:
            await self.queue.add_event(event)
        except Exception as e:
            logger.error(f"Failed to record {event.type} event for job {event.job_id}: {e}")

        if not notify:
            return

        for listener in self._listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Job listener failed on {event.type} event: {e}", exc_info=True)

    def _artifact_dir(self, job: QueuedJob) -> Path:
        return self.artifacts_dir / sanitize_task_id(job.resource_id or job.id)

    def _save_artifact(self, job: QueuedJob, filename: str, content: str) -> Path:
        target_dir = self._artifact_dir(job)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename
        path.write_text(content, encoding="utf-8")
        logger.info(f"Saved artifact {path} for job {job.id}")
        return path

    async def _provision_terraform(self, job: QueuedJob) -> dict[str, Any]:
        terraform = await self.terraform.generate(job.config)
        path = self._save_artifact(job, "main.tf", terraform)
        return {"success": True, "output": terraform, "artifact_path": str(path)}

    async def _provision_kubernetes(self, job: QueuedJob) -> dict[str, Any]:
        stack = await self.kubernetes.generate_full_stack(job.config)
        for name, manifest in stack.items():
            self._save_artifact(job, f"{name}.yaml", manifest)
        return {
            "success": True,
            "output": stack,
            "artifact_path": f"{self._artifact_dir(job)}/",
        }

    async def _generate_docker(self, job: QueuedJob) -> dict[str, Any]:
        config = job.config
        dockerfile = await self.docker.generate_nodejs(
            node_version=config.node_version,
            workdir=config.workdir,
            port=config.port,
            base_image=config.base_image,
        )
        path = self._save_artifact(job, "Dockerfile", dockerfile)
        return {"success": True, "output": dockerfile, "artifact_path": str(path)}
