"""
Generator invoker for the external code-generation CLI.

Each task runs the CLI in its own working directory with a hard timeout.
Whatever files the CLI leaves behind are harvested afterwards, even when the
process timed out or exited with an error, because the tool may keep writing
files right up until it is reaped.
"""

import asyncio
import logging
import os
import re
import shutil
import tempfile
import time
from pathlib import Path

from infra_common.models import (
    DEFAULT_TIMEOUT_MS,
    ArtifactBundle,
    AutomationTask,
    InvocationResult,
)

from .artifacts import PROMPT_FILE, read_artifacts
from .prompts import build_prompt

logger = logging.getLogger(__name__)

CREATED_MARKER = ".created"
DEFAULT_CLI_ARGS = ["--oneshot", "--mode", "plan", "--output-format", "plain"]


def sanitize_task_id(task_id: str) -> str:
    """Make a task ID safe to use as a directory name."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", task_id)


class GeneratorInvoker:
    """
    Runs automation tasks through the external generation CLI.

    invoke() never raises for task failures: errors are reported through
    InvocationResult. Cancelling the awaiting asyncio task terminates the
    external process before the CancelledError propagates.
    """

    def __init__(
        self,
        cli_path: str = "cline",
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        work_dir: str | Path | None = None,
        cli_args: list[str] | None = None,
        terminate_grace: float = 5.0,
    ):
        """
        Initialize the invoker.

        Args:
            cli_path: Executable of the generation CLI
            default_timeout_ms: Timeout for tasks that don't set one
            work_dir: Parent directory for per-task working directories
            cli_args: Arguments passed after the prompt
            terminate_grace: Seconds to wait after SIGTERM before SIGKILL
        """
        self.cli_path = cli_path
        self.default_timeout_ms = default_timeout_ms
        self.work_dir = (
            Path(work_dir)
            if work_dir
            else Path(tempfile.gettempdir()) / "automation-tasks"
        )
        self.cli_args = DEFAULT_CLI_ARGS if cli_args is None else list(cli_args)
        self.terminate_grace = terminate_grace

        # Directory names of invocations currently running
        self._in_flight: set[str] = set()

    def task_dir(self, task_id: str) -> Path:
        """Working directory used for a task."""
        return self.work_dir / sanitize_task_id(task_id)

    async def invoke(self, task: AutomationTask) -> InvocationResult:
        """
        Execute one task and collect its artifacts.

        Args:
            task: The automation task to run

        Returns:
            InvocationResult describing the outcome
        """
        task_dir = self.task_dir(task.id)
        timeout_ms = task.timeout_ms or self.default_timeout_ms
        logger.info(f"Executing task {task.id} (kind={task.kind}, timeout={timeout_ms}ms)")

        self._in_flight.add(task_dir.name)
        try:
            return await self._invoke(task, task_dir, timeout_ms)
        finally:
            self._in_flight.discard(task_dir.name)

    async def _invoke(
        self, task: AutomationTask, task_dir: Path, timeout_ms: int
    ) -> InvocationResult:
        start = time.monotonic()
        output = bytearray()
        exit_code: int | None = None
        timed_out = False
        error: str | None = None

        try:
            self._prepare_task_dir(task_dir)
            prompt = build_prompt(task)
            (task_dir / PROMPT_FILE).write_text(prompt, encoding="utf-8")
            exit_code, timed_out = await self._run_cli(
                prompt, task_dir, timeout_ms, output
            )
        except Exception as e:
            error = f"Failed to run generator: {e}"
            logger.error(f"Task {task.id} could not be run: {e}", exc_info=True)

        duration_ms = int((time.monotonic() - start) * 1000)
        artifacts = read_artifacts(task_dir)

        return self._build_result(
            task,
            output=output.decode("utf-8", errors="replace"),
            exit_code=exit_code,
            timed_out=timed_out,
            timeout_ms=timeout_ms,
            error=error,
            artifacts=artifacts,
            duration_ms=duration_ms,
        )

    def _prepare_task_dir(self, task_dir: Path) -> None:
        task_dir.mkdir(parents=True, exist_ok=True)
        marker = task_dir / CREATED_MARKER
        if not marker.exists():
            marker.touch()

    def _build_env(self) -> dict[str, str]:
        return {
            **os.environ,
            "CI": "true",
            "CLINE_AUTO_APPROVE": "true",
            "CLINE_NON_INTERACTIVE": "true",
        }

    async def _run_cli(
        self, prompt: str, task_dir: Path, timeout_ms: int, output: bytearray
    ) -> tuple[int | None, bool]:
        """
        Spawn the CLI and wait for it to exit or time out.

        Returns:
            Tuple of (exit_code, timed_out)
        """
        process = await asyncio.create_subprocess_exec(
            self.cli_path,
            prompt,
            *self.cli_args,
            cwd=str(task_dir),
            env=self._build_env(),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        assert process.stdout is not None, (
            "stdout should be available when PIPE is specified"
        )
        reader = asyncio.create_task(self._collect_output(process.stdout, output))

        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning(f"Generator in {task_dir.name} timed out after {timeout_ms}ms")
            await self._terminate(process)
            timed_out = True
        except asyncio.CancelledError:
            logger.info(f"Task in {task_dir.name} cancelled, terminating generator")
            await self._terminate(process)
            reader.cancel()
            raise

        try:
            await asyncio.wait_for(reader, timeout=self.terminate_grace)
        except asyncio.TimeoutError:
            # A grandchild may still hold the pipe open
            logger.warning(f"Output stream for {task_dir.name} still open after exit")

        return process.returncode, timed_out

    async def _collect_output(
        self, stream: asyncio.StreamReader, output: bytearray
    ) -> None:
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            output.extend(chunk)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate a process, escalating to kill after the grace period."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.terminate_grace)
        except asyncio.TimeoutError:
            logger.warning(f"Generator process {process.pid} ignored SIGTERM, killing")
            process.kill()
            await process.wait()

    def _build_result(
        self,
        task: AutomationTask,
        output: str,
        exit_code: int | None,
        timed_out: bool,
        timeout_ms: int,
        error: str | None,
        artifacts: ArtifactBundle | None,
        duration_ms: int,
    ) -> InvocationResult:
        if error is None:
            if timed_out:
                error = f"Generator timed out after {timeout_ms}ms"
            elif exit_code != 0:
                error = f"Generator exited with status {exit_code}"

        if artifacts is None:
            error = error or "Generator produced no artifacts"
            logger.error(f"Task {task.id} failed after {duration_ms}ms: {error}")
            return InvocationResult(
                success=False, output=output, error=error, duration_ms=duration_ms
            )

        if error is None:
            logger.info(
                f"Task {task.id} completed in {duration_ms}ms "
                f"with {len(artifacts)} artifact(s)"
            )
            return InvocationResult(
                success=True, output=output, duration_ms=duration_ms, artifacts=artifacts
            )

        # Timed out or exited non-zero, but files were written: partial success
        logger.warning(
            f"Task {task.id} partially completed: {error}; "
            f"recovered {len(artifacts)} artifact(s)"
        )
        return InvocationResult(
            success=True,
            output=output or "Task completed with timeout",
            error=f"{error}; recovered {len(artifacts)} artifact(s)",
            duration_ms=duration_ms,
            artifacts=artifacts,
            partial=True,
        )

    async def execute_parallel(
        self, tasks: list[AutomationTask]
    ) -> list[InvocationResult]:
        """
        Run all tasks concurrently and collect every result.

        Args:
            tasks: Tasks to run

        Returns:
            Results in the same order as the tasks
        """
        logger.info(f"Executing {len(tasks)} tasks in parallel")
        return list(await asyncio.gather(*(self.invoke(task) for task in tasks)))

    async def execute_sequential(
        self, tasks: list[AutomationTask]
    ) -> list[InvocationResult]:
        """
        Run tasks one at a time in order.

        A failed critical task stops the batch; other failures do not.

        Args:
            tasks: Tasks to run

        Returns:
            Results of the tasks that were executed
        """
        logger.info(f"Executing {len(tasks)} tasks sequentially")
        results = []

        for task in tasks:
            result = await self.invoke(task)
            results.append(result)

            if not result.success and task.priority == "critical":
                logger.error(f"Critical task {task.id} failed, stopping execution")
                break

        return results

    async def validate_cli(self) -> bool:
        """
        Check that the generation CLI can be executed.

        Returns:
            True if "<cli> version" exits cleanly within 5 seconds
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.cli_path,
                "version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            logger.error(f"Generator CLI {self.cli_path} not found or not executable: {e}")
            return False

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=5)
        except asyncio.TimeoutError:
            await self._terminate(process)
            logger.error(f"Generator CLI {self.cli_path} did not answer in time")
            return False

        if process.returncode != 0:
            logger.error(f"Generator CLI {self.cli_path} exited with {process.returncode}")
            return False

        logger.info(f"Generator CLI validated: {stdout.decode().strip()}")
        return True

    async def cleanup(self, max_age_ms: int = 3_600_000) -> int:
        """
        Delete task working directories older than max_age_ms.

        Age comes from the creation marker, or the directory mtime when the
        marker is missing. Directories of running invocations are skipped.

        Args:
            max_age_ms: Minimum age in milliseconds for removal

        Returns:
            Number of directories removed
        """
        if not self.work_dir.is_dir():
            return 0

        now = time.time()
        removed = 0

        try:
            entries = list(self.work_dir.iterdir())
        except OSError as e:
            logger.warning(f"Failed to list task directories: {e}")
            return 0

        for entry in entries:
            if not entry.is_dir() or entry.name in self._in_flight:
                continue

            try:
                try:
                    created = (entry / CREATED_MARKER).stat().st_mtime
                except FileNotFoundError:
                    created = entry.stat().st_mtime
            except FileNotFoundError:
                # Removed by a concurrent cleanup
                continue

            if (now - created) * 1000 > max_age_ms:
                shutil.rmtree(entry, ignore_errors=True)
                removed += 1
                logger.info(f"Cleaned up old task directory {entry.name}")

        return removed
