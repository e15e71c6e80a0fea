"""
Standalone entrypoint for running the automation worker.

The worker runs as a separate process from the API server; both share the
SQLite database that holds the job queue and the resource records.

Usage:
    python -m infra_worker [OPTIONS]
    automation-worker [OPTIONS]  (after pip install)

Environment Variables:
    AUTOMATION_DB_PATH: Database path (default: automation.db)
    AUTOMATION_CLI_PATH: Generation CLI executable (default: cline)
    AUTOMATION_WORK_DIR: Parent of per-task working directories
    AUTOMATION_ARTIFACTS_DIR: Where generated files are saved (default: artifacts)
    AUTOMATION_CONCURRENCY: Jobs executed at once (default: 4)
    AUTOMATION_POLL_INTERVAL: Seconds between polling cycles (default: 1.0)
    AUTOMATION_LEASE_SECONDS: Job lease duration (default: 60)
    AUTOMATION_MAX_ATTEMPTS: Lost attempts before a job is failed (default: 3)
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Any

from infra_codegen.invoker import GeneratorInvoker
from infra_persistence.sqlite_queue import SQLiteJobQueue
from infra_persistence.sqlite_resources import SQLiteResourceStore
from infra_worker.worker import AutomationWorker

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Automation worker - executes queued infrastructure generation jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  AUTOMATION_DB_PATH         Database path (default: automation.db)
  AUTOMATION_CLI_PATH        Generation CLI executable (default: cline)
  AUTOMATION_WORK_DIR        Parent of per-task working directories
  AUTOMATION_ARTIFACTS_DIR   Where generated files are saved (default: artifacts)
  AUTOMATION_CONCURRENCY     Jobs executed at once (default: 4)
  AUTOMATION_POLL_INTERVAL   Seconds between polling cycles (default: 1.0)
  AUTOMATION_LEASE_SECONDS   Job lease duration (default: 60)
  AUTOMATION_MAX_ATTEMPTS    Lost attempts before a job is failed (default: 3)

Note: Command-line arguments override environment variables.

Examples:
  # Run with default settings
  automation-worker

  # Use a custom database and run two jobs at a time
  automation-worker --db-path /tmp/automation.db --concurrency 2

  # Enable debug logging
  automation-worker --log-level DEBUG
        """,
    )

    parser.add_argument("--db-path", type=str, default=None, help="Path to SQLite database file")
    parser.add_argument("--cli-path", type=str, default=None, help="Generation CLI executable")
    parser.add_argument("--work-dir", type=str, default=None, help="Parent of task working directories")
    parser.add_argument("--artifacts-dir", type=str, default=None, help="Where generated files are saved")
    parser.add_argument("--concurrency", type=int, default=None, help="Jobs executed at once")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between polling cycles")
    parser.add_argument("--lease-seconds", type=float, default=None, help="Job lease duration in seconds")
    parser.add_argument("--max-attempts", type=int, default=None, help="Lost attempts before a job is failed")
    parser.add_argument(
        "--workdir-max-age",
        type=int,
        default=3_600_000,
        help="Delete task directories older than this many ms (default: 3600000, 0 disables)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def get_database_path(args: argparse.Namespace) -> str:
    """Get the database path from CLI args or environment or use default."""
    if args.db_path:
        return args.db_path
    return os.environ.get("AUTOMATION_DB_PATH", "automation.db")


def get_cli_path(args: argparse.Namespace) -> str:
    """Get the generation CLI executable from CLI args or environment."""
    if args.cli_path:
        return args.cli_path
    return os.environ.get("AUTOMATION_CLI_PATH", "cline")


def get_work_dir(args: argparse.Namespace) -> str | None:
    """Get the task working directory root, None for the system temp default."""
    if args.work_dir:
        return args.work_dir
    return os.environ.get("AUTOMATION_WORK_DIR") or None


def get_artifacts_dir(args: argparse.Namespace) -> str:
    """Get the artifacts directory from CLI args or environment."""
    if args.artifacts_dir:
        return args.artifacts_dir
    return os.environ.get("AUTOMATION_ARTIFACTS_DIR", "artifacts")


def _positive_setting(
    cli_value: float | None, env_name: str, default: float, cast: type = float
) -> Any:
    """
    Resolve a positive numeric setting from CLI arg, then environment.

    Invalid values are logged and replaced by the default.
    """
    if cli_value is not None:
        if cli_value <= 0:
            logger.warning(f"Invalid value {cli_value} for {env_name}, using default {default}")
            return cast(default)
        return cast(cli_value)

    raw = os.environ.get(env_name)
    if raw is None:
        return cast(default)
    try:
        value = cast(raw)
    except ValueError:
        logger.warning(f"Invalid {env_name}={raw}, using default {default}")
        return cast(default)
    if value <= 0:
        logger.warning(f"Invalid {env_name}={value}, using default {default}")
        return cast(default)
    return value


def get_concurrency(args: argparse.Namespace) -> int:
    return _positive_setting(args.concurrency, "AUTOMATION_CONCURRENCY", 4, int)


def get_poll_interval(args: argparse.Namespace) -> float:
    return _positive_setting(args.interval, "AUTOMATION_POLL_INTERVAL", 1.0)


def get_lease_seconds(args: argparse.Namespace) -> float:
    return _positive_setting(args.lease_seconds, "AUTOMATION_LEASE_SECONDS", 60.0)


def get_max_attempts(args: argparse.Namespace) -> int:
    return _positive_setting(args.max_attempts, "AUTOMATION_MAX_ATTEMPTS", 3, int)


async def run_worker(args: argparse.Namespace) -> None:
    """
    Initialize and run the worker until SIGINT or SIGTERM.

    Args:
        args: Parsed command-line arguments
    """
    db_path = get_database_path(args)
    cli_path = get_cli_path(args)
    work_dir = get_work_dir(args)
    artifacts_dir = get_artifacts_dir(args)
    concurrency = get_concurrency(args)
    poll_interval = get_poll_interval(args)
    lease_seconds = get_lease_seconds(args)
    max_attempts = get_max_attempts(args)

    logger.info("Starting automation worker")
    logger.info(f"  Database: {db_path}")
    logger.info(f"  Generator CLI: {cli_path}")
    logger.info(f"  Work dir: {work_dir or '(system temp)'}")
    logger.info(f"  Artifacts dir: {artifacts_dir}")
    logger.info(f"  Concurrency: {concurrency}")
    logger.info(f"  Poll interval: {poll_interval}s")
    logger.info(f"  Lease: {lease_seconds}s, max attempts: {max_attempts}")

    queue = SQLiteJobQueue(db_path)
    await queue.initialize()
    resources = SQLiteResourceStore(db_path)
    await resources.initialize()
    logger.info("Database initialized")

    invoker = GeneratorInvoker(cli_path=cli_path, work_dir=work_dir)
    if not await invoker.validate_cli():
        logger.warning("Generator CLI check failed; jobs will fail until it is available")

    worker = AutomationWorker(
        queue=queue,
        resources=resources,
        invoker=invoker,
        artifacts_dir=artifacts_dir,
        concurrency=concurrency,
        poll_interval=poll_interval,
        lease_seconds=lease_seconds,
        max_attempts=max_attempts,
        workdir_max_age_ms=args.workdir_max_age or None,
    )

    shutdown_event = asyncio.Event()

    def signal_handler(sig: Any, _frame: Any) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await worker.start()
        logger.info("Worker started successfully")
        await shutdown_event.wait()
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise
    finally:
        logger.info("Stopping worker...")
        await worker.stop()
        logger.info("Closing database connections...")
        await resources.close()
        await queue.close()
        logger.info("Worker stopped cleanly")


def main() -> int:
    """
    Main entrypoint for the worker.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(run_worker(args))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
