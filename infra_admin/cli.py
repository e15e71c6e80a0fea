"""
Admin CLI for operating the infrastructure automation system.

Provides commands for managing resource records, inspecting and recovering
queued jobs, and removing stale generator working directories.
"""

import asyncio
import json
import os
import sqlite3
import sys

import click

from infra_codegen.invoker import GeneratorInvoker
from infra_common.models import Resource
from infra_persistence.sqlite_queue import SQLiteJobQueue
from infra_persistence.sqlite_resources import SQLiteResourceStore


def get_db_path() -> str:
    """Get the database path from environment variable or default."""
    return os.environ.get("AUTOMATION_DB_PATH", "automation.db")


def get_queue() -> SQLiteJobQueue:
    """Get the job queue instance."""
    return SQLiteJobQueue(get_db_path())


def get_resource_store() -> SQLiteResourceStore:
    """Get the resource store instance."""
    return SQLiteResourceStore(get_db_path())


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


@click.group()
def cli():
    """Automation Admin - Manage resources, jobs and working directories."""
    pass


@cli.group()
def resource():
    """Manage resource records."""
    pass


@cli.group()
def job():
    """Inspect and recover jobs."""
    pass


@cli.group()
def workdir():
    """Manage generator working directories."""
    pass


# ============================================================================
# Resource Commands
# ============================================================================


@resource.command("create")
@click.argument("resource_id")
@click.option("--name", required=True, help="Resource display name")
@click.option(
    "--type",
    "resource_type",
    required=True,
    help="Resource type (e.g. terraform, kubernetes, docker)",
)
@click.option("--status", default="pending", show_default=True, help="Initial status")
def resource_create(resource_id: str, name: str, resource_type: str, status: str):
    """Create a new resource record."""

    async def create():
        store = get_resource_store()
        await store.initialize()

        try:
            if await store.get_resource(resource_id):
                click.echo(f"Error: Resource {resource_id} already exists", err=True)
                sys.exit(1)

            resource_obj = Resource(
                id=resource_id, name=name, type=resource_type, status=status
            )
            try:
                await store.create_resource(resource_obj)
            except sqlite3.IntegrityError:
                click.echo(f"Error: Resource {resource_id} already exists", err=True)
                sys.exit(1)

            click.echo("✓ Resource created successfully")
            click.echo(f"  ID:     {resource_obj.id}")
            click.echo(f"  Name:   {resource_obj.name}")
            click.echo(f"  Type:   {resource_obj.type}")
            click.echo(f"  Status: {resource_obj.status}")

        finally:
            await store.close()

    run_async(create())


@resource.command("show")
@click.argument("resource_id")
def resource_show(resource_id: str):
    """Show a resource and its configuration."""

    async def show():
        store = get_resource_store()
        await store.initialize()

        try:
            resource_obj = await store.get_resource(resource_id)
            if not resource_obj:
                click.echo(f"Error: Resource not found: {resource_id}", err=True)
                sys.exit(1)

            click.echo(json.dumps(resource_obj.to_dict(), indent=2))

        finally:
            await store.close()

    run_async(show())


@resource.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def resource_list(json_output: bool):
    """List all resources."""

    async def list_resources():
        store = get_resource_store()
        await store.initialize()

        try:
            resources = await store.list_resources()

            if json_output:
                click.echo(json.dumps([r.to_dict() for r in resources], indent=2))
                return

            if not resources:
                click.echo("No resources found.")
                return

            click.echo(f"\n{'ID':<30} {'Name':<20} {'Type':<12} {'Status':<12}")
            click.echo("-" * 78)
            for r in resources:
                click.echo(f"{r.id:<30} {r.name:<20} {r.type:<12} {r.status:<12}")
            click.echo()

        finally:
            await store.close()

    run_async(list_resources())


# ============================================================================
# Job Commands
# ============================================================================


@job.command("list")
@click.option(
    "--state",
    type=click.Choice(["waiting", "active", "completed", "failed", "removed"]),
    help="Only list jobs in this state",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def job_list(state: str | None, json_output: bool):
    """List jobs, oldest first."""

    async def list_jobs():
        queue = get_queue()
        await queue.initialize()

        try:
            jobs = await queue.list_jobs(state=state)

            if json_output:
                click.echo(json.dumps([j.to_summary_dict() for j in jobs], indent=2))
                return

            if not jobs:
                click.echo("No jobs found.")
                return

            click.echo(
                f"\n{'ID':<38} {'Action':<22} {'Resource':<20} {'State':<10} {'Attempts':<8}"
            )
            click.echo("-" * 102)
            for j in jobs:
                click.echo(
                    f"{j.id:<38} {j.action:<22} {(j.resource_id or '-'):<20} "
                    f"{j.state:<10} {j.attempts:<8}"
                )
            click.echo()

        finally:
            await queue.close()

    run_async(list_jobs())


@job.command("show")
@click.argument("job_id")
def job_show(job_id: str):
    """Show a job's status and event history."""

    async def show():
        queue = get_queue()
        await queue.initialize()

        try:
            job_obj = await queue.get_job(job_id)
            if not job_obj:
                click.echo(f"Error: Job not found: {job_id}", err=True)
                sys.exit(1)

            details = job_obj.to_status_dict()
            details["attempts"] = job_obj.attempts
            details["events"] = [e.to_dict() for e in await queue.get_events(job_id)]
            click.echo(json.dumps(details, indent=2))

        finally:
            await queue.close()

    run_async(show())


@job.command("cancel")
@click.argument("job_id")
def job_cancel(job_id: str):
    """Cancel a waiting or active job."""

    async def cancel():
        queue = get_queue()
        await queue.initialize()

        try:
            if not await queue.remove(job_id):
                click.echo(f"Error: Job {job_id} not found or already finished", err=True)
                sys.exit(1)
            click.echo(f"✓ Job {job_id} cancelled")

        finally:
            await queue.close()

    run_async(cancel())


@job.command("requeue-expired")
@click.option(
    "--max-attempts",
    default=3,
    show_default=True,
    type=click.IntRange(min=1),
    help="Fail jobs that have been lost this many times",
)
def job_requeue_expired(max_attempts: int):
    """Recover active jobs whose worker lease has expired."""

    async def requeue():
        queue = get_queue()
        await queue.initialize()

        try:
            requeued, failed = await queue.requeue_expired(max_attempts)
            if not requeued and not failed:
                click.echo("No expired jobs requeued.")
                return

            if requeued:
                click.echo(f"✓ Requeued {len(requeued)} job(s)")
                for job_id in requeued:
                    click.echo(f"  {job_id}")
            if failed:
                click.echo(f"Failed {len(failed)} job(s) after {max_attempts} lost attempts")
                for job_id in failed:
                    click.echo(f"  {job_id}")

        finally:
            await queue.close()

    run_async(requeue())


# ============================================================================
# Working Directory Commands
# ============================================================================


@workdir.command("cleanup")
@click.option(
    "--work-dir",
    envvar="AUTOMATION_WORK_DIR",
    default=None,
    help="Parent of task working directories (default: system temp)",
)
@click.option(
    "--max-age",
    default=3_600_000,
    show_default=True,
    type=click.IntRange(min=0),
    help="Remove directories older than this many milliseconds",
)
def workdir_cleanup(work_dir: str | None, max_age: int):
    """Remove stale generator working directories."""
    invoker = GeneratorInvoker(work_dir=work_dir)
    removed = run_async(invoker.cleanup(max_age_ms=max_age))
    click.echo(f"✓ Removed {removed} working director{'y' if removed == 1 else 'ies'}")


if __name__ == "__main__":
    cli()
