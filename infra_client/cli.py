import argparse
import json
import os
import sys
from pathlib import Path

from .client import cancel_job, get_job_status, submit_job, wait_for_job


def get_server_url() -> str:
    """
    Get the automation server URL from environment variable or use default.

    Returns:
        Server URL string

    Environment variables:
    - AUTOMATION_SERVER_URL: Custom server URL (useful for testing with different ports)
    """
    return os.environ.get("AUTOMATION_SERVER_URL", "http://localhost:8000")


def load_config(path: str | None) -> dict:
    """Load a JSON job config file, or an empty config when no file is given."""
    if not path:
        return {}
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")
    return data


def print_status(status: dict) -> None:
    """Print a job status in human-readable form."""
    data = status.get("data") or {}
    print(f"Job:      {status['id']}")
    print(f"Action:   {data.get('action', '-')}")
    print(f"Resource: {data.get('resource_id') or '-'}")
    print(f"State:    {status['state']}")
    print(f"Progress: {status.get('progress', 0)}%")
    if status.get("failed_reason"):
        print(f"Error:    {status['failed_reason']}")
    result = status.get("return_value")
    if result and result.get("artifact_path"):
        print(f"Artifact: {result['artifact_path']}")


def main():
    """Main entry point for the automation CLI."""
    parser = argparse.ArgumentParser(description="Infrastructure Automation CLI")
    subparsers = parser.add_subparsers(dest="command")

    # automation submit <kind> <resource_id> [--config FILE] [--wait]
    submit_parser = subparsers.add_parser(
        "submit", help="Submit a generation job"
    )
    submit_parser.add_argument(
        "kind", choices=["terraform", "kubernetes", "docker"], help="Type of job to submit"
    )
    submit_parser.add_argument("resource_id", help="Resource the job provisions")
    submit_parser.add_argument(
        "--config", dest="config_path", help="JSON file with the job configuration"
    )
    submit_parser.add_argument(
        "--wait",
        action="store_true",
        help="Wait until the job finishes and print its final status",
    )
    submit_parser.add_argument(
        "--timeout",
        type=float,
        default=600.0,
        help="Seconds to wait with --wait (default: 600)",
    )

    # automation status <job_id> [--json]
    status_parser = subparsers.add_parser("status", help="Show the status of a job")
    status_parser.add_argument("job_id", help="Job ID to query")
    status_parser.add_argument(
        "--json",
        dest="json_mode",
        action="store_true",
        help="Output in JSON format",
    )

    # automation cancel <job_id>
    cancel_parser = subparsers.add_parser("cancel", help="Cancel a waiting or running job")
    cancel_parser.add_argument("job_id", help="Job ID to cancel")

    args = parser.parse_args()

    server_url = get_server_url()

    if args.command == "submit":
        try:
            config = load_config(args.config_path)
        except (OSError, ValueError) as e:
            print(f"Error: Could not load config: {e}", file=sys.stderr)
            sys.exit(1)

        try:
            job_id = submit_job(args.kind, args.resource_id, config, server_url=server_url)
            print(f"Job submitted: {job_id}")
            if not args.wait:
                sys.exit(0)

            status = wait_for_job(job_id, server_url=server_url, timeout=args.timeout)
            print_status(status)
            sys.exit(0 if status["state"] == "completed" else 1)
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            print("\n\nStopped waiting. The job continues to run on the server.", file=sys.stderr)
            sys.exit(130)  # Standard exit code for SIGINT

    elif args.command == "status":
        try:
            status = get_job_status(args.job_id, server_url=server_url)
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if status is None:
            print(f"Error: Job not found: {args.job_id}", file=sys.stderr)
            sys.exit(1)

        if args.json_mode:
            print(json.dumps(status, indent=2))
        else:
            print_status(status)
        sys.exit(0)

    elif args.command == "cancel":
        try:
            cancelled = cancel_job(args.job_id, server_url=server_url)
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if not cancelled:
            print(f"Job {args.job_id} not found or already finished", file=sys.stderr)
            sys.exit(1)
        print(f"Job {args.job_id} cancelled")
        sys.exit(0)

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
