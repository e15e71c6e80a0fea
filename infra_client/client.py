import time
from typing import Any

import requests

TERMINAL_STATES = ("completed", "failed", "removed")


def submit_job(
    kind: str,
    resource_id: str,
    config: dict[str, Any],
    server_url: str = "http://localhost:8000",
) -> str:
    """
    Submit a generation job and return its ID immediately.

    Args:
        kind: "terraform", "kubernetes" or "docker"
        resource_id: Resource the job provisions
        config: Job configuration payload
        server_url: Base URL of the automation server

    Returns:
        str: Job ID that can be used to query status or cancel the job

    Raises:
        RuntimeError: If submission fails due to network or server error
    """
    try:
        response = requests.post(
            f"{server_url}/automation/{kind}/{resource_id}",
            json=config,
            timeout=30,
        )
        response.raise_for_status()
        return response.json()["job_id"]
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error submitting to automation server: {e}")


def get_job_status(
    job_id: str, server_url: str = "http://localhost:8000"
) -> dict[str, Any] | None:
    """
    Get the status of a job.

    Returns:
        Status dict, or None if the server does not know the job

    Raises:
        RuntimeError: If the request fails
    """
    try:
        response = requests.get(f"{server_url}/automation/jobs/{job_id}", timeout=30)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()["data"]
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error getting job status: {e}")


def cancel_job(job_id: str, server_url: str = "http://localhost:8000") -> bool:
    """
    Cancel a waiting or running job.

    Returns:
        True if the job was cancelled, False if it was unknown or already finished

    Raises:
        RuntimeError: If the request fails
    """
    try:
        response = requests.delete(f"{server_url}/automation/jobs/{job_id}", timeout=30)
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return bool(response.json().get("cancelled", False))
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error cancelling job: {e}")


def wait_for_job(
    job_id: str,
    server_url: str = "http://localhost:8000",
    poll_interval: float = 2.0,
    timeout: float = 600.0,
) -> dict[str, Any]:
    """
    Poll a job until it reaches a terminal state.

    Args:
        job_id: Job to wait for
        server_url: Base URL of the automation server
        poll_interval: Seconds between status requests
        timeout: Overall seconds to wait before giving up

    Returns:
        Final status dict

    Raises:
        RuntimeError: If the job is unknown, the request fails or the timeout expires
    """
    deadline = time.monotonic() + timeout
    while True:
        status = get_job_status(job_id, server_url=server_url)
        if status is None:
            raise RuntimeError(f"Job not found: {job_id}")
        if status["state"] in TERMINAL_STATES:
            return status
        if time.monotonic() >= deadline:
            raise RuntimeError(f"Timed out waiting for job {job_id} after {timeout}s")
        time.sleep(poll_interval)
