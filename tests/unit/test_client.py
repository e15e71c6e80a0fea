"""
Unit tests for infra_client.client module.

Tests the HTTP client functions with mocked requests calls.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from infra_client.client import cancel_job, get_job_status, submit_job, wait_for_job


def make_response(status_code: int = 200, json_data=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error"
        )
    else:
        response.raise_for_status.return_value = None
    return response


class TestSubmitJob:
    def test_posts_config_and_returns_job_id(self):
        response = make_response(
            json_data={"job_id": "job-1", "status": "queued", "message": "ok"}
        )

        with patch("infra_client.client.requests.post", return_value=response) as post:
            job_id = submit_job(
                "terraform", "res-1", {"region": "eu-west-1"}, server_url="http://ci:9000"
            )

        assert job_id == "job-1"
        post.assert_called_once_with(
            "http://ci:9000/automation/terraform/res-1",
            json={"region": "eu-west-1"},
            timeout=30,
        )

    def test_server_error_raises_runtime_error(self):
        with patch(
            "infra_client.client.requests.post", return_value=make_response(500)
        ):
            with pytest.raises(RuntimeError, match="Error submitting to automation server"):
                submit_job("docker", "res-1", {})

    def test_connection_error_raises_runtime_error(self):
        with patch(
            "infra_client.client.requests.post",
            side_effect=requests.exceptions.ConnectionError("refused"),
        ):
            with pytest.raises(RuntimeError, match="refused"):
                submit_job("docker", "res-1", {})


class TestGetJobStatus:
    def test_returns_status_data(self):
        status = {"id": "job-1", "state": "active"}
        with patch(
            "infra_client.client.requests.get",
            return_value=make_response(json_data={"data": status}),
        ) as get:
            assert get_job_status("job-1") == status

        assert get.call_args.args[0] == "http://localhost:8000/automation/jobs/job-1"

    def test_unknown_job_returns_none(self):
        with patch(
            "infra_client.client.requests.get",
            return_value=make_response(404, {"detail": "Job not found"}),
        ):
            assert get_job_status("missing") is None


class TestCancelJob:
    def test_cancelled(self):
        with patch(
            "infra_client.client.requests.delete",
            return_value=make_response(json_data={"cancelled": True, "message": "ok"}),
        ):
            assert cancel_job("job-1") is True

    def test_not_found(self):
        with patch(
            "infra_client.client.requests.delete", return_value=make_response(404, {})
        ):
            assert cancel_job("job-1") is False


class TestWaitForJob:
    def test_polls_until_terminal_state(self):
        states = iter(
            [
                {"id": "job-1", "state": "waiting"},
                {"id": "job-1", "state": "active"},
                {"id": "job-1", "state": "completed"},
            ]
        )

        with patch(
            "infra_client.client.get_job_status", side_effect=lambda *a, **k: next(states)
        ), patch("infra_client.client.time.sleep") as sleep:
            status = wait_for_job("job-1", poll_interval=0.5)

        assert status["state"] == "completed"
        assert sleep.call_count == 2
        sleep.assert_called_with(0.5)

    def test_unknown_job_raises(self):
        with patch("infra_client.client.get_job_status", return_value=None):
            with pytest.raises(RuntimeError, match="Job not found"):
                wait_for_job("missing")

    def test_timeout_raises(self):
        with patch(
            "infra_client.client.get_job_status",
            return_value={"id": "job-1", "state": "active"},
        ), patch("infra_client.client.time.sleep"):
            with pytest.raises(RuntimeError, match="Timed out"):
                wait_for_job("job-1", timeout=0)
