"""
Unit tests for the end-user automation CLI.
"""

import json
from unittest.mock import patch

import pytest

from infra_client import cli


def run_cli(monkeypatch, *args: str) -> int:
    monkeypatch.setattr("sys.argv", ["automation", *args])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    return exc_info.value.code


def test_server_url_from_environment(monkeypatch):
    monkeypatch.setenv("AUTOMATION_SERVER_URL", "http://automation:9000")
    assert cli.get_server_url() == "http://automation:9000"


def test_submit_with_config_file(monkeypatch, tmp_path, capsys):
    config_file = tmp_path / "stack.json"
    config_file.write_text(json.dumps({"name": "shop", "port": 8080}))
    monkeypatch.delenv("AUTOMATION_SERVER_URL", raising=False)

    with patch.object(cli, "submit_job", return_value="job-1") as submit:
        code = run_cli(
            monkeypatch, "submit", "kubernetes", "res-1", "--config", str(config_file)
        )

    assert code == 0
    submit.assert_called_once_with(
        "kubernetes",
        "res-1",
        {"name": "shop", "port": 8080},
        server_url="http://localhost:8000",
    )
    assert "Job submitted: job-1" in capsys.readouterr().out


def test_submit_and_wait_reports_failure(monkeypatch, capsys):
    status = {
        "id": "job-1",
        "state": "failed",
        "progress": 10,
        "data": {"action": "generate-docker", "resource_id": "res-1", "config": {}},
        "return_value": None,
        "failed_reason": "Dockerfile generation failed: boom",
    }

    with patch.object(cli, "submit_job", return_value="job-1"), patch.object(
        cli, "wait_for_job", return_value=status
    ):
        code = run_cli(monkeypatch, "submit", "docker", "res-1", "--wait")

    assert code == 1
    assert "Dockerfile generation failed: boom" in capsys.readouterr().out


def test_submit_with_unreadable_config(monkeypatch, tmp_path, capsys):
    code = run_cli(
        monkeypatch, "submit", "docker", "res-1", "--config", str(tmp_path / "missing.json")
    )

    assert code == 1
    assert "Could not load config" in capsys.readouterr().err


def test_status_json(monkeypatch, capsys):
    status = {"id": "job-1", "state": "completed", "progress": 100}

    with patch.object(cli, "get_job_status", return_value=status):
        code = run_cli(monkeypatch, "status", "job-1", "--json")

    assert code == 0
    assert json.loads(capsys.readouterr().out) == status


def test_status_unknown_job(monkeypatch, capsys):
    with patch.object(cli, "get_job_status", return_value=None):
        code = run_cli(monkeypatch, "status", "missing")

    assert code == 1
    assert "Job not found" in capsys.readouterr().err


def test_cancel(monkeypatch, capsys):
    with patch.object(cli, "cancel_job", return_value=True):
        assert run_cli(monkeypatch, "cancel", "job-1") == 0
    assert "Job job-1 cancelled" in capsys.readouterr().out

    with patch.object(cli, "cancel_job", return_value=False):
        assert run_cli(monkeypatch, "cancel", "job-1") == 1


def test_server_error(monkeypatch, capsys):
    with patch.object(cli, "cancel_job", side_effect=RuntimeError("Error cancelling job: 500")):
        assert run_cli(monkeypatch, "cancel", "job-1") == 1
    assert "Error cancelling job: 500" in capsys.readouterr().err
