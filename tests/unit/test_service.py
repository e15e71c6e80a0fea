"""
Unit tests for the AutomationService facade.
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from infra_common.configs import DockerJobConfig, KubernetesStackConfig, TerraformConfig
from infra_persistence.sqlite_queue import SQLiteJobQueue
from infra_server.service import AutomationService


@pytest_asyncio.fixture
async def queue(tmp_path):
    q = SQLiteJobQueue(str(tmp_path / "automation.db"))
    await q.initialize()

    yield q

    await q.close()


@pytest.fixture
def service(queue):
    return AutomationService(queue)


@pytest.mark.asyncio
async def test_create_job_returns_immediately_with_waiting_job(service, queue):
    job_id = await service.create_job("terraform", "res-1", {"region": "eu-west-1"})

    job = await queue.get_job(job_id)
    assert job.action == "provision-terraform"
    assert job.state == "waiting"
    assert job.resource_id == "res-1"
    assert job.config == TerraformConfig(region="eu-west-1")


@pytest.mark.asyncio
async def test_job_ids_are_unique(service):
    ids = {await service.create_docker_job("res-1", DockerJobConfig()) for _ in range(5)}
    assert len(ids) == 5


@pytest.mark.asyncio
async def test_typed_helpers_pick_actions(service, queue):
    k8s_id = await service.create_kubernetes_job("res-1", KubernetesStackConfig())
    docker_id = await service.create_docker_job("res-2", {"port": 8080})

    assert (await queue.get_job(k8s_id)).action == "provision-kubernetes"
    docker_job = await queue.get_job(docker_id)
    assert docker_job.action == "generate-docker"
    assert docker_job.config.port == 8080


@pytest.mark.asyncio
async def test_unknown_kind_rejected(service):
    with pytest.raises(ValueError, match="Unknown job kind"):
        await service.create_job("ansible", "res-1", {})


@pytest.mark.asyncio
async def test_mismatched_config_rejected(service):
    with pytest.raises(ValueError):
        await service.create_job("docker", "res-1", TerraformConfig())


@pytest.mark.asyncio
async def test_malformed_terraform_resource_rejected(service, queue):
    with pytest.raises(ValueError, match="Terraform resource 0"):
        await service.create_job("terraform", "res-1", {"resources": [{"name": "web"}]})

    assert await queue.list_jobs() == []


@pytest.mark.asyncio
async def test_status_of_new_job(service):
    job_id = await service.create_terraform_job("res-1", TerraformConfig())

    status = await service.get_job_status(job_id)

    assert status["id"] == job_id
    assert status["state"] == "waiting"
    assert status["progress"] == 0
    assert status["data"]["action"] == "provision-terraform"
    assert status["data"]["resource_id"] == "res-1"
    assert status["return_value"] is None
    assert status["failed_reason"] is None


@pytest.mark.asyncio
async def test_status_of_unknown_job(service):
    assert await service.get_job_status("missing") is None


@pytest.mark.asyncio
async def test_cancel_waiting_job(service):
    job_id = await service.create_terraform_job("res-1", TerraformConfig())

    assert await service.cancel_job(job_id) is True
    assert (await service.get_job_status(job_id))["state"] == "removed"
    assert await service.cancel_job(job_id) is False


@pytest.mark.asyncio
async def test_cancel_unknown_job(service):
    assert await service.cancel_job("missing") is False


@pytest.mark.asyncio
async def test_service_uses_injected_queue():
    queue = AsyncMock()
    queue.remove = AsyncMock(return_value=True)
    service = AutomationService(queue)

    assert await service.cancel_job("job-1") is True
    queue.remove.assert_awaited_once_with("job-1")
