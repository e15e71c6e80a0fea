import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from infra_persistence.sqlite_queue import SQLiteJobQueue

from .service import AutomationService

logger = logging.getLogger(__name__)


def get_database_path() -> str:
    """
    Get the database path from environment or use default.

    Returns:
        Path to the SQLite database file

    Environment variables:
    - AUTOMATION_DB_PATH: Custom database path (useful for testing)
    """
    return os.environ.get("AUTOMATION_DB_PATH", "automation.db")


class TerraformResourceBody(BaseModel):
    type: str
    name: str
    config: dict[str, Any] = Field(default_factory=dict)


class TerraformJobBody(BaseModel):
    provider: Literal["aws", "gcp", "azure", "digitalocean"] = "aws"
    region: str = "us-east-1"
    resources: list[TerraformResourceBody] = Field(default_factory=list)
    variables: dict[str, Any] | None = None
    outputs: list[str] | None = None


class KubernetesJobBody(BaseModel):
    name: str
    image: str
    port: int = Field(gt=0)
    host: str
    namespace: str | None = None
    replicas: int | None = Field(default=None, ge=1)
    service_type: Literal["ClusterIP", "NodePort", "LoadBalancer"] | None = None


class DockerJobBody(BaseModel):
    base_image: str | None = None
    node_version: str | None = None
    workdir: str | None = None
    port: int | None = Field(default=None, gt=0)


def create_app(db_path: str | None = None) -> FastAPI:
    """
    Build the automation API application.

    The job queue is created and closed by the app lifespan and handed to
    the AutomationService stored on app.state.

    Args:
        db_path: SQLite database path (default: AUTOMATION_DB_PATH or automation.db)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        queue = SQLiteJobQueue(db_path or get_database_path())
        await queue.initialize()
        app.state.service = AutomationService(queue)
        logger.info("Automation API ready")

        yield

        await queue.close()

    app = FastAPI(title="Infrastructure Automation API", lifespan=lifespan)
    app.include_router(router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    return app


def get_service(request: Request) -> AutomationService:
    """
    Get the automation service of the running app.

    Raises:
        RuntimeError: If the app lifespan has not started
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise RuntimeError("Automation service not initialized")
    return service


router = APIRouter(prefix="/automation")


async def _submit(
    service: AutomationService, kind: str, resource_id: str, body: BaseModel
) -> dict[str, str]:
    job_id = await service.create_job(
        kind, resource_id, body.model_dump(exclude_none=True)
    )
    return {
        "job_id": job_id,
        "status": "queued",
        "message": f"{kind.capitalize()} generation job created",
    }


@router.post("/terraform/{resource_id}")
async def create_terraform_job(
    resource_id: str,
    body: TerraformJobBody,
    service: AutomationService = Depends(get_service),
) -> dict[str, str]:
    """Queue a Terraform generation job for a resource."""
    return await _submit(service, "terraform", resource_id, body)


@router.post("/kubernetes/{resource_id}")
async def create_kubernetes_job(
    resource_id: str,
    body: KubernetesJobBody,
    service: AutomationService = Depends(get_service),
) -> dict[str, str]:
    """Queue a Kubernetes manifest generation job for a resource."""
    return await _submit(service, "kubernetes", resource_id, body)


@router.post("/docker/{resource_id}")
async def create_docker_job(
    resource_id: str,
    body: DockerJobBody,
    service: AutomationService = Depends(get_service),
) -> dict[str, str]:
    """Queue a Dockerfile generation job for a resource."""
    return await _submit(service, "docker", resource_id, body)


@router.get("/jobs/{job_id}")
async def get_job_status(
    job_id: str, service: AutomationService = Depends(get_service)
) -> dict[str, Any]:
    """
    Get job status.

    Raises:
        HTTPException: 404 if job_id not found
    """
    status = await service.get_job_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"data": status}


@router.delete("/jobs/{job_id}")
async def cancel_job(
    job_id: str, service: AutomationService = Depends(get_service)
) -> dict[str, Any]:
    """
    Cancel a waiting or running job.

    Raises:
        HTTPException: 404 if there was no pending job to cancel
    """
    if not await service.cancel_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found or already finished")
    return {"cancelled": True, "message": "Job cancelled successfully"}


app = create_app()


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=os.environ.get("AUTOMATION_LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "infra_server.app:app",
        host=os.environ.get("AUTOMATION_HOST", "0.0.0.0"),
        port=int(os.environ.get("AUTOMATION_PORT", "8000")),
    )
