"""
Infra Common module.

This module contains shared domain models, per-action configurations and
storage interfaces used across the automation components (server, worker,
persistence, code generation).

The common module has no dependencies on other infra_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .configs import (
    DockerJobConfig,
    JobConfig,
    KubernetesStackConfig,
    TerraformConfig,
    parse_job_config,
)
from .models import (
    Artifact,
    ArtifactBundle,
    AutomationTask,
    InvocationResult,
    JobEvent,
    QueuedJob,
    Resource,
)
from .repository import JobQueue, ResourceStore

__all__ = [
    "Artifact",
    "ArtifactBundle",
    "AutomationTask",
    "DockerJobConfig",
    "InvocationResult",
    "JobConfig",
    "JobEvent",
    "JobQueue",
    "KubernetesStackConfig",
    "QueuedJob",
    "Resource",
    "ResourceStore",
    "TerraformConfig",
    "parse_job_config",
]
