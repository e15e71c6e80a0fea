"""
Infra Codegen module.

This module wraps the external code-generation CLI: the invoker runs one
task per isolated working directory and harvests the files it writes, and
the Terraform, Kubernetes and Docker generators shape domain configuration
into tasks, falling back to local templates when the CLI returns nothing
usable.
"""

from .artifacts import read_artifacts
from .docker import DockerGenerator
from .errors import (
    DockerGenerationError,
    GenerationError,
    KubernetesGenerationError,
    TerraformGenerationError,
)
from .invoker import GeneratorInvoker
from .kubernetes import KubernetesGenerator
from .terraform import TerraformGenerator

__all__ = [
    "DockerGenerationError",
    "DockerGenerator",
    "GenerationError",
    "GeneratorInvoker",
    "KubernetesGenerationError",
    "KubernetesGenerator",
    "TerraformGenerationError",
    "TerraformGenerator",
    "read_artifacts",
]
