"""
Prompt builders for the external generation CLI.

Each builder turns a task context into plain-language instructions. Unknown
task kinds are passed through as their description.
"""

import json
from typing import Any

from infra_common.models import AutomationTask

NO_APPROVAL = "Do not ask for approval - just create the file."


def build_prompt(task: AutomationTask) -> str:
    """Build the generation prompt for a task."""
    builder = PROMPT_BUILDERS.get(task.kind)
    if builder is None:
        return task.description
    return builder(task.context or {})


def build_terraform_prompt(context: dict[str, Any]) -> str:
    resources = "\n".join(
        f'- {r.get("type")} "{r.get("name")}" with {json.dumps(r.get("config") or {})}'
        for r in context.get("resources") or []
    )
    return f"""Create a file named main.tf with Terraform configuration.

Provider: {context.get("provider") or "aws"}
Region: {context.get("region") or "us-east-1"}

Create these resources:
{resources}

Include:
- Provider block with region
- Resource blocks with proper tags (Name, ManagedBy)
- Output blocks for IDs and IPs
- Use Terraform 1.0+ syntax

{NO_APPROVAL}"""


def build_kubernetes_prompt(context: dict[str, Any]) -> str:
    # Context is a rendered manifest (apiVersion/kind/metadata/spec)
    kind = context.get("kind") or "Deployment"
    metadata = context.get("metadata") or {}
    filename = f"{kind.lower()}.yaml"
    spec = json.dumps(context.get("spec") or {}, indent=2, sort_keys=True)
    return f"""Create a file named {filename} with a Kubernetes {kind} manifest.

apiVersion: {context.get("apiVersion") or "v1"}
Name: {metadata.get("name") or "app"}
Namespace: {metadata.get("namespace") or "default"}
Labels: {json.dumps(metadata.get("labels") or {}, sort_keys=True)}

Spec:
{spec}

Include proper labels, selectors, and resource limits.
{NO_APPROVAL}"""


def build_docker_prompt(context: dict[str, Any]) -> str:
    ports = context.get("ports") or [3000]
    commands = "\n".join(
        f"- {c.get('type')} {c.get('value')}" for c in context.get("commands") or []
    )
    return f"""Create a file named Dockerfile with these specifications:

Base: {context.get("base_image") or "node:20-alpine"}
Workdir: {context.get("workdir") or "/app"}
Port: {", ".join(str(p) for p in ports)}

Steps:
{commands}

Include:
- Multi-stage build if needed
- Proper COPY instructions
- EXPOSE port
- Non-root user
- Best practices

{NO_APPROVAL}"""


PROMPT_BUILDERS = {
    "terraform": build_terraform_prompt,
    "kubernetes": build_kubernetes_prompt,
    "docker": build_docker_prompt,
}
