"""
Per-action configuration payloads.

Every queued action carries its own concrete configuration shape. The action
name is the tag: parse_job_config() picks the variant for a stored payload.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

JobAction = Literal["provision-terraform", "provision-kubernetes", "generate-docker"]
ServiceType = Literal["ClusterIP", "NodePort", "LoadBalancer"]

KIND_ACTIONS: dict[str, str] = {
    "terraform": "provision-terraform",
    "kubernetes": "provision-kubernetes",
    "docker": "generate-docker",
}


@dataclass
class TerraformResource:
    """A single resource block in a Terraform configuration."""

    type: str
    name: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class TerraformConfig:
    """Configuration for the provision-terraform action."""

    provider: str = "aws"
    region: str = "us-east-1"
    resources: list[TerraformResource] = field(default_factory=list)
    variables: dict[str, Any] | None = None
    outputs: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TerraformConfig":
        resources = []
        for index, r in enumerate(data.get("resources") or []):
            if not isinstance(r, dict) or "type" not in r or "name" not in r:
                raise ValueError(f"Terraform resource {index} needs a type and a name")
            resources.append(
                TerraformResource(
                    type=r["type"], name=r["name"], config=dict(r.get("config") or {})
                )
            )
        return cls(
            provider=data.get("provider") or "aws",
            region=data.get("region") or "us-east-1",
            resources=resources,
            variables=data.get("variables"),
            outputs=data.get("outputs"),
        )


@dataclass
class KubernetesStackConfig:
    """Configuration for the provision-kubernetes action (Deployment + Service + Ingress)."""

    name: str = "app"
    namespace: str = "default"
    replicas: int = 3
    image: str = "nginx:latest"
    port: int = 80
    host: str = "app.example.com"
    service_type: ServiceType = "ClusterIP"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KubernetesStackConfig":
        defaults = cls()
        return cls(
            name=data.get("name") or defaults.name,
            namespace=data.get("namespace") or defaults.namespace,
            replicas=data.get("replicas") or defaults.replicas,
            image=data.get("image") or defaults.image,
            port=data.get("port") or defaults.port,
            host=data.get("host") or defaults.host,
            service_type=data.get("service_type") or defaults.service_type,
        )


@dataclass
class DockerJobConfig:
    """Configuration for the generate-docker action."""

    node_version: str = "20"
    workdir: str = "/app"
    port: int = 3000
    base_image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DockerJobConfig":
        defaults = cls()
        return cls(
            node_version=str(data.get("node_version") or defaults.node_version),
            workdir=data.get("workdir") or defaults.workdir,
            port=data.get("port") or defaults.port,
            base_image=data.get("base_image"),
        )


JobConfig = TerraformConfig | KubernetesStackConfig | DockerJobConfig

ACTION_CONFIGS: dict[str, type] = {
    "provision-terraform": TerraformConfig,
    "provision-kubernetes": KubernetesStackConfig,
    "generate-docker": DockerJobConfig,
}


def action_for_kind(kind: str) -> str:
    """Map a job kind (terraform/kubernetes/docker) to its queue action."""
    try:
        return KIND_ACTIONS[kind]
    except KeyError:
        raise ValueError(f"Unknown job kind: {kind}") from None


def parse_job_config(action: str, data: dict[str, Any] | JobConfig) -> JobConfig:
    """
    Build the configuration variant for an action.

    Args:
        action: Queue action name (the variant tag)
        data: Raw payload or an already-typed config

    Returns:
        The typed configuration

    Raises:
        ValueError: If the action is unknown or the config has the wrong type
    """
    config_cls = ACTION_CONFIGS.get(action)
    if config_cls is None:
        raise ValueError(f"Unknown action: {action}")
    if isinstance(data, dict):
        return config_cls.from_dict(data)
    if not isinstance(data, config_cls):
        raise ValueError(
            f"Action {action} expects {config_cls.__name__}, got {type(data).__name__}"
        )
    return data


# Generator-level configurations


@dataclass
class KubernetesManifest:
    """A single Kubernetes object rendered by the Kubernetes generator."""

    kind: str
    metadata: dict[str, Any]
    spec: dict[str, Any]
    api_version: str = "v1"

    def to_dict(self) -> dict[str, Any]:
        """Convert to the manifest layout kubectl expects."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata,
            "spec": self.spec,
        }


@dataclass
class DockerCommand:
    """One Dockerfile instruction (RUN, COPY, ENV, EXPOSE, CMD or ENTRYPOINT)."""

    type: Literal["RUN", "COPY", "ENV", "EXPOSE", "CMD", "ENTRYPOINT"]
    value: str


@dataclass
class DockerConfig:
    """Dockerfile description used by the Docker generator."""

    base_image: str
    workdir: str | None = None
    commands: list[DockerCommand] = field(default_factory=list)
    ports: list[int] | None = None
    env: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
