"""
Kubernetes manifest generator.

Asks the external CLI for YAML manifests and falls back to dumping the
manifest description with PyYAML when no YAML file comes back.
"""

import asyncio
import logging
import uuid

import yaml

from infra_common.configs import KubernetesManifest, KubernetesStackConfig, ServiceType
from infra_common.models import AutomationTask

from .errors import KubernetesGenerationError
from .invoker import GeneratorInvoker

logger = logging.getLogger(__name__)


class KubernetesGenerator:
    """Generates Kubernetes manifests through the generator invoker."""

    def __init__(self, invoker: GeneratorInvoker | None = None):
        self.invoker = invoker or GeneratorInvoker()

    async def generate(self, manifest: KubernetesManifest) -> str:
        """
        Generate one Kubernetes manifest.

        Args:
            manifest: Object description to render

        Returns:
            YAML text of the manifest

        Raises:
            KubernetesGenerationError: If the generator failed
        """
        logger.info(f"Generating Kubernetes {manifest.kind} manifest")

        task = AutomationTask(
            id=f"k8s-{manifest.kind.lower()}-{uuid.uuid4().hex}",
            kind="kubernetes",
            description=(
                f"Generate a Kubernetes {manifest.kind} manifest "
                "with the following specifications"
            ),
            context=manifest.to_dict(),
            priority="high",
        )
        result = await self.invoker.invoke(task)

        if not result.success:
            raise KubernetesGenerationError(
                f"Kubernetes generation failed: {result.error}"
            )

        yaml_file = (
            result.artifacts.find(lambda f: f.path.endswith((".yaml", ".yml")))
            if result.artifacts
            else None
        )
        if yaml_file is None:
            logger.info(f"No YAML in generator output, rendering {manifest.kind} locally")
            return self.render(manifest)

        return yaml_file.content

    def render(self, manifest: KubernetesManifest) -> str:
        """Render a manifest locally, without the external generator."""
        return yaml.safe_dump(manifest.to_dict(), sort_keys=False)

    async def generate_deployment(
        self,
        name: str,
        replicas: int,
        image: str,
        port: int,
        namespace: str | None = None,
        env: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Generate a Deployment manifest."""
        manifest = KubernetesManifest(
            api_version="apps/v1",
            kind="Deployment",
            metadata={
                "name": name,
                "namespace": namespace or "default",
                "labels": labels or {"app": name},
            },
            spec={
                "replicas": replicas,
                "selector": {"matchLabels": {"app": name}},
                "template": {
                    "metadata": {"labels": {"app": name}},
                    "spec": {
                        "containers": [
                            {
                                "name": name,
                                "image": image,
                                "ports": [{"containerPort": port}],
                                "env": [
                                    {"name": key, "value": value}
                                    for key, value in (env or {}).items()
                                ],
                            }
                        ]
                    },
                },
            },
        )
        return await self.generate(manifest)

    async def generate_service(
        self,
        name: str,
        port: int,
        target_port: int,
        service_type: ServiceType = "ClusterIP",
        namespace: str | None = None,
        selector: dict[str, str] | None = None,
    ) -> str:
        """Generate a Service manifest."""
        manifest = KubernetesManifest(
            api_version="v1",
            kind="Service",
            metadata={"name": name, "namespace": namespace or "default"},
            spec={
                "type": service_type,
                "selector": selector or {"app": name},
                "ports": [
                    {"port": port, "targetPort": target_port, "protocol": "TCP"}
                ],
            },
        )
        return await self.generate(manifest)

    async def generate_ingress(
        self,
        name: str,
        host: str,
        service_name: str,
        service_port: int,
        namespace: str | None = None,
        tls: bool = False,
    ) -> str:
        """Generate an Ingress manifest, optionally with TLS."""
        spec = {
            "rules": [
                {
                    "host": host,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {
                                        "name": service_name,
                                        "port": {"number": service_port},
                                    }
                                },
                            }
                        ]
                    },
                }
            ]
        }
        if tls:
            spec["tls"] = [{"hosts": [host], "secretName": f"{name}-tls"}]

        manifest = KubernetesManifest(
            api_version="networking.k8s.io/v1",
            kind="Ingress",
            metadata={"name": name, "namespace": namespace or "default"},
            spec=spec,
        )
        return await self.generate(manifest)

    async def generate_full_stack(self, config: KubernetesStackConfig) -> dict[str, str]:
        """
        Generate Deployment, Service and Ingress concurrently.

        If any of the three fails the whole call fails; no partial stack is
        returned.

        Args:
            config: Application stack description

        Returns:
            Dict with "deployment", "service" and "ingress" YAML texts
        """
        deployment, service, ingress = await asyncio.gather(
            self.generate_deployment(
                name=config.name,
                namespace=config.namespace,
                replicas=config.replicas,
                image=config.image,
                port=config.port,
            ),
            self.generate_service(
                name=config.name,
                namespace=config.namespace,
                service_type=config.service_type,
                port=80,
                target_port=config.port,
            ),
            self.generate_ingress(
                name=config.name,
                namespace=config.namespace,
                host=config.host,
                service_name=config.name,
                service_port=80,
            ),
        )
        return {"deployment": deployment, "service": service, "ingress": ingress}
