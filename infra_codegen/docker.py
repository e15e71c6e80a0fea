"""
Dockerfile generator.

Asks the external CLI for a Dockerfile and falls back to a local template
when none is produced.
"""

import logging
import uuid

from infra_common.configs import DockerCommand, DockerConfig
from infra_common.models import AutomationTask

from .errors import DockerGenerationError
from .invoker import GeneratorInvoker

logger = logging.getLogger(__name__)


class DockerGenerator:
    """Generates Dockerfiles through the generator invoker."""

    def __init__(self, invoker: GeneratorInvoker | None = None):
        self.invoker = invoker or GeneratorInvoker()

    async def generate(self, config: DockerConfig) -> str:
        """
        Generate a Dockerfile.

        Args:
            config: Base image, working directory and instructions

        Returns:
            Dockerfile contents

        Raises:
            DockerGenerationError: If the generator failed
        """
        logger.info(f"Generating Dockerfile from {config.base_image}")

        task = AutomationTask(
            id=f"docker-{uuid.uuid4().hex}",
            kind="docker",
            description=f"Generate a Dockerfile based on {config.base_image}",
            context=config.to_dict(),
            priority="high",
        )
        result = await self.invoker.invoke(task)

        if not result.success:
            raise DockerGenerationError(f"Dockerfile generation failed: {result.error}")

        dockerfile = (
            result.artifacts.find(lambda f: "dockerfile" in f.path.lower())
            if result.artifacts
            else None
        )
        if dockerfile is None:
            logger.info("No Dockerfile in generator output, rendering template")
            return self.render(config)

        return dockerfile.content

    def render(self, config: DockerConfig) -> str:
        """Render a Dockerfile locally, without the external generator."""
        dockerfile = f"FROM {config.base_image}\n\n"

        if config.workdir:
            dockerfile += f"WORKDIR {config.workdir}\n\n"

        for command in config.commands:
            dockerfile += f"{command.type} {command.value}\n"

        if config.env:
            dockerfile += "\n"
            for key, value in config.env.items():
                dockerfile += f"ENV {key}={value}\n"

        return dockerfile

    async def generate_nodejs(
        self,
        node_version: str = "20",
        workdir: str = "/app",
        port: int = 3000,
        base_image: str | None = None,
    ) -> str:
        """Generate a Dockerfile for a Node.js service."""
        config = DockerConfig(
            base_image=base_image or f"node:{node_version}-alpine",
            workdir=workdir,
            commands=[
                DockerCommand(type="COPY", value="package*.json ./"),
                DockerCommand(type="RUN", value="npm ci --only=production"),
                DockerCommand(type="COPY", value=". ."),
                DockerCommand(type="EXPOSE", value=str(port)),
                DockerCommand(type="CMD", value='["node", "index.js"]'),
            ],
            ports=[port],
        )
        return await self.generate(config)

    async def generate_python(
        self, python_version: str = "3.11", port: int | None = None
    ) -> str:
        """Generate a Dockerfile for a Python application."""
        commands = [
            DockerCommand(type="COPY", value="requirements.txt ./"),
            DockerCommand(
                type="RUN", value="pip install --no-cache-dir -r requirements.txt"
            ),
            DockerCommand(type="COPY", value=". ."),
        ]
        if port:
            commands.append(DockerCommand(type="EXPOSE", value=str(port)))
        commands.append(DockerCommand(type="CMD", value='["python", "app.py"]'))

        config = DockerConfig(
            base_image=f"python:{python_version}-slim",
            workdir="/app",
            commands=commands,
            ports=[port] if port else None,
        )
        return await self.generate(config)

    def generate_multi_stage(
        self,
        build_image: str,
        runtime_image: str,
        build_commands: list[str],
        runtime_commands: list[str],
        port: int | None = None,
    ) -> str:
        """Render a two-stage (build + runtime) Dockerfile from a template."""
        dockerfile = f"# Build stage\nFROM {build_image} AS builder\nWORKDIR /build\n\n"
        for command in build_commands:
            dockerfile += f"{command}\n"

        dockerfile += (
            f"\n# Runtime stage\nFROM {runtime_image}\nWORKDIR /app\n\n"
            "COPY --from=builder /build/dist ./dist\n\n"
        )
        for command in runtime_commands:
            dockerfile += f"{command}\n"

        if port:
            dockerfile += f"\nEXPOSE {port}\n"

        return dockerfile
