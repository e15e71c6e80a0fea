"""
Terraform configuration generator.

Asks the external CLI for a main.tf and falls back to a local HCL template
when the CLI succeeds without producing one.
"""

import json
import logging
import uuid
from typing import Any

from infra_common.configs import TerraformConfig, TerraformResource
from infra_common.models import AutomationTask, TaskPriority

from .errors import TerraformGenerationError
from .invoker import GeneratorInvoker

logger = logging.getLogger(__name__)


def _is_main_tf(artifact) -> bool:
    return "main.tf" in artifact.path


class TerraformGenerator:
    """Generates Terraform configurations through the generator invoker."""

    def __init__(self, invoker: GeneratorInvoker | None = None):
        self.invoker = invoker or GeneratorInvoker()

    def _build_task(
        self, config: TerraformConfig, priority: TaskPriority = "high"
    ) -> AutomationTask:
        return AutomationTask(
            id=f"terraform-{uuid.uuid4().hex}",
            kind="terraform",
            description=self.build_description(config),
            context=config.to_dict(),
            priority=priority,
        )

    async def generate(self, config: TerraformConfig) -> str:
        """
        Generate a Terraform configuration.

        Args:
            config: Provider, region and resources to describe

        Returns:
            Contents of main.tf

        Raises:
            TerraformGenerationError: If the generator failed
        """
        logger.info(f"Generating Terraform configuration for {config.provider}")

        result = await self.invoker.invoke(self._build_task(config))

        if not result.success:
            raise TerraformGenerationError(
                f"Terraform generation failed: {result.error}"
            )

        main_tf = result.artifacts.find(_is_main_tf) if result.artifacts else None
        if main_tf is None:
            logger.info("No main.tf in generator output, rendering template")
            return self.render(config)

        return main_tf.content

    async def generate_modules(self, configs: list[TerraformConfig]) -> dict[str, str]:
        """
        Generate several configurations in parallel.

        Modules whose generation failed or produced no main.tf are omitted.

        Returns:
            Mapping of "module-<index>" to main.tf contents
        """
        tasks = [self._build_task(config, priority="medium") for config in configs]
        results = await self.invoker.execute_parallel(tasks)

        modules = {}
        for index, result in enumerate(results):
            if result.success and result.artifacts:
                main_tf = result.artifacts.find(_is_main_tf)
                if main_tf:
                    modules[f"module-{index}"] = main_tf.content
        return modules

    async def validate(self, terraform_code: str) -> bool:
        """Ask the generator to check a configuration for errors."""
        task = AutomationTask(
            id=f"terraform-validate-{uuid.uuid4().hex}",
            kind="custom",
            description=(
                "Validate the following Terraform configuration and check for errors"
                f"\n\n{terraform_code}"
            ),
            context={"code": terraform_code},
        )
        result = await self.invoker.invoke(task)
        return result.success

    async def generate_ec2_instance(
        self,
        name: str,
        instance_type: str,
        ami: str,
        region: str,
        tags: dict[str, str] | None = None,
    ) -> str:
        """Generate an AWS EC2 instance configuration."""
        return await self.generate(
            TerraformConfig(
                provider="aws",
                region=region,
                resources=[
                    TerraformResource(
                        type="instance",
                        name=name,
                        config={
                            "instance_type": instance_type,
                            "ami": ami,
                            "tags": tags or {},
                        },
                    )
                ],
            )
        )

    async def generate_rds_instance(
        self,
        name: str,
        engine: str,
        instance_class: str,
        region: str,
        username: str,
        skip_final_snapshot: bool = True,
    ) -> str:
        """Generate an AWS RDS instance configuration."""
        return await self.generate(
            TerraformConfig(
                provider="aws",
                region=region,
                resources=[
                    TerraformResource(
                        type="db_instance",
                        name=name,
                        config={
                            "engine": engine,
                            "instance_class": instance_class,
                            "allocated_storage": 20,
                            "username": username,
                            "skip_final_snapshot": skip_final_snapshot,
                        },
                    )
                ],
            )
        )

    def build_description(self, config: TerraformConfig) -> str:
        resource_names = ", ".join(f"{r.type}.{r.name}" for r in config.resources)
        return (
            f"Generate Terraform configuration for {config.provider} in "
            f"{config.region} region. Resources: {resource_names}. "
            "Include proper variables, outputs, and best practices for production use."
        )

    def render(self, config: TerraformConfig) -> str:
        """Render a configuration locally, without the external generator."""
        provider = config.provider
        lines = [
            "# Generated Terraform Configuration",
            f"# Provider: {provider}",
            f"# Region: {config.region}",
            "",
            "terraform {",
            '  required_version = ">= 1.0"',
            "  required_providers {",
            f"    {provider} = {{",
            f'      source  = "hashicorp/{provider}"',
            '      version = "~> 5.0"',
            "    }",
            "  }",
            "}",
            "",
            f'provider "{provider}" {{',
            f"  region = {format_hcl_value(config.region)}",
            "}",
        ]

        for resource in config.resources:
            lines.append("")
            lines.append(f'resource "{provider}_{resource.type}" "{resource.name}" {{')
            for key, value in resource.config.items():
                lines.append(f"  {key} = {format_hcl_value(value)}")
            lines.append("}")

        for output in config.outputs or []:
            lines.append("")
            lines.append(f'output "{output}" {{')
            lines.append(f"  value = {output}")
            lines.append("}")

        return "\n".join(lines) + "\n"


def format_hcl_value(value: Any) -> str:
    """Format a Python value as an HCL literal."""
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        return f'"{escaped}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)
