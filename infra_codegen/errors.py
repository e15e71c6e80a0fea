"""Exceptions raised by the type-specific generators."""


class GenerationError(RuntimeError):
    """The external generator failed and produced nothing usable."""


class TerraformGenerationError(GenerationError):
    pass


class KubernetesGenerationError(GenerationError):
    pass


class DockerGenerationError(GenerationError):
    pass
