"""
Data models for automation jobs and generator invocations.

These models represent the domain objects used throughout the application,
independent of the underlying storage mechanism.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Literal

from .configs import JobConfig

TaskKind = Literal["terraform", "kubernetes", "docker", "ansible", "custom"]
TaskPriority = Literal["low", "medium", "high", "critical"]
JobState = Literal["waiting", "active", "completed", "failed", "removed"]

DEFAULT_TIMEOUT_MS = 300_000

# Jobs in these states can still be cancelled
PENDING_STATES = ("waiting", "active")
TERMINAL_STATES = ("completed", "failed", "removed")

FILE_TYPES = {
    "tf": "terraform",
    "yaml": "kubernetes",
    "yml": "kubernetes",
    "dockerfile": "docker",
    "ts": "typescript",
    "js": "javascript",
    "json": "json",
}


def classify_file(path: str) -> str:
    """Classify a generated file by its extension (unknown -> "text")."""
    extension = path.rsplit(".", 1)[-1].lower()
    return FILE_TYPES.get(extension, "text")


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class AutomationTask:
    """
    One request to generate an infrastructure artifact via the external CLI.

    Tasks are built by a generator immediately before invocation and are
    never persisted.
    """

    id: str
    kind: TaskKind
    description: str
    context: dict[str, Any] = field(default_factory=dict)
    priority: TaskPriority = "medium"
    timeout_ms: int | None = None

    def __post_init__(self) -> None:
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")


@dataclass
class Artifact:
    """A generated file recovered from a task's working directory."""

    path: str
    content: str
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "content": self.content, "type": self.type}


@dataclass
class ArtifactBundle:
    """All qualifying files produced by one invocation."""

    files: list[Artifact] = field(default_factory=list)

    def find(self, predicate: Callable[[Artifact], bool]) -> Artifact | None:
        """Return the first artifact matching the predicate, if any."""
        for artifact in self.files:
            if predicate(artifact):
                return artifact
        return None

    def __len__(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict[str, Any]:
        return {"files": [artifact.to_dict() for artifact in self.files]}


@dataclass
class InvocationResult:
    """
    Outcome of one AutomationTask execution.

    A timeout or non-zero exit that still left non-empty files behind is
    reported as a success with partial=True and a diagnostic in error.
    """

    success: bool
    output: str
    duration_ms: int
    error: str | None = None
    artifacts: ArtifactBundle | None = None
    partial: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary format (for JSON serialization)."""
        result: dict[str, Any] = {
            "success": self.success,
            "output": self.output,
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            result["error"] = self.error
        if self.artifacts is not None:
            result["artifacts"] = self.artifacts.to_dict()
        if self.partial:
            result["partial"] = True
        return result


@dataclass
class QueuedJob:
    """
    The durable unit tracked by the job queue.

    Jobs progress through states: waiting -> active -> completed | failed.
    Pending jobs may also move to removed through explicit cancellation.
    """

    id: str
    action: str
    config: JobConfig | dict[str, Any]  # Raw dict only when action is unknown
    resource_id: str | None = None
    state: JobState = "waiting"
    progress: int = 0
    return_value: dict[str, Any] | None = None
    failed_reason: str | None = None
    attempts: int = 0
    worker_id: str | None = None
    lease_until: datetime | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def config_dict(self) -> dict[str, Any]:
        if isinstance(self.config, dict):
            return dict(self.config)
        return self.config.to_dict()

    def to_status_dict(self) -> dict[str, Any]:
        """Convert job to the status query format (for API responses)."""
        return {
            "id": self.id,
            "state": self.state,
            "progress": self.progress,
            "data": {
                "action": self.action,
                "resource_id": self.resource_id,
                "config": self.config_dict(),
            },
            "return_value": self.return_value,
            "failed_reason": self.failed_reason,
        }

    def to_summary_dict(self) -> dict[str, Any]:
        """Convert job to summary format (for listings)."""
        return {
            "id": self.id,
            "action": self.action,
            "resource_id": self.resource_id,
            "state": self.state,
            "attempts": self.attempts,
            "created_at": _isoformat(self.created_at),
            "finished_at": _isoformat(self.finished_at),
        }


@dataclass
class JobEvent:
    """
    Represents a single event in a job's lifecycle.

    Terminal events ("completed", "failed") are emitted by the worker;
    "requeued" is recorded when an expired lease hands a job back.
    """

    type: str
    job_id: str
    error: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary format (for JSON serialization)."""
        result: dict[str, Any] = {"type": self.type, "job_id": self.job_id}
        if self.error is not None:
            result["error"] = self.error
        if self.timestamp is not None:
            result["timestamp"] = self.timestamp.isoformat()
        return result


@dataclass
class Resource:
    """
    An infrastructure record whose status is updated as jobs finish.

    The config mapping is shared by every job touching the resource, so
    updates must merge into it rather than replace it.
    """

    id: str
    name: str
    type: str
    status: str = "pending"
    config: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "config": self.config,
            "updated_at": _isoformat(self.updated_at),
        }
