"""Core type definitions: steps, workflows, templates, patterns, executions."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping


def now_ms() -> int:
    """Wall-clock milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_id(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)


def _freeze(obj: Any, *names: str) -> None:
    """Replace mapping fields of a frozen dataclass with read-only copies."""
    for name in names:
        object.__setattr__(obj, name, MappingProxyType(dict(getattr(obj, name))))


class StepType(str, Enum):
    NAVIGATION = "navigation"
    CLICK = "click"
    INPUT = "input"
    WAIT = "wait"
    EXTRACT = "extract"
    VALIDATE = "validate"
    GROUP = "group"


class WaitCondition(str, Enum):
    ELEMENT_VISIBLE = "element_visible"
    PAGE_LOAD = "page_load"
    TEXT_PRESENT = "text_present"


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class VariableType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    DATE = "date"
    NUMBER = "number"


# ---------------------------------------------------------------------------
# Steps: one frozen dataclass per step type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Step:
    """Fields shared by every step variant.

    ``data`` is the variant payload as it appears in persisted records;
    each subclass builds it from its own typed fields.
    """

    type: ClassVar[StepType]

    id: str = field(default_factory=lambda: new_id(8))
    timestamp: int = field(default_factory=now_ms)
    action: str = ""
    target: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze(self, "context")

    @property
    def data(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "action": self.action,
            "target": self.target,
            "data": self.data,
            "context": dict(self.context),
        }

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class NavigationStep(Step):
    type: ClassVar[StepType] = StepType.NAVIGATION

    url: str = ""
    wait_for: str = "load"
    title: str | None = None

    @property
    def data(self) -> dict[str, Any]:
        d: dict[str, Any] = {"url": self.url, "waitFor": self.wait_for}
        if self.title is not None:
            d["title"] = self.title
        return d

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "url": str(data.get("url", "")),
            "wait_for": str(data.get("waitFor", "load")),
            "title": data.get("title"),
        }


@dataclass(frozen=True)
class ClickStep(Step):
    type: ClassVar[StepType] = StepType.CLICK

    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__post_init__()
        _freeze(self, "options")

    @property
    def data(self) -> dict[str, Any]:
        return dict(self.options)

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {"options": dict(data)}


@dataclass(frozen=True)
class InputStep(Step):
    type: ClassVar[StepType] = StepType.INPUT

    value: str = ""
    clear: bool = True
    validate: bool = False

    @property
    def data(self) -> dict[str, Any]:
        return {"value": self.value, "clear": self.clear, "validate": self.validate}

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        value = data.get("value", "")
        if not isinstance(value, str):
            raise ValueError(f"input value must be a string, got {type(value).__name__}")
        return {
            "value": value,
            "clear": data.get("clear") is not False,
            "validate": bool(data.get("validate", False)),
        }


@dataclass(frozen=True)
class WaitStep(Step):
    type: ClassVar[StepType] = StepType.WAIT

    duration: int | None = None
    condition: WaitCondition | None = None
    timeout: int | None = None
    text: str | None = None

    @property
    def data(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.duration is not None:
            d["duration"] = self.duration
        if self.condition is not None:
            d["condition"] = self.condition.value
        if self.timeout is not None:
            d["timeout"] = self.timeout
        if self.text is not None:
            d["text"] = self.text
        return d

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        condition = data.get("condition")
        return {
            "duration": int(data["duration"]) if data.get("duration") is not None else None,
            "condition": WaitCondition(condition) if condition else None,
            "timeout": int(data["timeout"]) if data.get("timeout") is not None else None,
            "text": data.get("text"),
        }


@dataclass(frozen=True)
class ExtractStep(Step):
    type: ClassVar[StepType] = StepType.EXTRACT

    attribute: str | None = None

    @property
    def data(self) -> dict[str, Any]:
        return {"attribute": self.attribute}

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {"attribute": data.get("attribute")}


@dataclass(frozen=True)
class ValidateStep(Step):
    type: ClassVar[StepType] = StepType.VALIDATE

    condition: str = ""
    expected: Any = None

    @property
    def data(self) -> dict[str, Any]:
        return {"condition": self.condition, "expected": self.expected}

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {"condition": str(data.get("condition", "")), "expected": data.get("expected")}


@dataclass(frozen=True)
class GroupStep(Step):
    """Ordered child steps.  ``parallel`` is reserved: children always run in order."""

    type: ClassVar[StepType] = StepType.GROUP

    name: str = ""
    steps: tuple[Step, ...] = ()
    parallel: bool = False

    @property
    def data(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "parallel": self.parallel,
            "steps": [s.to_dict() for s in self.steps],
        }

    @classmethod
    def _payload_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "name": str(data.get("name", "")),
            "parallel": bool(data.get("parallel", False)),
            "steps": tuple(step_from_dict(s) for s in data.get("steps", [])),
        }


_STEP_CLASSES: dict[StepType, type[Step]] = {
    cls.type: cls
    for cls in (
        NavigationStep,
        ClickStep,
        InputStep,
        WaitStep,
        ExtractStep,
        ValidateStep,
        GroupStep,
    )
}


def step_from_dict(d: dict[str, Any]) -> Step:
    """
    Build the typed Step variant for a persisted record or raw capture event.

    Missing ``id`` / ``timestamp`` are generated.  Raises ValueError (or
    KeyError/TypeError) when the record is malformed.
    """
    if not isinstance(d, dict):
        raise TypeError(f"step record must be a dict, got {type(d).__name__}")
    step_cls = _STEP_CLASSES[StepType(d["type"])]
    data = d.get("data") or {}
    if not isinstance(data, dict):
        raise TypeError("step data must be a dict")
    context = d.get("context") or {}
    target = d.get("target")
    kwargs: dict[str, Any] = {
        "action": str(d["action"]) if d.get("action") is not None else step_cls.type.value,
        "target": str(target) if target is not None else None,
        "context": dict(context),
        **step_cls._payload_kwargs(data),
    }
    if d.get("id"):
        kwargs["id"] = str(d["id"])
    if d.get("timestamp") is not None:
        kwargs["timestamp"] = int(d["timestamp"])
    return step_cls(**kwargs)


def iter_steps(steps: tuple[Step, ...] | list[Step]):
    """Depth-first walk over steps, descending into groups."""
    for step in steps:
        yield step
        if isinstance(step, GroupStep):
            yield from iter_steps(step.steps)


# ---------------------------------------------------------------------------
# Workflows and templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowMetadata:
    duration: int = 0
    step_count: int = 0
    complexity: float = 0.0
    estimated_execution_time: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration": self.duration,
            "stepCount": self.step_count,
            "complexity": self.complexity,
            "estimatedExecutionTime": self.estimated_execution_time,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> WorkflowMetadata:
        return cls(
            duration=int(d.get("duration", 0)),
            step_count=int(d.get("stepCount", 0)),
            complexity=float(d.get("complexity", 0.0)),
            estimated_execution_time=int(d.get("estimatedExecutionTime", 0)),
        )


@dataclass(frozen=True)
class Workflow:
    id: str
    name: str
    description: str
    created: int
    modified: int
    steps: tuple[Step, ...]
    metadata: WorkflowMetadata
    version: str = "1.0.0"
    context: Mapping[str, Any] = field(default_factory=dict)
    settings: Mapping[str, Any] = field(default_factory=dict)
    tags: tuple[str, ...] = ()
    category: str = "general"
    validation: Mapping[str, Any] = field(default_factory=dict)
    variables: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "context", "settings", "validation")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created": self.created,
            "modified": self.modified,
            "version": self.version,
            "steps": [s.to_dict() for s in self.steps],
            "context": dict(self.context),
            "metadata": self.metadata.to_dict(),
            "settings": dict(self.settings),
            "tags": list(self.tags),
            "category": self.category,
            "validation": dict(self.validation),
            "variables": list(self.variables),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Workflow:
        return cls(
            id=d["id"],
            name=d["name"],
            description=d.get("description", ""),
            created=int(d["created"]),
            modified=int(d.get("modified", d["created"])),
            version=d.get("version", "1.0.0"),
            steps=tuple(step_from_dict(s) for s in d.get("steps", [])),
            context=dict(d.get("context") or {}),
            metadata=WorkflowMetadata.from_dict(d.get("metadata") or {}),
            settings=dict(d.get("settings") or {}),
            tags=tuple(d.get("tags", [])),
            category=d.get("category", "general"),
            validation=dict(d.get("validation") or {}),
            variables=tuple(d.get("variables", [])),
        )


@dataclass(frozen=True)
class TemplateVariable:
    name: str
    type: VariableType = VariableType.TEXT
    required: bool = True
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TemplateVariable:
        return cls(
            name=d["name"],
            type=VariableType(d.get("type", "text")),
            required=bool(d.get("required", True)),
            description=d.get("description", ""),
        )


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    description: str
    category: str
    base_workflow_id: str
    variables: tuple[TemplateVariable, ...]
    steps: tuple[Step, ...]
    created: int = field(default_factory=now_ms)
    usage: int = 0
    rating: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "baseWorkflowId": self.base_workflow_id,
            "variables": [v.to_dict() for v in self.variables],
            "steps": [s.to_dict() for s in self.steps],
            "metadata": {"created": self.created, "usage": self.usage, "rating": self.rating},
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Template:
        meta = d.get("metadata") or {}
        return cls(
            id=d["id"],
            name=d["name"],
            description=d.get("description", ""),
            category=d.get("category", "general"),
            base_workflow_id=d["baseWorkflowId"],
            variables=tuple(TemplateVariable.from_dict(v) for v in d.get("variables", [])),
            steps=tuple(step_from_dict(s) for s in d.get("steps", [])),
            created=int(meta.get("created", 0)),
            usage=int(meta.get("usage", 0)),
            rating=meta.get("rating", 0),
        )


# ---------------------------------------------------------------------------
# Patterns and suggestions
# ---------------------------------------------------------------------------


@dataclass
class Pattern:
    signature: str  # "type:action-type:action-..."
    length: int
    example: tuple[Step, ...]
    frequency: int = 1
    first_seen: int = field(default_factory=now_ms)
    last_seen: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "length": self.length,
            "example": [s.to_dict() for s in self.example],
            "frequency": self.frequency,
            "firstSeen": self.first_seen,
            "lastSeen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Pattern:
        return cls(
            signature=d["signature"],
            length=int(d["length"]),
            example=tuple(step_from_dict(s) for s in d.get("example", [])),
            frequency=int(d.get("frequency", 1)),
            first_seen=int(d.get("firstSeen", 0)),
            last_seen=int(d.get("lastSeen", 0)),
        )


@dataclass(frozen=True)
class Suggestion:
    """Advisory optimization hint; never applied to the workflow."""

    type: str  # parallelization | redundancy | optimization | reliability
    message: str
    impact: str
    workflow_id: str
    step_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "impact": self.impact,
            "workflowId": self.workflow_id,
            "stepIds": list(self.step_ids),
        }


# ---------------------------------------------------------------------------
# Executions
# ---------------------------------------------------------------------------


@dataclass
class Execution:
    """One replay of a workflow.  Owned and mutated by the ExecutionEngine."""

    id: str
    workflow_id: str
    parameters: dict[str, Any] = field(default_factory=dict)
    start_time: int = field(default_factory=now_ms)
    end_time: int | None = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step: int = 0
    results: dict[int, Any] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)
    retry_count: int = 0

    @property
    def duration(self) -> int | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def advance_to(self, index: int) -> None:
        if index < self.current_step:
            raise ValueError(
                f"Execution {self.id} cannot move back from step {self.current_step} to {index}"
            )
        self.current_step = index

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "parameters": dict(self.parameters),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "status": self.status.value,
            "currentStep": self.current_step,
            "results": {str(k): v for k, v in self.results.items()},
            "errors": list(self.errors),
            "retryCount": self.retry_count,
        }
