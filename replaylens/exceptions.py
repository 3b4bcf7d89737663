"""ReplayLens — Exception hierarchy.

All exceptions raised by the engine inherit from ReplayLensError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    ReplayLensError
    ├── RecordingError
    │   ├── AlreadyRecordingError
    │   ├── NotRecordingError
    │   └── MalformedEventError
    ├── WorkflowNotFoundError
    │   └── TemplateNotFoundError
    ├── ExecutionError
    │   ├── ActionTimeoutError
    │   ├── WaitTimeoutError
    │   ├── StepExecutionError
    │   ├── UnknownStepTypeError
    │   └── RecoveryExhaustedError
    └── StorageError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from replaylens.core.types import Execution


class ReplayLensError(Exception):
    """Base exception for all ReplayLens errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


class RecordingError(ReplayLensError):
    """Base for recording lifecycle errors."""


class AlreadyRecordingError(RecordingError):
    """start_recording() was called while a session is active."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Already recording a workflow (session {session_id})",
            context={"session_id": session_id},
        )
        self.session_id = session_id


class NotRecordingError(RecordingError):
    """stop_recording() was called without an active session."""

    def __init__(self) -> None:
        super().__init__("Not currently recording")


class MalformedEventError(RecordingError):
    """A raw capture event could not be turned into a Step."""

    def __init__(self, message: str, raw_event: Any = None) -> None:
        super().__init__(message, context={"raw_event": raw_event})
        self.raw_event = raw_event


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class WorkflowNotFoundError(ReplayLensError):
    kind = "Workflow"

    def __init__(self, record_id: str) -> None:
        super().__init__(f"{self.kind} not found: {record_id}", context={"id": record_id})
        self.record_id = record_id


class TemplateNotFoundError(WorkflowNotFoundError):
    kind = "Template"


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionError(ReplayLensError):
    """Base for errors raised while replaying a workflow.

    ``execution`` is attached by the ExecutionEngine once the error
    terminates a run, so callers can inspect the failed Execution.
    """

    execution: "Execution | None" = None

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context)
        self.execution = None


class ActionTimeoutError(ExecutionError, TimeoutError):
    """A navigate/click/input request got no response within its timeout."""

    def __init__(self, request: str, timeout_ms: int) -> None:
        super().__init__(
            f"{request.capitalize()} timeout after {timeout_ms} ms",
            context={"request": request, "timeout_ms": timeout_ms},
        )
        self.request = request
        self.timeout_ms = timeout_ms


class WaitTimeoutError(ExecutionError, TimeoutError):
    """A wait step's condition never became truthy."""

    def __init__(self, condition: str, timeout_ms: int) -> None:
        super().__init__(
            f"Wait condition timeout: {condition}",
            context={"condition": condition, "timeout_ms": timeout_ms},
        )
        self.condition = condition
        self.timeout_ms = timeout_ms


class StepExecutionError(ExecutionError):
    """The control surface answered ``success: false``."""

    def __init__(self, request: str, error: str | None, response: dict[str, Any] | None = None) -> None:
        super().__init__(
            error or f"{request} failed",
            context={"request": request, "response": response or {}},
        )
        self.request = request
        self.response = response or {}


class UnknownStepTypeError(ExecutionError):
    def __init__(self, step_type: str) -> None:
        super().__init__(f"Unknown step type: {step_type}", context={"step_type": step_type})
        self.step_type = step_type


class RecoveryExhaustedError(ExecutionError):
    """Retries for a failing step ran out.

    ``original_error`` is the failure that triggered recovery, ``last_error``
    the failure of the final retry (the same object when no retry ran).
    """

    def __init__(
        self,
        step_index: int,
        attempts: int,
        original_error: BaseException,
        last_error: BaseException,
    ) -> None:
        super().__init__(
            f"Step {step_index} failed after {attempts} retr{'y' if attempts == 1 else 'ies'}: "
            f"{last_error}",
            context={
                "step_index": step_index,
                "attempts": attempts,
                "original_error": str(original_error),
                "last_error": str(last_error),
            },
        )
        self.step_index = step_index
        self.attempts = attempts
        self.original_error = original_error
        self.last_error = last_error


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(ReplayLensError):
    """A persisted record could not be read or decoded."""
