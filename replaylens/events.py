"""Typed event channels.

Every observable occurrence of the engine has its own ``EventChannel``
carrying a dataclass payload, so subscribers are statically known and can be
tested in isolation:

    events = EngineEvents()
    events.execution_progress.subscribe(lambda e: print(e.progress))

Channel names (``EventChannel.name``) are the engine's public event contract:
recording-started, step-recorded, recording-stopped, execution-started,
step-executing, execution-progress, execution-completed, execution-failed,
execution-cancelled, optimization-suggestions.

Emitting never raises: a failing subscriber is logged and skipped so that an
observer bug cannot break a recording or an execution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from replaylens.logging import get_logger

if TYPE_CHECKING:
    from replaylens.core.types import Execution, Step, Suggestion, Workflow

log = get_logger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordingStarted:
    session_id: str
    workflow_name: str


@dataclass(frozen=True)
class StepRecorded:
    session_id: str
    step: Step


@dataclass(frozen=True)
class RecordingStopped:
    session_id: str
    workflow: Workflow


@dataclass(frozen=True)
class ExecutionStarted:
    execution: Execution


@dataclass(frozen=True)
class StepExecuting:
    execution: Execution
    step: Step
    index: int


@dataclass(frozen=True)
class ExecutionProgress:
    execution_id: str
    progress: float
    current_step: int
    total_steps: int


@dataclass(frozen=True)
class ExecutionCompleted:
    execution: Execution


@dataclass(frozen=True)
class ExecutionFailed:
    execution: Execution
    error: BaseException


@dataclass(frozen=True)
class ExecutionCancelled:
    execution: Execution


@dataclass(frozen=True)
class OptimizationSuggestions:
    workflow_id: str
    suggestions: tuple[Suggestion, ...]


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class EventChannel(Generic[T]):
    """Synchronous fan-out to the callables subscribed to one event."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], Any]] = []
        self._wildcards: list[Callable[[str, Any], Any]] = []

    def subscribe(self, callback: Callable[[T], Any]) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, payload: T) -> None:
        for callback in list(self._subscribers):
            self._deliver(callback, payload)
        for callback in list(self._wildcards):
            self._deliver(callback, self.name, payload)

    def _deliver(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as exc:
            log.error(
                "event_subscriber_failed",
                channel=self.name,
                subscriber=getattr(callback, "__qualname__", repr(callback)),
                error=str(exc),
            )

    def __len__(self) -> int:
        return len(self._subscribers)


class EngineEvents:
    """The full set of channels shared by recorder, recognizer and executor."""

    def __init__(self) -> None:
        self.recording_started: EventChannel[RecordingStarted] = EventChannel("recording-started")
        self.step_recorded: EventChannel[StepRecorded] = EventChannel("step-recorded")
        self.recording_stopped: EventChannel[RecordingStopped] = EventChannel("recording-stopped")
        self.execution_started: EventChannel[ExecutionStarted] = EventChannel("execution-started")
        self.step_executing: EventChannel[StepExecuting] = EventChannel("step-executing")
        self.execution_progress: EventChannel[ExecutionProgress] = EventChannel(
            "execution-progress"
        )
        self.execution_completed: EventChannel[ExecutionCompleted] = EventChannel(
            "execution-completed"
        )
        self.execution_failed: EventChannel[ExecutionFailed] = EventChannel("execution-failed")
        self.execution_cancelled: EventChannel[ExecutionCancelled] = EventChannel(
            "execution-cancelled"
        )
        self.optimization_suggestions: EventChannel[OptimizationSuggestions] = EventChannel(
            "optimization-suggestions"
        )

    def channels(self) -> list[EventChannel[Any]]:
        return [v for v in vars(self).values() if isinstance(v, EventChannel)]

    def channel(self, name: str) -> EventChannel[Any]:
        for ch in self.channels():
            if ch.name == name:
                return ch
        raise KeyError(f"Unknown event channel: {name}")

    def subscribe_all(self, callback: Callable[[str, Any], Any]) -> Callable[[], None]:
        """Receive ``(channel_name, payload)`` for every event."""
        for ch in self.channels():
            ch._wildcards.append(callback)

        def _unsubscribe() -> None:
            for ch in self.channels():
                if callback in ch._wildcards:
                    ch._wildcards.remove(callback)

        return _unsubscribe
