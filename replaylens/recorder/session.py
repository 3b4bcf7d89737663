"""Recording sessions: capture start/stop and real-time step filtering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Protocol, Sequence, runtime_checkable

from replaylens.config import RecordingConfig
from replaylens.core.types import (
    NavigationStep,
    Step,
    Workflow,
    WorkflowMetadata,
    new_id,
    now_ms,
    step_from_dict,
)
from replaylens.events import EngineEvents, RecordingStarted, RecordingStopped, StepRecorded
from replaylens.exceptions import AlreadyRecordingError, MalformedEventError, NotRecordingError
from replaylens.logging import bind_execution_context, get_logger
from replaylens.recorder import analysis
from replaylens.recorder.filter import FilterDecision, StepFilter, merge_typing
from replaylens.recorder.optimizer import StepOptimizer

if TYPE_CHECKING:
    from replaylens.executor.surface import BrowserControlSurface
    from replaylens.patterns.recognizer import PatternRecognizer
    from replaylens.storage.store import WorkflowStore

log = get_logger(__name__)


@runtime_checkable
class AssistService(Protocol):
    """Optional collaborator that drafts human-readable descriptions."""

    async def describe_workflow(self, name: str, steps: list[dict[str, Any]]) -> str: ...


@dataclass
class RecordingSession:
    id: str
    name: str
    start_time: int
    settings: RecordingConfig
    context: dict[str, Any] = field(default_factory=dict)
    steps: list[Step] = field(default_factory=list)

    @property
    def last_step(self) -> Step | None:
        return self.steps[-1] if self.steps else None


def _coerce_step(raw_event: Any) -> Step:
    if isinstance(raw_event, Step):
        return raw_event
    try:
        return step_from_dict(raw_event)
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedEventError(f"Unrecognized capture event: {exc}", raw_event) from exc


class WorkflowRecorder:
    """
    Owns the process-wide active RecordingSession.

    Usage:
        recorder = WorkflowRecorder(store=store, recognizer=recognizer)
        session_id = await recorder.start_recording("Login", {"context": {"url": url}})
        recorder.record_step({"type": "click", "action": "click", "target": "#go"})
        workflow = await recorder.stop_recording()

    Only one session may be active across all recorders in the process.
    """

    # Shared by every instance; claimed in start_recording, released in stop_recording
    _active: ClassVar[RecordingSession | None] = None

    def __init__(
        self,
        *,
        settings: RecordingConfig | None = None,
        events: EngineEvents | None = None,
        store: WorkflowStore | None = None,
        recognizer: PatternRecognizer | None = None,
        surface: BrowserControlSurface | None = None,
        assist: AssistService | None = None,
        optimizer: StepOptimizer | None = None,
    ) -> None:
        self.settings = settings or RecordingConfig()
        self.events = events or EngineEvents()
        self._store = store
        self._recognizer = recognizer
        self._surface = surface
        self._assist = assist
        self._optimizer = optimizer or StepOptimizer(self.settings)
        self._session: RecordingSession | None = None
        self._filter: StepFilter | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> RecordingSession | None:
        return self._session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_recording(self, name: str, options: dict[str, Any] | None = None) -> str:
        """Begin capturing.  Raises AlreadyRecordingError if a session is active."""
        active = WorkflowRecorder._active
        if active is not None:
            raise AlreadyRecordingError(active.id)

        options = options or {}
        overrides = options.get("settings") or {}
        settings = RecordingConfig.model_validate({**self.settings.model_dump(), **overrides})

        session = RecordingSession(
            id=new_id(),
            name=name,
            start_time=now_ms(),
            settings=settings,
            context=dict(options.get("context") or {}),
        )
        WorkflowRecorder._active = session
        self._session = session
        self._filter = StepFilter(settings)
        bind_execution_context(session_id=session.id)

        subscribe = getattr(self._surface, "subscribe", None)
        if callable(subscribe):
            try:
                self._unsubscribe = await subscribe(self.record_step)
            except BaseException:
                self._release()
                raise

        log.info("recording_started", session_id=session.id, name=name)
        self.events.recording_started.emit(RecordingStarted(session.id, name))
        return session.id

    def record_step(self, raw_event: Any) -> Step | None:
        """
        Feed one captured interaction to the active session.

        Returns the step as stored (possibly merged), or None when the event
        was filtered out, malformed, or arrived with no active session.
        """
        session = self._session
        if session is None or self._filter is None:
            log.debug("step_ignored_not_recording")
            return None

        try:
            step = _coerce_step(raw_event)
        except MalformedEventError as exc:
            log.warning("step_dropped", reason="malformed", error=exc.message)
            return None

        decision = self._filter.should_record(step, session.last_step)
        if decision is FilterDecision.DROP:
            log.debug("step_dropped", reason="filtered", type=step.type.value, action=step.action)
            return None

        if decision is FilterDecision.MERGE:
            stored = merge_typing(session.steps[-1], step)  # type: ignore[arg-type]
            session.steps[-1] = stored
        else:
            session.steps.append(step)
            stored = step

        self.events.step_recorded.emit(StepRecorded(session.id, stored))
        return stored

    def capture_page_load(self, url: str, title: str | None = None) -> Step | None:
        """Record a navigation observed by the surface as a page_load step."""
        return self.record_step(
            NavigationStep(action="page_load", target=url, url=url, title=title)
        )

    async def stop_recording(self) -> Workflow:
        """Finalize the session into a Workflow.  Raises NotRecordingError if idle."""
        session = self._session
        if session is None:
            raise NotRecordingError()

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        try:
            raw_steps = tuple(session.steps)
            steps = self._optimizer.optimize(raw_steps, session.settings)
            workflow = await self._build_workflow(session, steps)

            if self._store is not None:
                self._store.save_workflow(workflow)
            if self._recognizer is not None:
                self._recognizer.learn(workflow)
        finally:
            self._release()

        log.info(
            "recording_stopped",
            session_id=session.id,
            workflow_id=workflow.id,
            captured=len(raw_steps),
            steps=len(workflow.steps),
        )
        self.events.recording_stopped.emit(RecordingStopped(session.id, workflow))
        return workflow

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _release(self) -> None:
        if WorkflowRecorder._active is self._session:
            WorkflowRecorder._active = None
        self._session = None
        self._filter = None

    async def _build_workflow(self, session: RecordingSession, steps: Sequence[Step]) -> Workflow:
        created = now_ms()
        metadata = WorkflowMetadata(
            duration=created - session.start_time,
            step_count=len(steps),
            complexity=analysis.calculate_complexity(steps),
            estimated_execution_time=analysis.estimate_execution_time(steps),
        )
        return Workflow(
            id=new_id(),
            name=session.name,
            description=await self._describe(session.name, steps),
            created=created,
            modified=created,
            steps=tuple(steps),
            metadata=metadata,
            context=dict(session.context),
            settings=session.settings.model_dump(),
            tags=tuple(analysis.generate_tags(steps)),
            category=analysis.categorize(steps),
            validation=analysis.validation_rules(steps),
            variables=tuple(analysis.extract_variables(steps)),
        )

    async def _describe(self, name: str, steps: Sequence[Step]) -> str:
        if self._assist is not None and steps:
            try:
                text = await self._assist.describe_workflow(name, [s.to_dict() for s in steps])
                if text and text.strip():
                    return text.strip()
            except Exception as exc:
                log.warning("assist_description_failed", error=str(exc))
        return analysis.describe(steps)
