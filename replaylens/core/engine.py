"""ReplayLens — main orchestrator class."""

from __future__ import annotations

from typing import Any

from replaylens.config import RecordingConfig, Settings, get_settings
from replaylens.core.types import Execution, Pattern, Step, Suggestion, Template, Workflow, now_ms
from replaylens.events import EngineEvents
from replaylens.executor.engine import ExecutionEngine
from replaylens.executor.resolver import VariableResolver
from replaylens.executor.surface import BrowserControlSurface
from replaylens.logging import get_logger
from replaylens.patterns.recognizer import PatternRecognizer
from replaylens.patterns.store import PatternStore
from replaylens.recorder.optimizer import StepOptimizer
from replaylens.recorder.session import AssistService, WorkflowRecorder
from replaylens.storage.store import WorkflowStore
from replaylens.templates.engine import TemplateEngine

log = get_logger(__name__)

STATE_NAME = "engine"


class WorkflowEngine:
    """
    Records interactions into workflows and replays them.

    Usage:
        engine = WorkflowEngine(surface, store=WorkflowStore.from_directory("~/.replaylens"))
        await engine.initialize()
        await engine.start_recording("Login")
        ...  # interactions arrive through the surface's capture stream
        workflow = await engine.stop_recording()
        execution = await engine.execute_workflow(workflow.id, {"USERNAME": "bob"})
        await engine.shutdown()
    """

    def __init__(
        self,
        surface: BrowserControlSurface,
        *,
        store: WorkflowStore | None = None,
        settings: Settings | None = None,
        assist: AssistService | None = None,
        events: EngineEvents | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.events = events or EngineEvents()
        self.store = store or WorkflowStore.from_directory(self.settings.data_dir)
        self.surface = surface

        resolver = VariableResolver()
        self.patterns = PatternStore(self.settings.patterns.max_patterns)
        self._recognizer = PatternRecognizer(
            self.patterns, settings=self.settings.patterns, events=self.events
        )
        self._recorder = WorkflowRecorder(
            settings=self.settings.recording,
            events=self.events,
            store=self.store,
            recognizer=self._recognizer,
            surface=surface,
            assist=assist,
            optimizer=StepOptimizer(self.settings.recording),
        )
        self._executor = ExecutionEngine(
            surface,
            self.store,
            settings=self.settings.execution,
            events=self.events,
            resolver=resolver,
        )
        self._templates = TemplateEngine(self.store, resolver)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load persisted workflows, templates, learned patterns and recording settings."""
        workflows = self.store.load_all()
        templates = self.store.load_all_templates()

        state = self.store.load_state(STATE_NAME) or {}
        restored = self.patterns.load(state.get("patterns") or [])
        saved = state.get("settings")
        if saved:
            # Persisted recording settings win over the configured defaults
            self.settings.recording = RecordingConfig.model_validate(
                {**self.settings.recording.model_dump(), **saved}
            )
            self._recorder.settings = self.settings.recording

        log.info(
            "engine_initialized",
            workflows=len(workflows),
            templates=len(templates),
            patterns=restored,
            settings_restored=bool(saved),
        )

    async def shutdown(self) -> None:
        """Cancel running executions and persist learned state."""
        cancelled = self._executor.cancel_all()
        self.store.save_state(
            STATE_NAME,
            {
                "patterns": self.patterns.to_list(),
                "settings": self.settings.recording.model_dump(),
                "timestamp": now_ms(),
            },
        )
        log.info("engine_shutdown", cancelled=cancelled, patterns=len(self.patterns))

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    @property
    def is_recording(self) -> bool:
        return self._recorder.is_recording

    async def start_recording(self, name: str, options: dict[str, Any] | None = None) -> str:
        return await self._recorder.start_recording(name, options)

    def record_step(self, raw_event: Any) -> Step | None:
        return self._recorder.record_step(raw_event)

    def capture_page_load(self, url: str, title: str | None = None) -> Step | None:
        return self._recorder.capture_page_load(url, title)

    async def stop_recording(self) -> Workflow:
        return await self._recorder.stop_recording()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_workflow(
        self, workflow_id: str, parameters: dict[str, Any] | None = None
    ) -> Execution:
        return await self._executor.execute_workflow(workflow_id, parameters)

    def cancel_execution(self, execution_id: str) -> bool:
        return self._executor.cancel_execution(execution_id)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def generate_template_from_workflow(self, workflow_id: str, name: str) -> Template:
        return self._templates.generate_template_from_workflow(workflow_id, name)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_workflows(self) -> list[Workflow]:
        return self.store.workflows()

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        return self.store.get(workflow_id)

    def delete_workflow(self, workflow_id: str) -> bool:
        return self.store.delete(workflow_id)

    def get_templates(self) -> list[Template]:
        return self.store.templates()

    def get_executions(self) -> list[Execution]:
        """Running executions first, then finished ones (oldest first)."""
        return [*self._executor.running.values(), *self._executor.history]

    def get_execution(self, execution_id: str) -> Execution | None:
        return self._executor.get_execution(execution_id)

    def get_patterns(self) -> list[Pattern]:
        return list(self.patterns)

    def get_suggestions(self) -> list[Suggestion]:
        return self._recognizer.suggestions
