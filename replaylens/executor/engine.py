"""Workflow interpreter: step dispatch, timeouts, retries, cancellation."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from replaylens.config import ExecutionConfig
from replaylens.core.types import (
    ClickStep,
    Execution,
    ExecutionStatus,
    ExtractStep,
    GroupStep,
    InputStep,
    NavigationStep,
    Step,
    StepType,
    ValidateStep,
    WaitStep,
    new_id,
    now_ms,
)
from replaylens.events import (
    EngineEvents,
    ExecutionCancelled,
    ExecutionCompleted,
    ExecutionFailed,
    ExecutionProgress,
    ExecutionStarted,
    StepExecuting,
)
from replaylens.exceptions import (
    ActionTimeoutError,
    ExecutionError,
    RecoveryExhaustedError,
    StepExecutionError,
    UnknownStepTypeError,
    WaitTimeoutError,
    WorkflowNotFoundError,
)
from replaylens.executor.resolver import VariableResolver
from replaylens.logging import bind_execution_context, clear_execution_context, get_logger

if TYPE_CHECKING:
    from replaylens.executor.surface import BrowserControlSurface
    from replaylens.storage.store import WorkflowStore

log = get_logger(__name__)


class _CancelRequested(Exception):
    """Unwinds a run when a cancellation is observed at a step boundary."""


class ExecutionEngine:
    """
    Replays stored workflows against a BrowserControlSurface.

    Steps run strictly in order; independent executions may run
    concurrently on the same engine, each with its own Execution record.

    Usage:
        engine = ExecutionEngine(surface, store)
        execution = await engine.execute_workflow(workflow_id, {"USERNAME": "bob"})
    """

    def __init__(
        self,
        surface: BrowserControlSurface,
        store: WorkflowStore,
        *,
        settings: ExecutionConfig | None = None,
        events: EngineEvents | None = None,
        resolver: VariableResolver | None = None,
    ) -> None:
        self.surface = surface
        self.settings = settings or ExecutionConfig()
        self.events = events or EngineEvents()
        self._store = store
        self._resolver = resolver or VariableResolver()
        self._running: dict[str, Execution] = {}
        self._history: deque[Execution] = deque(maxlen=self.settings.history_limit)
        self._handlers: dict[StepType, Callable[[Any, Execution], Awaitable[Any]]] = {
            StepType.NAVIGATION: self._execute_navigation,
            StepType.CLICK: self._execute_click,
            StepType.INPUT: self._execute_input,
            StepType.WAIT: self._execute_wait,
            StepType.EXTRACT: self._execute_extract,
            StepType.VALIDATE: self._execute_validate,
            StepType.GROUP: self._execute_group,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def running(self) -> dict[str, Execution]:
        return dict(self._running)

    @property
    def history(self) -> list[Execution]:
        return list(self._history)

    def get_execution(self, execution_id: str) -> Execution | None:
        if execution_id in self._running:
            return self._running[execution_id]
        for execution in self._history:
            if execution.id == execution_id:
                return execution
        return None

    def cancel_execution(self, execution_id: str) -> bool:
        """Request cooperative cancellation.  Returns False if not running."""
        execution = self._running.get(execution_id)
        if execution is None or execution.status.terminal:
            return False
        execution.status = ExecutionStatus.CANCELLING
        log.info("execution_cancel_requested", execution_id=execution_id)
        return True

    def cancel_all(self) -> int:
        return sum(self.cancel_execution(eid) for eid in list(self._running))

    async def execute_workflow(
        self, workflow_id: str, parameters: dict[str, Any] | None = None
    ) -> Execution:
        """
        Run every step of *workflow_id* in order.

        Returns the completed (or cancelled) Execution.  On failure the
        raised ExecutionError carries the failed Execution as ``.execution``.
        """
        workflow = self._store.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        execution = Execution(
            id=new_id(),
            workflow_id=workflow_id,
            parameters=dict(parameters or {}),
        )
        execution.status = ExecutionStatus.RUNNING
        self._running[execution.id] = execution
        bind_execution_context(execution_id=execution.id, workflow_id=workflow_id)

        total = len(workflow.steps)
        log.info("execution_started", step_count=total)
        self.events.execution_started.emit(ExecutionStarted(execution))

        try:
            for index, step in enumerate(workflow.steps):
                self._check_cancelled(execution)
                execution.advance_to(index)
                self.events.step_executing.emit(StepExecuting(execution, step, index))

                result = await self._run_step(step, index, execution)
                execution.results[index] = result

                self.events.execution_progress.emit(
                    ExecutionProgress(
                        execution_id=execution.id,
                        progress=round((index + 1) / total, 4),
                        current_step=index,
                        total_steps=total,
                    )
                )

            execution.status = ExecutionStatus.COMPLETED
            execution.end_time = now_ms()
            log.info("execution_completed", duration_ms=execution.duration)
            self.events.execution_completed.emit(ExecutionCompleted(execution))
            return execution

        except _CancelRequested:
            execution.status = ExecutionStatus.CANCELLED
            execution.end_time = now_ms()
            log.info("execution_cancelled", current_step=execution.current_step)
            self.events.execution_cancelled.emit(ExecutionCancelled(execution))
            return execution

        except asyncio.CancelledError:
            execution.status = ExecutionStatus.CANCELLED
            execution.end_time = now_ms()
            self.events.execution_cancelled.emit(ExecutionCancelled(execution))
            raise

        except ExecutionError as exc:
            execution.status = ExecutionStatus.FAILED
            execution.end_time = now_ms()
            execution.errors.append(
                {
                    "step": execution.current_step,
                    "error": str(exc),
                    "type": type(exc).__name__,
                    "timestamp": execution.end_time,
                }
            )
            exc.execution = execution
            log.error(
                "execution_failed",
                step=execution.current_step,
                error=str(exc),
                retry_count=execution.retry_count,
            )
            self.events.execution_failed.emit(ExecutionFailed(execution, exc))
            raise

        finally:
            self._running.pop(execution.id, None)
            self._history.append(execution)
            clear_execution_context()

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    @staticmethod
    def _check_cancelled(execution: Execution) -> None:
        if execution.status is ExecutionStatus.CANCELLING:
            raise _CancelRequested()

    async def _run_step(self, step: Step, index: int, execution: Execution) -> Any:
        """Dispatch *step*, retrying on failure within the execution's budget."""
        try:
            return await self._dispatch(step, execution)
        except (_CancelRequested, RecoveryExhaustedError, UnknownStepTypeError):
            raise
        except Exception as exc:
            return await self._attempt_recovery(step, index, exc, execution)

    async def _attempt_recovery(
        self, step: Step, index: int, error: Exception, execution: Execution
    ) -> Any:
        """
        Linear backoff retry of the same step.

        ``retry_count`` is shared by every step of the execution, so the
        total number of retries per run never exceeds ``retry_attempts``.
        """
        last_error: Exception = error
        attempts = 0
        while execution.retry_count < self.settings.retry_attempts:
            execution.retry_count += 1
            attempts += 1
            delay_ms = self.settings.retry_delay_ms * execution.retry_count
            log.warning(
                "step_retry",
                step=index,
                step_type=step.type.value,
                attempt=execution.retry_count,
                delay_ms=delay_ms,
                error=str(last_error),
            )
            await asyncio.sleep(delay_ms / 1000)
            try:
                return await self._dispatch(step, execution)
            except (_CancelRequested, RecoveryExhaustedError):
                raise
            except Exception as exc:
                last_error = exc

        raise RecoveryExhaustedError(index, attempts, error, last_error) from last_error

    async def _dispatch(self, step: Step, execution: Execution) -> Any:
        handler = self._handlers.get(step.type)
        if handler is None:
            raise UnknownStepTypeError(str(step.type))
        return await handler(step, execution)

    async def _request(self, request: str, call: Awaitable[Any], timeout_ms: int) -> Any:
        """Await one surface response, mapping timeouts and ``success: false``."""
        try:
            response = await asyncio.wait_for(call, timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise ActionTimeoutError(request, timeout_ms) from None
        if isinstance(response, dict) and response.get("success") is False:
            raise StepExecutionError(request, response.get("error"), response)
        return response

    def _resolve(self, text: Any, execution: Execution) -> Any:
        return self._resolver.resolve(text, execution.parameters)

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    async def _execute_navigation(self, step: NavigationStep, execution: Execution) -> Any:
        url = self._resolve(step.url or step.target, execution)
        return await self._request(
            "navigation",
            self.surface.navigate(url, step.wait_for),
            self.settings.navigation_timeout_ms,
        )

    async def _execute_click(self, step: ClickStep, execution: Execution) -> Any:
        selector = self._resolve(step.target, execution)
        options = self._resolver.resolve_value(step.options, execution.parameters)
        return await self._request(
            "click",
            self.surface.click(selector, options),
            self.settings.action_timeout_ms,
        )

    async def _execute_input(self, step: InputStep, execution: Execution) -> Any:
        selector = self._resolve(step.target, execution)
        value = self._resolve(step.value, execution)
        return await self._request(
            "input",
            self.surface.input(selector, value, {"clear": step.clear, "validate": step.validate}),
            self.settings.action_timeout_ms,
        )

    async def _execute_wait(self, step: WaitStep, execution: Execution) -> Any:
        if step.condition is None:
            duration = step.duration if step.duration is not None else self.settings.wait_default_ms
            await asyncio.sleep(duration / 1000)
            return {"waited": duration}

        timeout_ms = step.timeout if step.timeout is not None else self.settings.wait_timeout_ms
        options = {
            "selector": self._resolve(step.target, execution),
            "text": self._resolve(step.text, execution),
            "timeout": timeout_ms,
        }
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        poll = self.settings.poll_interval_ms / 1000

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise WaitTimeoutError(step.condition.value, timeout_ms)
            try:
                result = await asyncio.wait_for(
                    self.surface.check_condition(step.condition.value, options), remaining
                )
            except asyncio.TimeoutError:
                raise WaitTimeoutError(step.condition.value, timeout_ms) from None
            if result:
                return {"condition": step.condition.value, "result": result}
            await asyncio.sleep(min(poll, max(0.0, deadline - loop.time())))

    async def _execute_extract(self, step: ExtractStep, execution: Execution) -> Any:
        selector = self._resolve(step.target, execution)
        return await self._request(
            "extract",
            self.surface.extract(selector, step.attribute),
            self.settings.action_timeout_ms,
        )

    async def _execute_validate(self, step: ValidateStep, execution: Execution) -> Any:
        options = {
            "selector": self._resolve(step.target, execution),
            "expected": self._resolver.resolve_value(step.expected, execution.parameters),
        }
        return await self._request(
            "validate",
            self.surface.validate(step.condition, options),
            self.settings.action_timeout_ms,
        )

    async def _execute_group(self, step: GroupStep, execution: Execution) -> Any:
        # ``parallel`` is reserved; children always run in order
        results = []
        for child_index, child in enumerate(step.steps):
            self._check_cancelled(execution)
            results.append(await self._run_step(child, execution.current_step, execution))
            log.debug("group_child_completed", group=step.name, child=child_index)
        return {"success": True, "groupResults": results}
