"""Unit tests for ExecutionEngine (AsyncMock control surface, in-memory store)."""

from __future__ import annotations

import asyncio

import pytest
from conftest import fast_execution, make_surface

from replaylens.core.types import (
    ClickStep,
    ExecutionStatus,
    ExtractStep,
    GroupStep,
    InputStep,
    NavigationStep,
    ValidateStep,
    WaitCondition,
    WaitStep,
    Workflow,
    WorkflowMetadata,
)
from replaylens.events import EngineEvents
from replaylens.exceptions import (
    ActionTimeoutError,
    RecoveryExhaustedError,
    StepExecutionError,
    WaitTimeoutError,
    WorkflowNotFoundError,
)
from replaylens.executor.engine import ExecutionEngine
from replaylens.storage.store import MemoryStore, WorkflowStore


def make_workflow(steps, wf_id="wf1") -> Workflow:
    return Workflow(
        id=wf_id,
        name="wf",
        description="",
        created=0,
        modified=0,
        steps=tuple(steps),
        metadata=WorkflowMetadata(step_count=len(steps)),
    )


def login_steps():
    return [
        NavigationStep(action="goto", target="{{BASE}}/login", url="{{BASE}}/login"),
        InputStep(action="type", target="#user", value="${USERNAME}"),
        ClickStep(action="click", target="#submit"),
    ]


class TestExecutionEngine:
    def setup_method(self):
        self.surface = make_surface()
        self.store = WorkflowStore(MemoryStore())
        self.events = EngineEvents()
        self.engine = ExecutionEngine(
            self.surface, self.store, settings=fast_execution(), events=self.events
        )

    def add(self, steps, wf_id="wf1") -> str:
        self.store.save_workflow(make_workflow(steps, wf_id))
        return wf_id

    # ------------------------------------------------------------------ happy path

    async def test_parameters_substituted_before_dispatch(self):
        wf_id = self.add(login_steps())
        execution = await self.engine.execute_workflow(
            wf_id, {"BASE": "https://x.test", "USERNAME": "bob"}
        )

        assert execution.status is ExecutionStatus.COMPLETED
        self.surface.navigate.assert_awaited_once_with("https://x.test/login", "load")
        self.surface.input.assert_awaited_once_with(
            "#user", "bob", {"clear": True, "validate": False}
        )
        assert sorted(execution.results) == [0, 1, 2]
        assert execution.retry_count == 0
        assert execution.end_time is not None

    async def test_missing_parameter_passed_through_literally(self):
        wf_id = self.add([InputStep(action="type", target="#q", value="{{missing}}")])
        await self.engine.execute_workflow(wf_id)
        assert self.surface.input.await_args.args[1] == "{{missing}}"

    async def test_unknown_workflow_raises(self):
        with pytest.raises(WorkflowNotFoundError):
            await self.engine.execute_workflow("nope")

    async def test_empty_workflow_completes(self):
        wf_id = self.add([])
        execution = await self.engine.execute_workflow(wf_id)
        assert execution.status is ExecutionStatus.COMPLETED
        assert execution.results == {}

    async def test_extract_and_validate_results(self):
        wf_id = self.add(
            [
                ExtractStep(action="extract", target="h1", attribute="title"),
                ValidateStep(action="validate", target="h1", condition="text_equals",
                             expected="Hi {{NAME}}"),
            ]
        )
        execution = await self.engine.execute_workflow(wf_id, {"NAME": "Ann"})
        self.surface.extract.assert_awaited_once_with("h1", "title")
        self.surface.validate.assert_awaited_once_with(
            "text_equals", {"selector": "h1", "expected": "Hi Ann"}
        )
        assert execution.results[0] == {"value": "extracted"}

    # ------------------------------------------------------------------ wait

    async def test_plain_wait_sleeps(self):
        wf_id = self.add([WaitStep(action="wait", duration=5)])
        execution = await self.engine.execute_workflow(wf_id)
        assert execution.results[0] == {"waited": 5}
        self.surface.check_condition.assert_not_awaited()

    async def test_condition_wait_polls_until_truthy(self):
        self.surface.check_condition.side_effect = [False, False, True]
        wf_id = self.add(
            [WaitStep(action="wait_for_element", target="#ready",
                      condition=WaitCondition.ELEMENT_VISIBLE, timeout=1000)]
        )
        execution = await self.engine.execute_workflow(wf_id)
        assert self.surface.check_condition.await_count == 3
        assert execution.results[0] == {"condition": "element_visible", "result": True}

    async def test_condition_wait_times_out(self):
        self.surface.check_condition.return_value = False
        engine = ExecutionEngine(
            self.surface, self.store, settings=fast_execution(retry_attempts=0)
        )
        wf_id = self.add(
            [WaitStep(action="wait_for_element", target="#never",
                      condition=WaitCondition.ELEMENT_VISIBLE, timeout=20)]
        )
        with pytest.raises(RecoveryExhaustedError) as exc_info:
            await engine.execute_workflow(wf_id)
        assert isinstance(exc_info.value.original_error, WaitTimeoutError)

    # ------------------------------------------------------------------ groups

    async def test_group_children_run_in_order(self):
        group = GroupStep(
            action="group",
            name="Form Filling",
            steps=(
                InputStep(action="type", target="#a", value="1"),
                ClickStep(action="click", target="#b"),
            ),
        )
        wf_id = self.add([group])
        execution = await self.engine.execute_workflow(wf_id)
        assert execution.results[0] == {
            "success": True,
            "groupResults": [
                {"success": True, "value": "v"},
                {"success": True, "element": "#el"},
            ],
        }

    # ------------------------------------------------------------------ failures and retries

    async def test_transient_failure_recovered(self):
        self.surface.click.side_effect = [RuntimeError("detached"), {"success": True}]
        wf_id = self.add([ClickStep(action="click", target="#go")])
        execution = await self.engine.execute_workflow(wf_id)
        assert execution.status is ExecutionStatus.COMPLETED
        assert execution.retry_count == 1
        assert self.surface.click.await_count == 2

    async def test_retry_budget_bounds_attempts(self):
        self.surface.click.side_effect = RuntimeError("gone")
        wf_id = self.add([ClickStep(action="click", target="#go")])

        with pytest.raises(RecoveryExhaustedError) as exc_info:
            await self.engine.execute_workflow(wf_id)

        # one original call plus three retries
        assert self.surface.click.await_count == 4
        execution = exc_info.value.execution
        assert execution.status is ExecutionStatus.FAILED
        assert execution.retry_count == 3
        assert execution.errors[0]["step"] == 0
        assert execution.errors[0]["type"] == "RecoveryExhaustedError"

    async def test_retry_budget_shared_across_steps(self):
        self.surface.click.side_effect = [RuntimeError("a"), {"success": True}] * 2
        wf_id = self.add([ClickStep(action="click", target="#a"), ClickStep(action="click", target="#b")])
        execution = await self.engine.execute_workflow(wf_id)
        assert execution.retry_count == 2

    async def test_unsuccessful_response_is_step_error(self):
        self.surface.click.return_value = {"success": False, "error": "Element not found"}
        engine = ExecutionEngine(self.surface, self.store, settings=fast_execution(retry_attempts=0))
        wf_id = self.add([ClickStep(action="click", target="#gone")])
        with pytest.raises(RecoveryExhaustedError) as exc_info:
            await engine.execute_workflow(wf_id)
        original = exc_info.value.original_error
        assert isinstance(original, StepExecutionError)
        assert original.message == "Element not found"

    async def test_slow_surface_times_out(self):
        async def slow_click(selector, options):
            await asyncio.sleep(1)
            return {"success": True}

        self.surface.click.side_effect = slow_click
        engine = ExecutionEngine(
            self.surface, self.store, settings=fast_execution(retry_attempts=0, action_timeout_ms=10)
        )
        wf_id = self.add([ClickStep(action="click", target="#go")])
        with pytest.raises(RecoveryExhaustedError) as exc_info:
            await engine.execute_workflow(wf_id)
        assert isinstance(exc_info.value.original_error, ActionTimeoutError)
        assert exc_info.value.original_error.timeout_ms == 10

    async def test_failed_run_stops_at_failing_step(self):
        self.surface.input.side_effect = RuntimeError("readonly")
        wf_id = self.add(login_steps())
        with pytest.raises(RecoveryExhaustedError):
            await self.engine.execute_workflow(wf_id)
        self.surface.click.assert_not_awaited()

    # ------------------------------------------------------------------ cancellation

    async def test_cancel_takes_effect_at_next_step_boundary(self):
        wf_id = self.add([ClickStep(action="click", target=f"#s{i}") for i in range(4)])

        def cancel_on_second(event):
            if event.index == 1:
                self.engine.cancel_execution(event.execution.id)

        self.events.step_executing.subscribe(cancel_on_second)
        execution = await self.engine.execute_workflow(wf_id)

        assert execution.status is ExecutionStatus.CANCELLED
        assert self.surface.click.await_count == 2
        assert execution.current_step == 1

    def test_cancel_unknown_execution(self):
        assert self.engine.cancel_execution("nope") is False

    # ------------------------------------------------------------------ bookkeeping

    async def test_events_in_order(self):
        seen = []
        self.events.subscribe_all(lambda name, payload: seen.append(name))
        wf_id = self.add([ClickStep(action="click", target="#a"), ClickStep(action="click", target="#b")])
        await self.engine.execute_workflow(wf_id)
        assert seen == [
            "execution-started",
            "step-executing",
            "execution-progress",
            "step-executing",
            "execution-progress",
            "execution-completed",
        ]

    async def test_progress_is_fraction(self):
        progress = []
        self.events.execution_progress.subscribe(lambda e: progress.append(e.progress))
        wf_id = self.add([ClickStep(action="click") for _ in range(4)])
        await self.engine.execute_workflow(wf_id)
        assert progress == [0.25, 0.5, 0.75, 1.0]

    async def test_failure_event_carries_error(self):
        failures = []
        self.events.execution_failed.subscribe(failures.append)
        self.surface.click.side_effect = RuntimeError("gone")
        wf_id = self.add([ClickStep(action="click")])
        with pytest.raises(RecoveryExhaustedError):
            await self.engine.execute_workflow(wf_id)
        assert len(failures) == 1
        assert failures[0].execution.status is ExecutionStatus.FAILED

    async def test_finished_runs_move_to_history(self):
        wf_id = self.add([ClickStep(action="click")])
        execution = await self.engine.execute_workflow(wf_id)
        assert self.engine.running == {}
        assert self.engine.get_execution(execution.id) is execution
        assert self.engine.history == [execution]

    async def test_concurrent_executions_are_independent(self):
        wf_id = self.add(login_steps())
        first, second = await asyncio.gather(
            self.engine.execute_workflow(wf_id, {"USERNAME": "ann"}),
            self.engine.execute_workflow(wf_id, {"USERNAME": "bob"}),
        )
        assert first.id != second.id
        assert first.parameters == {"USERNAME": "ann"}
        typed = sorted(call.args[1] for call in self.surface.input.await_args_list)
        assert typed == ["ann", "bob"]
