"""Cross-workflow n-gram learning and advisory optimization suggestions."""

from __future__ import annotations

from collections import deque
from typing import Sequence

from replaylens.config import PatternConfig
from replaylens.core.types import Step, StepType, Suggestion, Workflow, iter_steps, now_ms
from replaylens.events import EngineEvents, OptimizationSuggestions
from replaylens.logging import get_logger
from replaylens.patterns.store import PatternStore

log = get_logger(__name__)

# Read-only step types; adjacent runs of these have no data dependency
_INDEPENDENT_TYPES = {StepType.EXTRACT, StepType.VALIDATE}


def signature(steps: Sequence[Step]) -> str:
    """``"navigation:goto-input:type-click:click"``"""
    return "-".join(f"{s.type.value}:{s.action}" for s in steps)


def windows(steps: Sequence[Step], min_length: int = 2, max_length: int = 5):
    """Yield ``(start, window)`` for every contiguous sub-sequence in range."""
    for length in range(min_length, max_length + 1):
        for start in range(len(steps) - length + 1):
            yield start, steps[start : start + length]


class PatternRecognizer:
    """Learns step n-grams from finalized workflows and emits suggestions.

    Suggestions never modify the workflow they describe.
    """

    def __init__(
        self,
        store: PatternStore | None = None,
        settings: PatternConfig | None = None,
        events: EngineEvents | None = None,
    ) -> None:
        self.settings = settings or PatternConfig()
        self.store = store or PatternStore(self.settings.max_patterns)
        self.events = events or EngineEvents()
        self._suggestions: deque[Suggestion] = deque(maxlen=self.settings.max_suggestions)

    @property
    def suggestions(self) -> list[Suggestion]:
        return list(self._suggestions)

    def learn(self, workflow: Workflow) -> list[Suggestion]:
        """Upsert every window of *workflow* and return the new suggestions."""
        s = self.settings
        steps = workflow.steps

        # Frequency is judged before this workflow's own contribution
        frequent = {
            sig
            for _, window in windows(steps, s.min_length, s.max_length)
            if self.store.frequency(sig := signature(window)) >= s.frequent_threshold
        }

        seen_at = now_ms()
        for _, window in windows(steps, s.min_length, s.max_length):
            self.store.upsert(signature(window), window, seen_at)

        suggestions = [
            *self.parallelization(workflow),
            *self.redundancy(workflow, frequent),
            *self.optimization(workflow),
            *self.reliability(workflow),
        ]
        self._suggestions.extend(suggestions)

        log.debug(
            "patterns_learned",
            workflow_id=workflow.id,
            patterns=len(self.store),
            suggestions=len(suggestions),
        )
        if suggestions:
            self.events.optimization_suggestions.emit(
                OptimizationSuggestions(workflow.id, tuple(suggestions))
            )
        return suggestions

    # ------------------------------------------------------------------
    # Suggestion rules
    # ------------------------------------------------------------------

    @staticmethod
    def parallelization(workflow: Workflow) -> list[Suggestion]:
        found: list[Suggestion] = []
        run: list[Step] = []
        for step in [*workflow.steps, None]:
            if step is not None and step.type in _INDEPENDENT_TYPES:
                run.append(step)
                continue
            if len(run) >= 2:
                found.append(
                    Suggestion(
                        type="parallelization",
                        message=f"{len(run)} independent read steps could run concurrently",
                        impact="medium",
                        workflow_id=workflow.id,
                        step_ids=tuple(s.id for s in run),
                    )
                )
            run = []
        return found

    def redundancy(self, workflow: Workflow, frequent: set[str]) -> list[Suggestion]:
        found: list[Suggestion] = []
        reported: set[str] = set()
        s = self.settings
        for _, window in windows(workflow.steps, s.min_length, s.max_length):
            sig = signature(window)
            if sig not in frequent or sig in reported:
                continue
            reported.add(sig)
            found.append(
                Suggestion(
                    type="redundancy",
                    message=(
                        f"Sequence '{sig}' recurs across workflows "
                        f"({self.store.frequency(sig)} times); consider a shared template"
                    ),
                    impact="low",
                    workflow_id=workflow.id,
                    step_ids=tuple(step.id for step in window),
                )
            )
        return found

    def optimization(self, workflow: Workflow) -> list[Suggestion]:
        waits = [s for s in iter_steps(workflow.steps) if s.type == StepType.WAIT]
        if len(waits) <= self.settings.max_waits:
            return []
        return [
            Suggestion(
                type="optimization",
                message=f"Workflow has {len(waits)} wait steps; consider condition-based waits",
                impact="medium",
                workflow_id=workflow.id,
                step_ids=tuple(s.id for s in waits),
            )
        ]

    def reliability(self, workflow: Workflow) -> list[Suggestion]:
        # Hardened targets are fallback lists; judge each alternative
        limit = self.settings.max_selector_length
        fragile = [
            s
            for s in iter_steps(workflow.steps)
            if s.target
            and s.type != StepType.NAVIGATION
            and any(len(alt.strip()) > limit for alt in s.target.split(","))
        ]
        if not fragile:
            return []
        return [
            Suggestion(
                type="reliability",
                message="Long selectors detected; consider more specific selectors",
                impact="high",
                workflow_id=workflow.id,
                step_ids=tuple(s.id for s in fragile),
            )
        ]
