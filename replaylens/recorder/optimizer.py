"""Post-recording optimization pipeline.

Each pass takes a list of steps and returns a new list; input steps are never
mutated (they are frozen dataclasses, rewrites go through ``replace``).

    1. remove_redundant   merge same-target typing, drop surviving duplicates
    2. group_related      fold form fills / quick navigations into GroupSteps
    3. add_smart_waits    insert waits after link clicks and submit clicks
    4. harden_selectors   rewrite targets to stable-first fallback lists
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Sequence

from replaylens.config import RecordingConfig
from replaylens.core.types import (
    ClickStep,
    GroupStep,
    InputStep,
    Step,
    StepType,
    WaitCondition,
    WaitStep,
)
from replaylens.logging import get_logger
from replaylens.recorder.analysis import group_name
from replaylens.recorder.filter import is_duplicate, merge_typing
from replaylens.recorder.selectors import SelectorHardener

log = get_logger(__name__)

# Selector fragments that mark a form container
_FORM_MARKERS = ("form", '[role="form"]', ".form")

NAVIGATION_WAIT_TIMEOUT_MS = 10000
ELEMENT_WAIT_TIMEOUT_MS = 5000

# Step types whose target is an element selector (navigation targets are URLs)
_ELEMENT_TARGETS = {
    StepType.CLICK,
    StepType.INPUT,
    StepType.WAIT,
    StepType.EXTRACT,
    StepType.VALIDATE,
}


def _form_of(step: Step) -> str | None:
    form = step.context.get("form") or step.context.get("formId")
    return str(form) if form else None


def in_same_form(a: Step, b: Step) -> bool:
    """Best-effort check that two inputs share a form ancestor."""
    form_a, form_b = _form_of(a), _form_of(b)
    if form_a and form_b:
        return form_a == form_b
    target_a, target_b = a.target or "", b.target or ""
    return any(m in target_a and m in target_b for m in _FORM_MARKERS)


def is_link_target(step: Step) -> bool:
    target = step.target or ""
    return "a[href" in target or step.context.get("tagName", "").lower() == "a"


def is_submit_target(step: Step) -> bool:
    target = (step.target or "").lower()
    return "submit" in target or str(step.context.get("type", "")).lower() == "submit"


class StepOptimizer:
    """Runs the four optimization passes in order over a frozen step list."""

    def __init__(
        self,
        settings: RecordingConfig | None = None,
        hardener: SelectorHardener | None = None,
    ) -> None:
        self._settings = settings or RecordingConfig()
        self._hardener = hardener or SelectorHardener()

    def optimize(self, steps: Sequence[Step], settings: RecordingConfig | None = None) -> list[Step]:
        s = settings or self._settings
        optimized = self.remove_redundant(steps, s.duplicate_window_ms)
        if s.smart_grouping:
            optimized = self.group_related(optimized, s.navigation_group_window_ms)
        optimized = self.add_smart_waits(optimized)
        optimized = self.harden_selectors(optimized)
        log.debug("steps_optimized", before=len(steps), after=len(optimized))
        return optimized

    # ------------------------------------------------------------------
    # Pass 1
    # ------------------------------------------------------------------

    @staticmethod
    def remove_redundant(steps: Sequence[Step], window_ms: int = 1000) -> list[Step]:
        result: list[Step] = []
        for step in steps:
            last = result[-1] if result else None
            if last is not None and is_duplicate(last, step, window_ms):
                if isinstance(last, InputStep) and isinstance(step, InputStep):
                    result[-1] = merge_typing(last, step)
                continue
            result.append(step)
        return result

    # ------------------------------------------------------------------
    # Pass 2
    # ------------------------------------------------------------------

    @staticmethod
    def can_group(step: Step, previous: Step, window_ms: int = 5000) -> bool:
        if step.type == StepType.INPUT and previous.type == StepType.INPUT:
            return in_same_form(step, previous)
        if step.type == StepType.NAVIGATION and previous.type == StepType.NAVIGATION:
            return step.timestamp - previous.timestamp < window_ms
        return False

    def group_related(self, steps: Sequence[Step], window_ms: int = 5000) -> list[Step]:
        """
        Fold runs of groupable neighbours into GroupSteps.

        One left-to-right pass; groups are never regrouped.  Runs of one step
        stay bare.  When the pass finds a single run covering the whole
        recording the ungrouped list is returned unchanged.
        """
        runs: list[list[Step]] = []
        for step in steps:
            if runs and self.can_group(step, runs[-1][-1], window_ms):
                runs[-1].append(step)
            else:
                runs.append([step])

        if len(runs) <= 1:
            return list(steps)

        grouped: list[Step] = []
        for run in runs:
            if len(run) == 1:
                grouped.append(run[0])
                continue
            first = run[0]
            grouped.append(
                GroupStep(
                    timestamp=first.timestamp,
                    action="group",
                    context={"grouped": first.type.value},
                    name=group_name(first),
                    steps=tuple(run),
                    parallel=False,
                )
            )
        return grouped

    # ------------------------------------------------------------------
    # Pass 3
    # ------------------------------------------------------------------

    @staticmethod
    def add_smart_waits(steps: Sequence[Step]) -> list[Step]:
        enhanced: list[Step] = []
        for i, step in enumerate(steps):
            enhanced.append(step)
            next_step = steps[i + 1] if i + 1 < len(steps) else None

            if isinstance(step, ClickStep) and is_link_target(step):
                enhanced.append(
                    WaitStep(
                        timestamp=step.timestamp,
                        action="wait_for_navigation",
                        context={"synthetic": True},
                        condition=WaitCondition.PAGE_LOAD,
                        timeout=NAVIGATION_WAIT_TIMEOUT_MS,
                    )
                )

            if (
                isinstance(step, ClickStep)
                and is_submit_target(step)
                and isinstance(next_step, InputStep)
            ):
                enhanced.append(
                    WaitStep(
                        timestamp=step.timestamp,
                        action="wait_for_element",
                        target=next_step.target,
                        context={"synthetic": True},
                        condition=WaitCondition.ELEMENT_VISIBLE,
                        timeout=ELEMENT_WAIT_TIMEOUT_MS,
                    )
                )
        return enhanced

    # ------------------------------------------------------------------
    # Pass 4
    # ------------------------------------------------------------------

    def harden_selectors(self, steps: Sequence[Step]) -> list[Step]:
        return [self._harden(step) for step in steps]

    def _harden(self, step: Step) -> Step:
        if isinstance(step, GroupStep):
            return replace(step, steps=tuple(self._harden(s) for s in step.steps))
        if step.type not in _ELEMENT_TARGETS or not step.target:
            return step
        context: Mapping[str, Any] = step.context
        hardened = self._hardener.harden(step.target, context)
        if hardened == step.target:
            return step
        return replace(step, target=hardened)
