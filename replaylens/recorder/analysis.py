"""Deterministic workflow heuristics used when a recording is finalized.

Nothing here drives control flow at replay time; the numbers are for
planning and telemetry.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, Sequence

from replaylens.core.types import GroupStep, NavigationStep, Step, StepType, WaitStep, iter_steps
from replaylens.executor.resolver import VariableResolver

# Complexity weight per step type; groups weigh 0.8 per child
_COMPLEXITY_WEIGHTS: dict[StepType, float] = {
    StepType.CLICK: 1.0,
    StepType.INPUT: 1.0,
    StepType.NAVIGATION: 2.0,
    StepType.WAIT: 0.5,
    StepType.EXTRACT: 3.0,
    StepType.VALIDATE: 3.0,
}
_GROUP_CHILD_WEIGHT = 0.8

# Fixed replay cost per step type, in ms
_TIME_COSTS_MS: dict[StepType, int] = {
    StepType.CLICK: 500,
    StepType.INPUT: 1000,
    StepType.NAVIGATION: 3000,
    StepType.EXTRACT: 2000,
    StepType.VALIDATE: 1500,
}
_DEFAULT_WAIT_MS = 1000

_GROUP_NAMES: dict[StepType, str] = {
    StepType.INPUT: "Form Filling",
    StepType.NAVIGATION: "Navigation",
    StepType.CLICK: "User Interaction",
}


def calculate_complexity(steps: Sequence[Step]) -> float:
    total = 0.0
    for step in steps:
        if isinstance(step, GroupStep):
            total += _GROUP_CHILD_WEIGHT * len(step.steps)
        else:
            total += _COMPLEXITY_WEIGHTS.get(step.type, 1.0)
    return round(total, 1)


def estimate_execution_time(steps: Sequence[Step]) -> int:
    total = 0
    for step in steps:
        if isinstance(step, GroupStep):
            total += estimate_execution_time(step.steps)
        elif isinstance(step, WaitStep):
            total += step.duration if step.duration is not None else _DEFAULT_WAIT_MS
        else:
            total += _TIME_COSTS_MS.get(step.type, 1000)
    return total


def group_name(step: Step) -> str:
    return _GROUP_NAMES.get(step.type, "Action Group")


def describe(steps: Sequence[Step]) -> str:
    """e.g. ``"Workflow with 1 navigation(s), 2 input(s)"``."""
    counts = Counter(s.type for s in iter_steps(steps) if not isinstance(s, GroupStep))
    parts = [
        f"{counts[t]} {t.value}(s)"
        for t in (StepType.NAVIGATION, StepType.CLICK, StepType.INPUT, StepType.WAIT)
        if counts[t]
    ]
    if not parts:
        return "Empty workflow"
    return f"Workflow with {', '.join(parts)}"


def generate_tags(steps: Sequence[Step]) -> list[str]:
    tags: dict[str, None] = {}
    for step in iter_steps(steps):
        tags.setdefault(step.type.value, None)
        target = step.target or ""
        if "form" in target:
            tags.setdefault("form", None)
        if "button" in target:
            tags.setdefault("button", None)
        if isinstance(step, NavigationStep) and step.url:
            tags.setdefault("navigation", None)
    return list(tags)


def categorize(steps: Sequence[Step]) -> str:
    types = {s.type for s in iter_steps(steps)}
    has_navigation = StepType.NAVIGATION in types
    has_input = StepType.INPUT in types
    if has_navigation and has_input:
        return "form-filling"
    if has_navigation:
        return "navigation"
    if has_input:
        return "data-entry"
    if StepType.CLICK in types:
        return "interaction"
    return "general"


def validation_rules(steps: Sequence[Step]) -> dict[str, Any]:
    return {
        "requiredElements": [s.target for s in steps if s.target and s.type != StepType.NAVIGATION],
        "expectedDuration": estimate_execution_time(steps),
        "criticalSteps": [
            i for i, s in enumerate(steps) if s.type in (StepType.NAVIGATION, StepType.CLICK)
        ],
    }


def extract_variables(steps: Sequence[Step], resolver: VariableResolver | None = None) -> list[str]:
    """Distinct variable names referenced anywhere in the step payloads."""
    resolver = resolver or VariableResolver()
    names: dict[str, None] = {}
    for step in steps:
        for name in resolver.names(json.dumps(step.to_dict(), default=str)):
            names.setdefault(name, None)
    return list(names)
