"""Real-time step filtering: noise suppression, duplicate drop, typing merge."""

from __future__ import annotations

from dataclasses import replace
from enum import Enum

from replaylens.config import RecordingConfig
from replaylens.core.types import InputStep, Step, StepType

# Pointer noise never worth replaying
IGNORED_ACTIONS = frozenset({"mousemove", "mouseenter", "mouseleave"})

_SCROLL_ACTIONS = frozenset({"scroll", "wheel"})
_HOVER_ACTIONS = frozenset({"hover", "mouseover"})


class FilterDecision(str, Enum):
    RECORD = "record"
    DROP = "drop"
    MERGE = "merge"  # fold into the previous input step


def is_duplicate(first: Step, second: Step, window_ms: int = 1000) -> bool:
    """Same type, action and target, captured less than *window_ms* apart."""
    return (
        first.type == second.type
        and first.action == second.action
        and first.target == second.target
        and abs(second.timestamp - first.timestamp) < window_ms
    )


def merge_typing(first: InputStep, second: InputStep) -> InputStep:
    """Append *second*'s value to *first*'s buffer, keeping *first*'s identity."""
    return replace(first, value=first.value + second.value, timestamp=second.timestamp)


class StepFilter:
    """Decides, per captured step, whether it becomes part of the recording."""

    def __init__(self, settings: RecordingConfig | None = None) -> None:
        self._settings = settings or RecordingConfig()

    @property
    def settings(self) -> RecordingConfig:
        return self._settings

    def should_record(self, step: Step, last_step: Step | None) -> FilterDecision:
        s = self._settings

        if s.ignore_system and step.action in IGNORED_ACTIONS:
            return FilterDecision.DROP
        if not self._captured(step):
            return FilterDecision.DROP

        # Real-time dedup; with auto_optimize off duplicates wait for the stop-time pass
        if (
            s.auto_optimize
            and last_step is not None
            and is_duplicate(last_step, step, s.duplicate_window_ms)
        ):
            if isinstance(step, InputStep) and isinstance(last_step, InputStep):
                return FilterDecision.MERGE
            return FilterDecision.DROP

        return FilterDecision.RECORD

    def _captured(self, step: Step) -> bool:
        s = self._settings
        if step.action in _SCROLL_ACTIONS:
            return s.capture_scrolling
        if step.action in _HOVER_ACTIONS:
            return s.capture_hovers
        if step.type == StepType.CLICK:
            return s.capture_clicks
        if step.type == StepType.INPUT:
            return s.capture_typing
        if step.type == StepType.NAVIGATION:
            return s.capture_navigation
        return True
