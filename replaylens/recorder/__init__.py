"""Capture, filtering and post-recording optimization."""

from replaylens.recorder.filter import FilterDecision, StepFilter
from replaylens.recorder.optimizer import StepOptimizer
from replaylens.recorder.selectors import SelectorHardener, SelectorStrategy
from replaylens.recorder.session import AssistService, RecordingSession, WorkflowRecorder

__all__ = [
    "AssistService",
    "FilterDecision",
    "RecordingSession",
    "SelectorHardener",
    "SelectorStrategy",
    "StepFilter",
    "StepOptimizer",
    "WorkflowRecorder",
]
