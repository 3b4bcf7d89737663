"""Workflow replay against a browser control surface."""

from replaylens.executor.engine import ExecutionEngine
from replaylens.executor.resolver import VariableRef, VariableResolver, placeholder
from replaylens.executor.surface import (
    BrowserControlSurface,
    PlaywrightControlSurface,
    split_selector_list,
)

__all__ = [
    "BrowserControlSurface",
    "ExecutionEngine",
    "PlaywrightControlSurface",
    "VariableRef",
    "VariableResolver",
    "placeholder",
    "split_selector_list",
]
