"""Shared fixtures: fake control surfaces and fast execution settings."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from replaylens.config import ExecutionConfig, PatternConfig, RecordingConfig, Settings
from replaylens.recorder.session import WorkflowRecorder
from replaylens.storage.store import MemoryStore, WorkflowStore


def make_surface() -> AsyncMock:
    """AsyncMock surface whose every request succeeds immediately."""
    surface = AsyncMock()
    surface.navigate.return_value = {"success": True, "url": "https://example.com"}
    surface.click.return_value = {"success": True, "element": "#el"}
    surface.input.return_value = {"success": True, "value": "v"}
    surface.check_condition.return_value = True
    surface.extract.return_value = {"value": "extracted"}
    surface.validate.return_value = {"valid": True}
    # No capture stream unless a test opts in
    del surface.subscribe
    return surface


@pytest.fixture(autouse=True)
def no_active_recording(monkeypatch):
    # Recording exclusivity is process-wide; start every test idle
    monkeypatch.setattr(WorkflowRecorder, "_active", None)


def fast_execution(**overrides) -> ExecutionConfig:
    values = {"retry_delay_ms": 0, "poll_interval_ms": 1, "wait_default_ms": 0}
    values.update(overrides)
    return ExecutionConfig(**values)


@pytest.fixture
def surface() -> AsyncMock:
    return make_surface()


@pytest.fixture
def store() -> WorkflowStore:
    return WorkflowStore(MemoryStore())


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        recording=RecordingConfig(),
        execution=fast_execution(),
        patterns=PatternConfig(),
        storage={"data_dir": str(tmp_path)},
    )
