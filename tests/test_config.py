"""Unit tests for Settings loading (defaults, environment, YAML files)."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from replaylens import config
from replaylens.config import ExecutionConfig, Settings, get_settings, override_settings


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    monkeypatch.setattr(Path, "home", lambda: tmp_path / "home")
    monkeypatch.setattr(config, "_settings", None)


class TestDefaults:
    def test_execution_defaults(self):
        settings = Settings()
        assert settings.execution.retry_attempts == 3
        assert settings.execution.retry_delay_ms == 1000
        assert settings.execution.navigation_timeout_ms == 10000
        assert settings.execution.action_timeout_ms == 5000

    def test_recording_defaults(self):
        recording = Settings().recording
        assert recording.capture_clicks and recording.capture_typing
        assert not recording.capture_hovers
        assert recording.ignore_system

    def test_data_dir_expanded(self):
        settings = Settings(storage={"data_dir": "~/wf"})
        assert "~" not in str(settings.data_dir)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            ExecutionConfig(retry_attempts=-1)


class TestSources:
    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("REPLAYLENS_EXECUTION__RETRY_ATTEMPTS", "5")
        assert Settings().execution.retry_attempts == 5

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("execution:\n  retry_delay_ms: 250\npatterns:\n  max_patterns: 10\n")
        settings = Settings.load(path)
        assert settings.execution.retry_delay_ms == 250
        assert settings.patterns.max_patterns == 10

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = Settings.load(tmp_path / "absent.yaml")
        assert settings.execution.retry_attempts == 3

    def test_override_singleton(self):
        custom = Settings(execution={"retry_attempts": 0})
        override_settings(custom)
        assert get_settings() is custom
