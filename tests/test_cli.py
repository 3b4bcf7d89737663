"""Tests for the replaylens CLI (typer CliRunner against a temp data dir)."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from replaylens import config
from replaylens.cli import app
from replaylens.config import Settings
from replaylens.core.engine import STATE_NAME
from replaylens.core.types import ClickStep, InputStep, NavigationStep, Workflow, WorkflowMetadata
from replaylens.patterns.store import PatternStore
from replaylens.storage.store import WorkflowStore

runner = CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    store = WorkflowStore.from_directory(tmp_path)
    store.save_workflow(
        Workflow(
            id="wf1",
            name="Checkout",
            description="Workflow with 1 navigation(s), 1 input(s), 1 click(s)",
            created=1_700_000_000_000,
            modified=1_700_000_000_000,
            steps=(
                NavigationStep(action="goto", target="https://shop.test/cart", url="https://shop.test/cart"),
                InputStep(action="type", target="#coupon", value="SAVE10"),
                ClickStep(action="click", target="#pay"),
            ),
            metadata=WorkflowMetadata(step_count=3, complexity=4.0, estimated_execution_time=4500),
            category="form-filling",
        )
    )
    patterns = PatternStore()
    patterns.upsert("navigation:goto-input:type", [], seen_at=1_700_000_000_000)
    store.save_state(STATE_NAME, {"patterns": patterns.to_list()})
    return tmp_path


def invoke(data_dir, *args):
    return runner.invoke(app, ["--data-dir", str(data_dir), *args])


class TestCli:
    def test_workflows_lists_stored(self, data_dir):
        result = invoke(data_dir, "workflows")
        assert result.exit_code == 0
        assert "Checkout" in result.output

    def test_show(self, data_dir):
        result = invoke(data_dir, "show", "wf1")
        assert result.exit_code == 0
        assert "Checkout" in result.output
        assert "#coupon" in result.output

    def test_show_json(self, data_dir):
        result = invoke(data_dir, "show", "wf1", "--json")
        assert result.exit_code == 0
        assert '"name": "Checkout"' in result.output

    def test_show_missing(self, data_dir):
        result = invoke(data_dir, "show", "nope")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_make_template_then_list(self, data_dir):
        result = invoke(data_dir, "make-template", "wf1", "Checkout template")
        assert result.exit_code == 0
        assert "BASE_URL" in result.output
        assert "COUPON_VALUE" in result.output

        listed = invoke(data_dir, "templates")
        assert "Checkout template" in listed.output

    def test_make_template_missing_workflow(self, data_dir):
        result = invoke(data_dir, "make-template", "nope", "T")
        assert result.exit_code == 1

    def test_patterns(self, data_dir):
        result = invoke(data_dir, "patterns", "--limit", "5")
        assert result.exit_code == 0
        assert "navigation:goto" in result.output

    def test_logging_settings_applied(self, data_dir, tmp_path, monkeypatch):
        log_file = tmp_path / "cli.log"
        monkeypatch.setattr(
            config, "_settings", Settings(logging={"format": "json", "file": str(log_file)})
        )
        result = invoke(data_dir, "--log-level", "info", "workflows")
        assert result.exit_code == 0
        assert log_file.exists()

    def test_delete(self, data_dir):
        assert invoke(data_dir, "delete", "wf1").exit_code == 0
        assert invoke(data_dir, "delete", "wf1").exit_code == 1
        assert not (data_dir / "workflows" / "wf1.json").exists()

