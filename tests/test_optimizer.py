"""Unit tests for the StepOptimizer pipeline passes."""

from __future__ import annotations

from replaylens.config import RecordingConfig
from replaylens.core.types import (
    ClickStep,
    GroupStep,
    InputStep,
    NavigationStep,
    StepType,
    WaitCondition,
    WaitStep,
)
from replaylens.recorder.optimizer import StepOptimizer, in_same_form


def make_input(target="#user", value="bob", ts=0, form="login") -> InputStep:
    return InputStep(action="type", target=target, value=value, timestamp=ts, context={"form": form})


def make_nav(url="https://x.test", ts=0) -> NavigationStep:
    return NavigationStep(action="goto", target=url, url=url, timestamp=ts)


class TestRemoveRedundant:
    def test_merges_same_target_typing(self):
        steps = [make_input(value="ab", ts=0), make_input(value="cd", ts=300)]
        out = StepOptimizer.remove_redundant(steps)
        assert len(out) == 1
        assert out[0].value == "abcd"

    def test_drops_duplicate_clicks(self):
        steps = [ClickStep(action="click", target="#a", timestamp=0),
                 ClickStep(action="click", target="#a", timestamp=400)]
        assert len(StepOptimizer.remove_redundant(steps)) == 1

    def test_keeps_spaced_out_repeats(self):
        steps = [ClickStep(action="click", target="#a", timestamp=0),
                 ClickStep(action="click", target="#a", timestamp=2000)]
        assert len(StepOptimizer.remove_redundant(steps)) == 2


class TestGroupRelated:
    def setup_method(self):
        self.optimizer = StepOptimizer()

    def test_form_inputs_grouped(self):
        steps = [
            make_nav(),
            make_input("#user", ts=10),
            make_input("#pass", ts=20),
            ClickStep(action="click", target="#submit", timestamp=30),
        ]
        out = self.optimizer.group_related(steps)
        assert [s.type for s in out] == [StepType.NAVIGATION, StepType.GROUP, StepType.CLICK]
        group = out[1]
        assert isinstance(group, GroupStep)
        assert group.name == "Form Filling"
        assert group.parallel is False
        assert [s.target for s in group.steps] == ["#user", "#pass"]

    def test_inputs_in_different_forms_not_grouped(self):
        steps = [make_nav(), make_input("#a", form="one"), make_input("#b", form="two")]
        out = self.optimizer.group_related(steps)
        assert all(s.type != StepType.GROUP for s in out)

    def test_single_group_overall_keeps_original_list(self):
        steps = [make_input("#user"), make_input("#pass")]
        out = self.optimizer.group_related(steps)
        assert out == steps

    def test_quick_navigations_grouped(self):
        steps = [make_nav("https://x.test/a", ts=0), make_nav("https://x.test/b", ts=1000),
                 ClickStep(action="click", target="#go", timestamp=1500)]
        out = self.optimizer.group_related(steps)
        assert out[0].type == StepType.GROUP
        assert out[0].name == "Navigation"

    def test_slow_navigations_not_grouped(self):
        steps = [make_nav("https://x.test/a", ts=0), make_nav("https://x.test/b", ts=6000),
                 ClickStep(action="click", target="#go", timestamp=6500)]
        out = self.optimizer.group_related(steps)
        assert [s.type for s in out] == [StepType.NAVIGATION, StepType.NAVIGATION, StepType.CLICK]

    def test_form_detected_from_selectors(self):
        a = InputStep(action="type", target="form.login input.user", value="x")
        b = InputStep(action="type", target="form.login input.pass", value="y")
        assert in_same_form(a, b)


class TestSmartWaits:
    def test_wait_after_link_click(self):
        steps = [ClickStep(action="click", target='a[href="/next"]'), ClickStep(action="click", target="#x")]
        out = StepOptimizer.add_smart_waits(steps)
        assert len(out) == 3
        wait = out[1]
        assert isinstance(wait, WaitStep)
        assert wait.action == "wait_for_navigation"
        assert wait.condition is WaitCondition.PAGE_LOAD
        assert wait.timeout == 10000

    def test_wait_before_input_after_submit(self):
        steps = [ClickStep(action="click", target="#submit"), InputStep(action="type", target="#otp", value="1")]
        out = StepOptimizer.add_smart_waits(steps)
        assert [s.type for s in out] == [StepType.CLICK, StepType.WAIT, StepType.INPUT]
        wait = out[1]
        assert wait.condition is WaitCondition.ELEMENT_VISIBLE
        assert wait.target == "#otp"
        assert wait.timeout == 5000

    def test_real_steps_never_replaced(self):
        steps = [ClickStep(action="click", target="#submit"), InputStep(action="type", target="#otp", value="1")]
        out = StepOptimizer.add_smart_waits(steps)
        assert [s for s in out if s.type != StepType.WAIT] == steps


class TestOptimizePipeline:
    def test_selectors_hardened_but_urls_untouched(self):
        steps = [make_nav("https://x.test/login"), ClickStep(action="click", target="#go", timestamp=5)]
        out = StepOptimizer().optimize(steps)
        assert out[0].target == "https://x.test/login"
        assert out[1].target == '[data-testid="go"], [id="go"]'

    def test_group_children_hardened(self):
        steps = [make_nav(), make_input("#user", ts=10), make_input("#pass", ts=20)]
        out = StepOptimizer().optimize(steps)
        group = out[1]
        assert isinstance(group, GroupStep)
        assert group.steps[0].target == '[data-testid="user"], [id="user"]'

    def test_grouping_can_be_disabled(self):
        steps = [make_nav(), make_input("#user", ts=10), make_input("#pass", ts=20)]
        out = StepOptimizer().optimize(steps, RecordingConfig(smart_grouping=False))
        assert all(s.type != StepType.GROUP for s in out)

    def test_action_set_preserved(self):
        steps = [make_nav(), ClickStep(action="click", target="button.primary", timestamp=5)]
        out = StepOptimizer().optimize(steps)
        assert [(s.type, s.action) for s in out] == [(s.type, s.action) for s in steps]

    def test_input_not_mutated(self):
        steps = [ClickStep(action="click", target="#go")]
        StepOptimizer().optimize(steps)
        assert steps[0].target == "#go"
