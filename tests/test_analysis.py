"""Unit tests for workflow heuristics: complexity, time estimate, labels."""

from __future__ import annotations

import pytest

from replaylens.core.types import (
    ClickStep,
    ExtractStep,
    GroupStep,
    InputStep,
    NavigationStep,
    ValidateStep,
    WaitStep,
)
from replaylens.recorder.analysis import (
    calculate_complexity,
    categorize,
    describe,
    estimate_execution_time,
    extract_variables,
    generate_tags,
    validation_rules,
)

NAV = NavigationStep(action="goto", target="https://x.test", url="https://x.test")
CLICK = ClickStep(action="click", target="button#go")
TYPE = InputStep(action="type", target="form input", value="v")


class TestComplexity:
    def test_empty_is_zero(self):
        assert calculate_complexity([]) == 0
        assert estimate_execution_time([]) == 0

    def test_weights(self):
        steps = [NAV, CLICK, TYPE, WaitStep(duration=10), ExtractStep(), ValidateStep()]
        assert calculate_complexity(steps) == 2 + 1 + 1 + 0.5 + 3 + 3

    def test_group_weighs_per_child(self):
        group = GroupStep(name="g", steps=(TYPE, TYPE, TYPE))
        assert calculate_complexity([group]) == 2.4

    def test_rounded_to_one_decimal(self):
        group = GroupStep(name="g", steps=(TYPE,) * 7)
        assert calculate_complexity([group]) == 5.6

    @pytest.mark.parametrize(
        "extra",
        [NAV, CLICK, TYPE, WaitStep(), ExtractStep(), ValidateStep(), GroupStep(name="empty")],
    )
    def test_appending_never_decreases(self, extra):
        base = [NAV, CLICK, GroupStep(name="g", steps=(TYPE, TYPE))]
        assert calculate_complexity([*base, extra]) >= calculate_complexity(base)


class TestTimeEstimate:
    def test_fixed_costs(self):
        steps = [NAV, CLICK, TYPE, ExtractStep(), ValidateStep()]
        assert estimate_execution_time(steps) == 3000 + 500 + 1000 + 2000 + 1500

    def test_wait_uses_duration_or_default(self):
        assert estimate_execution_time([WaitStep(duration=250)]) == 250
        assert estimate_execution_time([WaitStep()]) == 1000

    def test_group_sums_children(self):
        assert estimate_execution_time([GroupStep(name="g", steps=(CLICK, TYPE))]) == 1500


class TestLabels:
    def test_describe_counts_types(self):
        assert describe([NAV, CLICK, CLICK]) == "Workflow with 1 navigation(s), 2 click(s)"

    def test_describe_empty(self):
        assert describe([]) == "Empty workflow"

    def test_tags(self):
        tags = generate_tags([NAV, CLICK, TYPE])
        assert tags == ["navigation", "click", "button", "input", "form"]

    @pytest.mark.parametrize(
        "steps, category",
        [
            ([NAV, TYPE], "form-filling"),
            ([NAV], "navigation"),
            ([TYPE], "data-entry"),
            ([CLICK], "interaction"),
            ([], "general"),
        ],
    )
    def test_categorize(self, steps, category):
        assert categorize(steps) == category

    def test_validation_rules(self):
        rules = validation_rules([NAV, TYPE, CLICK])
        assert rules["requiredElements"] == ["form input", "button#go"]
        assert rules["expectedDuration"] == 4500
        assert rules["criticalSteps"] == [0, 2]

    def test_extract_variables(self):
        steps = [
            NavigationStep(target="{{BASE}}/login", url="{{BASE}}/login"),
            InputStep(target="#user", value="${USERNAME}"),
        ]
        assert extract_variables(steps) == ["BASE", "USERNAME"]
