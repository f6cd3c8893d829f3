"""Tests for the transition condition language (workflow/automation/expressions.py).

Covers:
- result equality/inequality
- context string equality/inequality
- numeric context comparisons
- everything else is a non-match
"""

import pytest

from workflow.automation.expressions import evaluate_expression, is_supported_expression


class TestResultShape:
    def test_equality(self):
        assert evaluate_expression('result === "success"', "success") is True
        assert evaluate_expression('result === "success"', "failure") is False

    def test_inequality(self):
        assert evaluate_expression('result !== "failure"', "success") is True
        assert evaluate_expression('result !== "failure"', "failure") is False


class TestContextStringShape:
    def test_equality(self):
        ctx = {"planning_status": "complete"}
        assert evaluate_expression('context.planning_status === "complete"', "success", ctx) is True
        assert evaluate_expression('context.planning_status !== "complete"', "success", ctx) is False

    def test_missing_key_is_not_equal(self):
        assert evaluate_expression('context.absent === "x"', "success", {}) is False
        assert evaluate_expression('context.absent !== "x"', "success", {}) is True


class TestContextNumberShape:
    @pytest.mark.parametrize("count,expected", [(11, True), (10, False), (3, False)])
    def test_greater_than(self, count, expected):
        assert evaluate_expression("context.count > 10", "success", {"count": count}) is expected

    @pytest.mark.parametrize("expr,expected", [
        ("context.count >= 10", True),
        ("context.count <= 10", True),
        ("context.count < 10", False),
        ("context.count > -1.5", True),
    ])
    def test_other_operators(self, expr, expected):
        assert evaluate_expression(expr, "success", {"count": 10}) is expected

    def test_float_values(self):
        assert evaluate_expression("context.score < 0.5", "success", {"score": 0.25}) is True

    @pytest.mark.parametrize("value", ["11", None, True, [11]])
    def test_non_numeric_values_never_match(self, value):
        assert evaluate_expression("context.count > 10", "success", {"count": value}) is False


class TestUnsupportedInput:
    @pytest.mark.parametrize("expr", [
        "",
        "   ",
        None,
        'result == "success"',
        "context.count > ten",
        "context.a.b > 1",
        "__import__('os').system('true')",
        'result === "success" && context.x > 1',
    ])
    def test_non_match(self, expr):
        assert evaluate_expression(expr, "success", {"count": 99}) is False

    def test_is_supported_expression(self):
        assert is_supported_expression('result === "success"') is True
        assert is_supported_expression("context.count > 10") is True
        assert is_supported_expression("context.count == 10") is False
        assert is_supported_expression(None) is False
