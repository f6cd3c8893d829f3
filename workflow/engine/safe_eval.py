"""Safe Expression Evaluator for Conditional steps

Uses Python's ast module to parse and evaluate expressions in a restricted
sandbox. Only comparisons, boolean logic, literals, basic arithmetic and
dict field access are allowed. No function calls, imports or attribute
access on arbitrary objects.

Supported expressions:
- Comparisons: topic_question_count >= 7, phase == "clarify", x in ["a", "b"]
- Boolean logic: follow_up_needed == False or done, not gaps
- Literals: "string", 42, 3.14, True/true, False/false, None/null
- Field access: current_topic.estimated_questions, answers["q-1"]
- Arithmetic: count + 1, limit - 2
"""

from __future__ import annotations

import ast
import logging
import operator
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Maximum expression length to prevent abuse
MAX_EXPRESSION_LENGTH = 500

_SAFE_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_SAFE_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
}

_SAFE_UNARY_OPS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_NAMED_CONSTANTS = {
    "true": True, "True": True,
    "false": False, "False": False,
    "none": None, "None": None, "null": None,
}


class SafeEvalError(Exception):
    """Raised when expression evaluation fails."""
    pass


def _parse(expression: str) -> ast.Expression:
    if not expression or not expression.strip():
        raise SafeEvalError("Expression cannot be empty")

    expression = expression.strip()
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise SafeEvalError(
            f"Expression too long ({len(expression)} chars, max {MAX_EXPRESSION_LENGTH})"
        )

    try:
        return ast.parse(expression, mode="eval")
    except SyntaxError as e:
        raise SafeEvalError(f"Invalid expression syntax: {e}") from e


def safe_eval(expression: str, context: Dict[str, Any]) -> Any:
    """Safely evaluate an expression against a context dictionary.

    Args:
        expression: The expression string to evaluate
        context: Dictionary of variable names to values

    Returns:
        The result of evaluating the expression

    Raises:
        SafeEvalError: If expression is invalid or uses unsupported constructs
    """
    tree = _parse(expression)
    try:
        return _eval_node(tree.body, context)
    except SafeEvalError:
        raise
    except Exception as e:
        raise SafeEvalError(f"Evaluation error: {e}") from e


def evaluate_condition(expression: str, context: Dict[str, Any]) -> bool:
    """Evaluate a Conditional step's expression; any failure is False."""
    try:
        return bool(safe_eval(expression, context))
    except SafeEvalError as e:
        logger.warning(f"Condition '{expression}' evaluated as false: {e}")
        return False


def _eval_node(node: ast.AST, context: Dict[str, Any]) -> Any:
    """Recursively evaluate an AST node."""

    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id in _NAMED_CONSTANTS:
            return _NAMED_CONSTANTS[node.id]
        if node.id in context:
            return context[node.id]
        raise SafeEvalError(f"Unknown variable: '{node.id}'")

    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, context)
        for op, comparator in zip(node.ops, node.comparators):
            op_func = _SAFE_COMPARE_OPS.get(type(op))
            if op_func is None:
                raise SafeEvalError(f"Unsupported comparison: {type(op).__name__}")
            right = _eval_node(comparator, context)
            if not op_func(left, right):
                return False
            left = right
        return True

    # Short-circuit so "x is not None and x.y > 1" works on missing keys
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            return all(_eval_node(v, context) for v in node.values)
        if isinstance(node.op, ast.Or):
            return any(_eval_node(v, context) for v in node.values)
        raise SafeEvalError(f"Unsupported boolean op: {type(node.op).__name__}")

    if isinstance(node, ast.UnaryOp):
        op_func = _SAFE_UNARY_OPS.get(type(node.op))
        if op_func is None:
            raise SafeEvalError(f"Unsupported unary op: {type(node.op).__name__}")
        return op_func(_eval_node(node.operand, context))

    if isinstance(node, ast.BinOp):
        op_func = _SAFE_BIN_OPS.get(type(node.op))
        if op_func is None:
            raise SafeEvalError(f"Unsupported binary op: {type(node.op).__name__}")
        return op_func(_eval_node(node.left, context), _eval_node(node.right, context))

    if isinstance(node, ast.Subscript):
        value = _eval_node(node.value, context)
        key = _eval_node(node.slice, context)
        try:
            return value[key]
        except (KeyError, IndexError, TypeError) as e:
            raise SafeEvalError(f"Subscript access failed: {e}") from e

    # Attribute access only on dicts: current_topic.estimated_questions
    if isinstance(node, ast.Attribute):
        value = _eval_node(node.value, context)
        if isinstance(value, dict):
            if node.attr in value:
                return value[node.attr]
            raise SafeEvalError(f"Key '{node.attr}' not found in dict")
        raise SafeEvalError("Attribute access only supported on dict-like objects")

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_eval_node(elt, context) for elt in node.elts]

    raise SafeEvalError(f"Unsupported expression type: {type(node).__name__}")


def validate_condition_expression(expression: str) -> list[str]:
    """Validate a condition expression without evaluating it.

    Returns:
        List of validation error strings. Empty if valid.
    """
    try:
        tree = _parse(expression)
    except SafeEvalError as e:
        return [str(e)]

    errors = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Call):
            errors.append("Function calls are not allowed in conditions")
        elif isinstance(node, ast.Lambda):
            errors.append("Lambda expressions are not allowed")
        elif isinstance(node, (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)):
            errors.append("Comprehensions are not allowed")
        elif isinstance(node, ast.Await):
            errors.append("Await expressions are not allowed")
        elif isinstance(node, (ast.Starred, ast.NamedExpr)):
            errors.append(f"{type(node).__name__} expressions are not allowed")
    return errors
