"""Transition condition language.

Exactly four shapes are recognized:

    result === "success"            result !== "failure"
    context.name === "value"        context.name !== "value"
    context.count > 10              (also <, >=, <=)

Anything else, including malformed input and type mismatches, is a
non-match. Nothing is ever evaluated as code.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_RESULT_PATTERN = re.compile(r'^result\s*(===|!==)\s*"([^"]+)"$')
_CONTEXT_STRING_PATTERN = re.compile(r'^context\.([a-zA-Z_][a-zA-Z0-9_]*)\s*(===|!==)\s*"([^"]+)"$')
_CONTEXT_NUMBER_PATTERN = re.compile(
    r"^context\.([a-zA-Z_][a-zA-Z0-9_]*)\s*(>=|<=|>|<)\s*(-?[0-9]+(?:\.[0-9]+)?)$"
)

_NUMERIC_OPS = {
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
}


def is_supported_expression(expression: Optional[str]) -> bool:
    """True when the text has one of the recognized shapes."""
    if not isinstance(expression, str):
        return False
    expr = expression.strip()
    return any(
        p.match(expr) for p in (_RESULT_PATTERN, _CONTEXT_STRING_PATTERN, _CONTEXT_NUMBER_PATTERN)
    )


def _equality(operator: str, actual: Any, expected: str) -> bool:
    return actual == expected if operator == "===" else actual != expected


def evaluate_expression(
    expression: Optional[str],
    result: str,
    context: Optional[Dict[str, Any]] = None,
) -> bool:
    """Evaluate a custom transition expression.

    Args:
        expression: Expression text
        result: Run outcome, "success" or "failure"
        context: Final context of the workflow run

    Returns:
        True on a match; False for non-matches and anything unrecognized
    """
    if not isinstance(expression, str) or not expression.strip():
        logger.warning("Empty transition expression treated as non-matching")
        return False

    expr = expression.strip()
    context = context or {}

    match = _RESULT_PATTERN.match(expr)
    if match:
        return _equality(match.group(1), result, match.group(2))

    match = _CONTEXT_STRING_PATTERN.match(expr)
    if match:
        key, operator, expected = match.groups()
        return _equality(operator, context.get(key), expected)

    match = _CONTEXT_NUMBER_PATTERN.match(expr)
    if match:
        key, operator, literal = match.groups()
        actual = context.get(key)
        # bool is an int subclass but never a number here
        if isinstance(actual, bool) or not isinstance(actual, (int, float)):
            logger.warning(
                f"Transition expression '{expr}': context.{key} is "
                f"{type(actual).__name__}, not a number"
            )
            return False
        return _NUMERIC_OPS[operator](actual, float(literal))

    logger.warning(f"Unsupported transition expression treated as non-matching: '{expr}'")
    return False
