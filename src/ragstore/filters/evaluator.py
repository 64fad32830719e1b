"""
Filter evaluation over a document's metadata.

evaluate() is total: it never raises for data reasons.
- a missing key makes comparisons, IN and NIN false
- mismatched types (string vs number, bool vs number) make comparisons false
- ordering operators only apply to number/number and string/string
"""

from __future__ import annotations

import operator
from typing import Any, Callable, Mapping

from ragstore.filters.expressions import (
    Comparison,
    ComparisonOperator,
    FilterExpression,
    In,
    IsNull,
    Logical,
    LogicalOperator,
    Not,
    Scalar,
)

_ORDERING: dict[ComparisonOperator, Callable[[Any, Any], bool]] = {
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.GTE: operator.ge,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.LTE: operator.le,
}

_MISSING = object()


def _kind(value: Any) -> str | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


def _compatible(left: Any, right: Any) -> bool:
    kind = _kind(left)
    return kind is not None and kind == _kind(right)


def _compare(actual: Any, op: ComparisonOperator, expected: Scalar) -> bool:
    if not _compatible(actual, expected):
        return False
    if op is ComparisonOperator.EQ:
        return actual == expected
    if op is ComparisonOperator.NE:
        return actual != expected
    if _kind(actual) == "bool":
        return False
    return _ORDERING[op](actual, expected)


def _matches_any(actual: Any, values: tuple[Scalar, ...]) -> bool:
    return any(_compare(actual, ComparisonOperator.EQ, v) for v in values)


def evaluate(expr: FilterExpression, metadata: Mapping[str, Any]) -> bool:
    """Evaluate a filter against a metadata mapping."""
    if isinstance(expr, Logical):
        if expr.op is LogicalOperator.AND:
            return evaluate(expr.left, metadata) and evaluate(expr.right, metadata)
        return evaluate(expr.left, metadata) or evaluate(expr.right, metadata)

    if isinstance(expr, Not):
        return not evaluate(expr.child, metadata)

    if isinstance(expr, IsNull):
        present = metadata.get(expr.key) is not None
        return present if expr.negated else not present

    actual = metadata.get(expr.key, _MISSING)
    if actual is _MISSING or actual is None:
        return False

    if isinstance(expr, Comparison):
        return _compare(actual, expr.operator, expr.value)

    if isinstance(expr, In):
        if _kind(actual) is None:
            return False
        matched = _matches_any(actual, expr.values)
        return not matched if expr.negated else matched

    raise TypeError(f"Unsupported filter node: {type(expr).__name__}")


def compile_filter(expr: FilterExpression | None) -> Callable[[Mapping[str, Any]], bool]:
    """Return a predicate over metadata; a missing filter accepts everything."""
    if expr is None:
        return lambda metadata: True
    return lambda metadata: evaluate(expr, metadata)
