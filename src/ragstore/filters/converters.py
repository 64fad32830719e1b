"""
Backend filter conversion.

Stores that can evaluate filters natively receive the tree translated into
their own query language instead of filtering in Python. PostgreSQL matches
a jsonb column against an SQL/JSON path predicate:

    metadata @@ '$.genre == "drama" && $.year >= 2020'::jsonpath

Inside a jsonpath predicate, comparing values of different types yields
unknown, which @@ treats as no match. That lines up with evaluate() as long
as nothing negates it: evaluate() calls a mismatch false, so NOT turns it
into true, while jsonpath's ! keeps it unknown. Every negation is therefore
rendered as "unknown or not", which collapses unknown to false before
inverting it.
"""

from __future__ import annotations

import json
import re

from ragstore.filters.expressions import (
    Comparison,
    FilterExpression,
    In,
    IsNull,
    Logical,
    LogicalOperator,
    Not,
    Scalar,
)

_PLAIN_SEGMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _jsonpath_key(key: str) -> str:
    # Keys are flat metadata names; dots are part of the name, not nesting.
    if _PLAIN_SEGMENT.match(key):
        return f"$.{key}"
    return f"$.{json.dumps(key)}"


def _jsonpath_literal(value: Scalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    return json.dumps(value)


def _negate(predicate: str) -> str:
    return f"(({predicate}) is unknown || !({predicate}))"


def to_pg_jsonpath(expr: FilterExpression) -> str:
    """Render a filter as a PostgreSQL jsonpath predicate."""
    if isinstance(expr, Logical):
        joiner = " && " if expr.op is LogicalOperator.AND else " || "
        return f"({to_pg_jsonpath(expr.left)}{joiner}{to_pg_jsonpath(expr.right)})"

    if isinstance(expr, Not):
        return _negate(to_pg_jsonpath(expr.child))

    if not isinstance(expr, (Comparison, IsNull, In)):
        raise TypeError(f"Unsupported filter node: {type(expr).__name__}")

    key = _jsonpath_key(expr.key)

    if isinstance(expr, Comparison):
        op = expr.operator.value
        return f"{key} {op} {_jsonpath_literal(expr.value)}"

    if isinstance(expr, IsNull):
        present = f"exists({key} ? (@ != null))"
        return present if expr.negated else f"!({present})"

    if not expr.values:
        any_match = "!exists($)"
    else:
        any_match = " || ".join(f"{key} == {_jsonpath_literal(v)}" for v in expr.values)
    if not expr.negated:
        return f"({any_match})"
    return f"(exists({key}) && {_negate(any_match)})"
