"""
Filter expression tree.

A filter is an immutable tree of nodes:

    Comparison(key, operator, value)     year >= 2020
    In(key, values, negated)             genre IN ['drama', 'comedy']
    IsNull(key, negated)                 author IS NOT NULL
    Logical(op, left, right)             a AND b
    Not(child)                           NOT a

Nodes compose with ``&``, ``|`` and ``~`` and render back to filter
text with ``str()``. The rendered text parses to an equal tree.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

Scalar = Union[str, int, float, bool]

_BARE_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_RESERVED = {"and", "or", "not", "in", "nin", "is", "null", "true", "false"}


class ComparisonOperator(str, Enum):
    EQ = "=="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class _Node:
    """Operator sugar shared by every node type."""

    def __and__(self, other: FilterExpression) -> Logical:
        return Logical(LogicalOperator.AND, self, other)

    def __or__(self, other: FilterExpression) -> Logical:
        return Logical(LogicalOperator.OR, self, other)

    def __invert__(self) -> Not:
        return Not(self)


@dataclass(frozen=True)
class Comparison(_Node):
    key: str
    operator: ComparisonOperator
    value: Scalar

    def __str__(self) -> str:
        return f"{render_key(self.key)} {self.operator.value} {render_literal(self.value)}"


@dataclass(frozen=True)
class In(_Node):
    key: str
    values: tuple[Scalar, ...]
    negated: bool = False

    def __str__(self) -> str:
        keyword = "NIN" if self.negated else "IN"
        items = ", ".join(render_literal(v) for v in self.values)
        return f"{render_key(self.key)} {keyword} [{items}]"


@dataclass(frozen=True)
class IsNull(_Node):
    key: str
    negated: bool = False

    def __str__(self) -> str:
        return f"{render_key(self.key)} IS {'NOT ' if self.negated else ''}NULL"


@dataclass(frozen=True)
class Logical(_Node):
    op: LogicalOperator
    left: FilterExpression
    right: FilterExpression

    def __str__(self) -> str:
        left = _render_operand(self.left, self.op, right=False)
        right = _render_operand(self.right, self.op, right=True)
        return f"{left} {self.op.value} {right}"


@dataclass(frozen=True)
class Not(_Node):
    child: FilterExpression

    def __str__(self) -> str:
        if isinstance(self.child, Logical):
            return f"NOT ({self.child})"
        return f"NOT {self.child}"


FilterExpression = Union[Comparison, In, IsNull, Logical, Not]


# ---------------------------------------------------------------------------
# RENDERING
# ---------------------------------------------------------------------------


def render_key(key: str) -> str:
    """Render a metadata key, quoting it when it is not a bare identifier."""
    if _BARE_KEY.match(key) and key.lower() not in _RESERVED:
        return key
    return _quote(key)


def render_literal(value: Scalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    return _quote(value)


def _quote(text: str) -> str:
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _render_operand(node: FilterExpression, parent: LogicalOperator, right: bool) -> str:
    # AND binds tighter than OR and both associate to the left, so only an OR
    # under an AND, or a same-operator right child, needs parentheses.
    if isinstance(node, Logical):
        if node.op is LogicalOperator.OR and parent is LogicalOperator.AND:
            return f"({node})"
        if node.op is parent and right:
            return f"({node})"
    return str(node)
