"""
Fluent construction of filter expressions.

For callers that prefer code over filter text:

    b = FilterExpressionBuilder()
    expr = b.and_(b.eq("genre", "drama"), b.gte("year", 2020))

produces the same tree as parse("genre == 'drama' && year >= 2020").
Every step returns a new immutable node; nothing is mutated.
"""

from __future__ import annotations

from functools import reduce
from typing import Iterable

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


class FilterExpressionBuilder:
    """Factory methods mirroring the textual filter grammar."""

    def eq(self, key: str, value: Scalar) -> Comparison:
        return Comparison(key, ComparisonOperator.EQ, value)

    def ne(self, key: str, value: Scalar) -> Comparison:
        return Comparison(key, ComparisonOperator.NE, value)

    def gt(self, key: str, value: Scalar) -> Comparison:
        return Comparison(key, ComparisonOperator.GT, value)

    def gte(self, key: str, value: Scalar) -> Comparison:
        return Comparison(key, ComparisonOperator.GTE, value)

    def lt(self, key: str, value: Scalar) -> Comparison:
        return Comparison(key, ComparisonOperator.LT, value)

    def lte(self, key: str, value: Scalar) -> Comparison:
        return Comparison(key, ComparisonOperator.LTE, value)

    def in_(self, key: str, values: Iterable[Scalar]) -> In:
        return In(key, tuple(values))

    def nin(self, key: str, values: Iterable[Scalar]) -> In:
        return In(key, tuple(values), negated=True)

    def is_null(self, key: str) -> IsNull:
        return IsNull(key)

    def is_not_null(self, key: str) -> IsNull:
        return IsNull(key, negated=True)

    def and_(self, first: FilterExpression, *rest: FilterExpression) -> FilterExpression:
        """Combine with AND, folding left like the parser does."""
        return reduce(lambda left, right: Logical(LogicalOperator.AND, left, right), rest, first)

    def or_(self, first: FilterExpression, *rest: FilterExpression) -> FilterExpression:
        """Combine with OR, folding left like the parser does."""
        return reduce(lambda left, right: Logical(LogicalOperator.OR, left, right), rest, first)

    def not_(self, expr: FilterExpression) -> Not:
        return Not(expr)
