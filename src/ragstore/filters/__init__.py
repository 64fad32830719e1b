"""
Filters module - metadata predicates for similarity search.

This module provides:
- FilterExpression node types (Comparison, In, IsNull, Logical, Not)
- parse(): filter text -> tree
- evaluate(): tree + metadata -> bool (total)
- FilterExpressionBuilder: fluent construction
- to_pg_jsonpath(): pushdown for PostgreSQL backends
"""

from ragstore.filters.builder import FilterExpressionBuilder
from ragstore.filters.converters import to_pg_jsonpath
from ragstore.filters.evaluator import compile_filter, evaluate
from ragstore.filters.expressions import (
    Comparison,
    ComparisonOperator,
    FilterExpression,
    In,
    IsNull,
    Logical,
    LogicalOperator,
    Not,
)
from ragstore.filters.parser import parse

__all__ = [
    # Tree
    "FilterExpression",
    "Comparison",
    "ComparisonOperator",
    "In",
    "IsNull",
    "Logical",
    "LogicalOperator",
    "Not",
    # Operations
    "parse",
    "evaluate",
    "compile_filter",
    "FilterExpressionBuilder",
    "to_pg_jsonpath",
]
