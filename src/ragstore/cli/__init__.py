"""
CLI module - unified command-line interface.

Provides entry points for:
- Checking filter expressions
- Searching a document file
"""

from ragstore.cli.commands import (
    main,
    run_parse_cli,
    run_search_cli,
)

__all__ = [
    "main",
    "run_parse_cli",
    "run_search_cli",
]
