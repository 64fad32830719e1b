"""
CLI commands - entry points for filter checking and ad-hoc search.

Each command follows a consistent pattern:
1. Parse arguments
2. Load environment
3. Run the operation
4. Print results
5. Return exit code

CLI commands are thin wrappers: they handle argument parsing and output
formatting, and delegate the actual work to the store, filter and search
modules.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from ragstore.config import get_config
from ragstore.core.errors import ParseError, RagStoreError
from ragstore.filters.converters import to_pg_jsonpath
from ragstore.filters.parser import parse
from ragstore.observability import init_tracing, shutdown_tracing
from ragstore.schemas import DocumentFile, SearchHit, SearchResponse

logger = logging.getLogger(__name__)


def _load_env() -> None:
    """Load environment variables from .env file."""
    load_dotenv()


def _configure_logging() -> None:
    level = os.environ.get("RAGSTORE_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        stream=sys.stderr,
    )


def _parse_vector(text: str) -> list[float]:
    try:
        return [float(part) for part in text.split(",") if part.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid vector {text!r}: {e}") from e


def run_parse_cli() -> int:
    """CLI entry point for checking a filter expression."""
    parser = argparse.ArgumentParser(description="Parse and normalize a filter expression")
    parser.add_argument("expression", help="Filter text, e.g. \"genre == 'drama' && year >= 2020\"")
    args = parser.parse_args()

    try:
        expr = parse(args.expression)
    except ParseError as e:
        print(str(e), file=sys.stderr)
        return 1

    print(f"Filter:   {expr}")
    print(f"jsonpath: {to_pg_jsonpath(expr)}")
    return 0


def run_search_cli() -> int:
    """CLI entry point for searching a JSON document file."""
    from ragstore.embeddings import get_embedding_provider
    from ragstore.retrieval.search import CancellationToken, SearchRequest, VectorSearchService
    from ragstore.retrieval.store import InMemoryVectorStore

    config = get_config()

    parser = argparse.ArgumentParser(description="Similarity search over a document file")
    parser.add_argument("--documents", required=True, help="JSON file of documents with embeddings")
    query = parser.add_mutually_exclusive_group(required=True)
    query.add_argument("--vector", type=_parse_vector, help="Query vector, comma separated")
    query.add_argument("--query", help="Query text (embedded with the configured provider)")
    parser.add_argument("--top-k", type=int, default=config.default_top_k)
    parser.add_argument("--threshold", type=float, default=config.default_similarity_threshold)
    parser.add_argument("--filter", default=None, help="Metadata filter expression")
    parser.add_argument("--timeout", type=float, default=None, help="Deadline in seconds")
    args = parser.parse_args()

    try:
        document_file = DocumentFile.load(args.documents)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        print(f"Cannot load {args.documents}: {e}", file=sys.stderr)
        return 1

    try:
        documents = [record.to_document() for record in document_file.documents]
        store = InMemoryVectorStore()
        store.add(documents)

        embeddings = None
        if args.query is not None:
            embeddings = get_embedding_provider(
                use_mock=config.use_mock_embeddings,
                dimensions=store.dimensions or 1536,
            )
        service = VectorSearchService(store, embeddings=embeddings, config=config)
        cancel = CancellationToken(timeout=args.timeout)

        if args.vector is not None:
            request = SearchRequest(
                query_vector=args.vector,
                top_k=args.top_k,
                similarity_threshold=args.threshold,
                filter=args.filter,
            )
            results = service.similarity_search(request, cancel=cancel)
        else:
            results = service.similarity_search_text(
                args.query,
                top_k=args.top_k,
                similarity_threshold=args.threshold,
                filter=args.filter,
                cancel=cancel,
            )
    except ParseError as e:
        print(str(e), file=sys.stderr)
        return 1
    except RagStoreError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1

    response = SearchResponse(
        top_k=args.top_k,
        similarity_threshold=args.threshold,
        filter=args.filter,
        hits=[SearchHit.from_document(i, doc) for i, doc in enumerate(results, start=1)],
    )
    print(response.model_dump_json(indent=2))
    return 0


def main() -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        ragstore parse "<expression>"
        ragstore search --documents docs.json --vector 1,0 [--filter EXPR]
    """
    _load_env()
    _configure_logging()

    parser = argparse.ArgumentParser(
        description="Vector store with metadata filtering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  parse     Parse a filter expression and print its normalized forms
  search    Run a similarity search over a JSON document file

Examples:
  ragstore parse "genre == 'drama' && year >= 2020"
  ragstore search --documents docs.json --vector 1,0 --top-k 2
  ragstore search --documents docs.json --query "space opera" --filter "year >= 2000"
        """,
    )

    parser.add_argument(
        "command",
        choices=["parse", "search"],
        help="Operation to run",
    )

    # Parse just the command first
    args, remaining = parser.parse_known_args()

    commands = {
        "parse": run_parse_cli,
        "search": run_search_cli,
    }

    # Re-inject remaining args for the subcommand
    sys.argv = [sys.argv[0]] + remaining

    init_tracing()
    try:
        return commands[args.command]()
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
