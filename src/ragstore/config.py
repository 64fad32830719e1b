"""
Runtime configuration.

Loads search defaults and backend selection from environment variables.

Environment Variables:
    RAGSTORE_TOP_K: Default number of results (default: 4)
    RAGSTORE_SIMILARITY_THRESHOLD: Default minimum score (default: 0.0)
    RAGSTORE_SCORING_WORKERS: Threads used to score candidates (default: 1)
    RAGSTORE_SCORING_CHUNK_SIZE: Candidates per scoring chunk (default: 1024)
    RAGSTORE_USE_POSTGRES: Use the pgvector backend (default: false)
    DATABASE_URL: PostgreSQL connection string
    USE_MOCK_EMBEDDINGS: Use hash-based embeddings instead of OpenAI (default: true)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


@dataclass
class RagStoreConfig:
    """Search defaults and backend selection."""

    default_top_k: int = 4
    default_similarity_threshold: float = 0.0
    scoring_workers: int = 1
    scoring_chunk_size: int = 1024
    use_postgres: bool = False
    database_url: str = "postgresql://localhost/ragstore"
    use_mock_embeddings: bool = True

    @classmethod
    def from_env(cls) -> "RagStoreConfig":
        """Load config from environment variables."""
        return cls(
            default_top_k=_env_int("RAGSTORE_TOP_K", 4),
            default_similarity_threshold=_env_float("RAGSTORE_SIMILARITY_THRESHOLD", 0.0),
            scoring_workers=max(1, _env_int("RAGSTORE_SCORING_WORKERS", 1)),
            scoring_chunk_size=max(1, _env_int("RAGSTORE_SCORING_CHUNK_SIZE", 1024)),
            use_postgres=_env_flag("RAGSTORE_USE_POSTGRES", "false"),
            database_url=os.environ.get("DATABASE_URL", "postgresql://localhost/ragstore"),
            use_mock_embeddings=_env_flag("USE_MOCK_EMBEDDINGS", "true"),
        )


# Global config singleton
_config: RagStoreConfig | None = None


def get_config() -> RagStoreConfig:
    """Get the global config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = RagStoreConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
