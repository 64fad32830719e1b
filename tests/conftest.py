"""Shared fixtures."""

import pytest

from ragstore.config import reset_config
from ragstore.observability.config import reset_config as reset_tracing_config
from ragstore.observability.tracer import reset_tracer


@pytest.fixture(autouse=True)
def fresh_config():
    """Every test reads configuration from its own environment."""
    reset_config()
    reset_tracing_config()
    reset_tracer()
    yield
    reset_config()
    reset_tracing_config()
    reset_tracer()
