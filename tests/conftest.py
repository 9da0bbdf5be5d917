"""
Shared pytest fixtures and configuration for buildy tests.

This module provides:
- Auto-marking of unit/integration tests by location
- Logging reset between tests
- Sample queues and runner doubles

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.

    async def test_something(build_queue, scripted_runner):
        ...
"""

import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure buildy package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from buildy.core.logging import reset_logging
from buildy.core.settings import get_settings
from buildy.orchestration import Queue
from buildy.orchestration.testing import ScriptedRunner


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_logging_fixture() -> Generator[None, None, None]:
    """Reset structlog configuration and cached settings around each test."""
    reset_logging()
    get_settings.cache_clear()
    yield
    reset_logging()
    get_settings.cache_clear()


# =============================================================================
# Sample Queue Fixtures
# =============================================================================


@pytest.fixture
def build_queue() -> Queue:
    """
    Three-task chain: files -> concat -> write.

    Mirrors a typical build: collect inputs, join them, write the result.
    """
    return (
        Queue("build")
        .append("files", "*.js")
        .append("concat", None)
        .append("write", "out.js")
    )


@pytest.fixture
def scripted_runner() -> ScriptedRunner:
    """Runner succeeding with fixed results for files, concat and write."""
    return ScriptedRunner(
        results={"files": ["a.js", "b.js"], "concat": "a();b();", "write": "out.js"}
    )
