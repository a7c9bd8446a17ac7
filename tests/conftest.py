"""
Shared pytest fixtures and configuration for nobl tests.

This module provides:
- Quiet structured logging for the whole session
- Logging context cleanup for test isolation
- Timing helpers shared by the wall-clock scheduler tests

Timing constants strike a balance:
- Too big and the tests run slowly
- Too small and the tests fail spuriously because samples drift out of sync
"""

from collections.abc import Generator
from pathlib import Path

import pytest

from nobl import Nobl
from nobl.core.logging import clear_context, configure_logging

# Duration option given to each scheduler under test (milliseconds)
DURATION = 10
# How many durations pass between sampling "frames"
FACTOR = 5


def frame(n: float) -> float:
    """Seconds from the start of a test until sampling frame ``n``."""
    return n * DURATION * FACTOR / 1000


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Route structlog output through a quiet, plain renderer."""
    configure_logging(level="WARNING", json_format=False, add_timestamp=False)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "timing" in test_path.name:
            item.add_marker(pytest.mark.timing)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "timing"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_log_context() -> Generator[None, None, None]:
    """Clear bound structlog context before and after each test."""
    clear_context()
    yield
    clear_context()


@pytest.fixture
def nobl() -> Nobl:
    """Scheduler with the short test duration."""
    return Nobl(duration=DURATION)


@pytest.fixture(name="frame")
def frame_fixture():
    """The ``frame(n)`` timing helper."""
    return frame
