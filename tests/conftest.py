"""Pytest configuration for the stream relay test suite.

Key Principles:
- No network: the upstream feed is a scripted async generator
- Sinks are recording doubles; Redis and websockets are mocked
- Retry delays are zero so supervisor tests run instantly
"""

import sys
from pathlib import Path

import pytest

# tests directory (for fixtures.*)
tests_root = Path(__file__).parent
if str(tests_root) not in sys.path:
    sys.path.insert(0, str(tests_root))

from fixtures.stream import (  # noqa: E402
    ScriptedSource,
    RecordingSink,
    FailingSink,
)


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def scripted_source():
    """Factory: scripted_source([[unit, ...], ConnectionError(), ...])."""
    return ScriptedSource


# =============================================================================
# PYTEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (may use mocks)"
    )
    config.addinivalue_line(
        "markers", "integration: Tests wiring several components together"
    )
