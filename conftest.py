"""Root conftest.py for stream-relay tests.

Lives at the repository root so the ``stream_relay`` package is importable
when tests run from any subdirectory.

Provides shared fixtures used across all test modules:
- mock_logger: LoggerProtocol double following the DI pattern
"""

import pytest
from unittest.mock import MagicMock


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    ``bind`` returns the same mock so assertions work no matter how many
    component bindings a class applies.
    """
    logger = MagicMock()
    logger.info = MagicMock()
    logger.debug = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    logger.exception = MagicMock()
    logger.bind = MagicMock(return_value=logger)
    return logger
