"""Test configuration for pytest."""

import logging
import os
import pytest


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    # Set environment variable to ensure minimal logging during tests
    os.environ['THUMBWATCH_LOG_LEVEL'] = 'WARNING'

    # Also configure root logger to be quiet
    logging.getLogger().setLevel(logging.WARNING)

    # Failure paths are exercised on purpose; keep their warnings out of the output
    for logger_name in ['thumbwatch.dispatch', 'thumbwatch.session']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)
