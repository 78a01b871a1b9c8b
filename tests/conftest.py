"""
Pytest configuration and fixtures for all tests.
"""

import logging
import os
import sys
from datetime import datetime, timezone

import pytest

# Make the flat email_counter module importable without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def fixed_now():
    """A fixed UTC instant used for output file names."""
    return datetime(2024, 1, 15, 9, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def debug_logs(caplog):
    """Capture email_counter logs down to DEBUG."""
    caplog.set_level(logging.DEBUG, logger="email_counter")
    return caplog
