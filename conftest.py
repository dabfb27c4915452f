"""
Pytest configuration for the CPU Dojo test suite.

    python -m pytest                 # everything
    python -m pytest -m programs     # only the worksheet program runs
    python -m pytest -m "not programs"
"""

import pytest

from cpudojo import Cpu

# Every test run is bounded; a program that needs more is a bug.
MAX_TEST_STEPS = 10_000


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "programs: end-to-end runs of the bundled worksheet programs")


@pytest.fixture
def cpu():
    """A fresh default-sized CPU."""
    return Cpu()
