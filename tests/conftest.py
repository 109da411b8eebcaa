"""Pytest configuration and shared fixtures."""

import pytest

from tests.unit.application.fakes import consultant


@pytest.fixture
def equal_pool():
    """Three consultants with identical history: five allocations each, idle for two days."""
    return [consultant(1, count=5), consultant(2, count=5), consultant(3, count=5)]
