"""Shared fixtures for executor tests."""

import pytest
from executor_fakes import FakeRunner


@pytest.fixture
def fake_runner():
    """Factory for FakeRunner instances."""
    return FakeRunner
