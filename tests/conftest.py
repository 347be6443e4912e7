"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any import that might load settings.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RANDOM_ORG_API_KEY", "test-api-key-123")
os.environ.setdefault("RANDOM_ORG_CACHE_POLL_INTERVAL_MS", "1")

import pytest

from fakes import FakeClock, FakeTransport
from randomorg_client.services.registry import reset_registry


@pytest.fixture(autouse=True)
def _isolated_registry():
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
