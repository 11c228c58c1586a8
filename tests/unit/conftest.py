"""Shared fixtures for unit tests."""

import pytest
from fakes import FakeClock, FakeTransport

from testrigor.ci_tool.api import TestRigorApi
from testrigor.ci_tool.models.settings import TestRigorConfig


@pytest.fixture
def config() -> TestRigorConfig:
    """Create test configuration."""
    return TestRigorConfig(auth_token="token", app_id="app123")


@pytest.fixture
def transport() -> FakeTransport:
    """Create a scripted transport."""
    return FakeTransport()


@pytest.fixture
def api(config: TestRigorConfig, transport: FakeTransport) -> TestRigorApi:
    """Create an API client on top of the scripted transport."""
    return TestRigorApi(config, transport)


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()
