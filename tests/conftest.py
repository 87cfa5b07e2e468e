"""pytest configuration for minerwatch tests."""

import pytest

from minerwatch.config import Settings


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def settings():
    """Settings with short poll/read intervals; retry and refresh stay long."""
    return Settings(
        poll_interval=0.01,
        retry_delay=30.0,
        refresh_interval=3600.0,
        read_attempts=3,
        settle_attempts=2,
        read_interval=0,
    )
