"""Fixtures specific to unit tests."""

import pytest

from catalogkit.common.config import HTTPConfig, RetryConfig


@pytest.fixture
def http_config_with_retry() -> HTTPConfig:
    """Three attempts with millisecond backoff so retry tests stay fast."""
    return HTTPConfig(retry=RetryConfig(max_attempts=3, min_wait=0.01, max_wait=0.02))
