"""Common utilities and shared components for catalogkit."""

from .config import (
    AggregationConfig,
    CatalogAPIConfig,
    ConcurrencyConfig,
    Config,
    FailurePolicy,
    HTTPConfig,
    LoggingConfig,
    RateLimitConfig,
    RetryConfig,
)
from .logging_config import bind_context, clear_context, setup_logging, unbind_context
from .http_client import AsyncHTTPClient
from .rate_limiter import RateLimiter
from .concurrency_limiter import ConcurrencyLimiter

__all__ = [
    "AggregationConfig",
    "CatalogAPIConfig",
    "ConcurrencyConfig",
    "Config",
    "FailurePolicy",
    "HTTPConfig",
    "LoggingConfig",
    "RateLimitConfig",
    "RetryConfig",
    "bind_context",
    "clear_context",
    "setup_logging",
    "unbind_context",
    "AsyncHTTPClient",
    "RateLimiter",
    "ConcurrencyLimiter",
]
