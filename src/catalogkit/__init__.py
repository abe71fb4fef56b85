"""catalogkit package initialization."""

from pathlib import Path
from typing import Optional

import structlog

from .common.config import (
    AggregationConfig,
    CatalogAPIConfig,
    ConcurrencyConfig,
    Config,
    FailurePolicy,
    HTTPConfig,
    LoggingConfig,
    RateLimitConfig,
    RetryConfig,
    _get_default_config_dir,
)
from .common.logging_config import bind_context, clear_context, setup_logging
from .common.http_client import AsyncHTTPClient
from .common.rate_limiter import RateLimiter
from .common.concurrency_limiter import ConcurrencyLimiter
from .api.base_client import RateLimitedAPIClient
from .api.catalog_client import CatalogClient, build_request_url
from .parsers import CatalogItem, CatalogParser, ItemKind, Storefront
from .core.exceptions import (
    AggregationTimeoutError,
    CatalogError,
    ConfigError,
    DecodeError,
    NotFoundError,
    StorefrontError,
    TransportError,
)
from .workflows import (
    AggregateResult,
    AggregationState,
    CatalogAggregator,
    ErrorKind,
    FederatedAggregator,
    StorefrontFailure,
    StorefrontOutcome,
)

__version__ = "0.1.0"
__all__ = [
    "AsyncHTTPClient",
    "RateLimitedAPIClient",
    "CatalogClient",
    "build_request_url",
    "RateLimiter",
    "ConcurrencyLimiter",
    "Config",
    "HTTPConfig",
    "RetryConfig",
    "LoggingConfig",
    "RateLimitConfig",
    "ConcurrencyConfig",
    "CatalogAPIConfig",
    "AggregationConfig",
    "FailurePolicy",
    "setup_logging",
    "bind_context",
    "clear_context",
    "CatalogItem",
    "CatalogParser",
    "ItemKind",
    "Storefront",
    "CatalogError",
    "ConfigError",
    "TransportError",
    "NotFoundError",
    "DecodeError",
    "StorefrontError",
    "AggregationTimeoutError",
    "AggregateResult",
    "AggregationState",
    "CatalogAggregator",
    "ErrorKind",
    "FederatedAggregator",
    "StorefrontFailure",
    "StorefrontOutcome",
    "configure",
    "get_config",
]

# Module-level logger (not configured yet)
logger = structlog.get_logger(__name__)

_config: Optional[Config] = None


def configure(config_path: Optional[Path] = None, config: Optional[Config] = None) -> Config:
    """
    Load configuration and set up logging.

    Resolution order: ``config`` argument, ``config_path``, then
    ``config.yaml`` in CATALOGKIT_CONFIG_DIR (or the default config dir), then
    ``config.yaml`` in the working directory, then built-in defaults.

    The loaded config is kept for ``get_config()``. Clients and aggregators
    never read it implicitly; pass its sections to them.

    Example:
        >>> import catalogkit
        >>> config = catalogkit.configure(config_path=Path("config.yaml"))
        >>> client = catalogkit.CatalogClient.from_config(config.catalog, config.http)
    """
    global _config

    if config is not None:
        _config = config
    elif config_path is not None:
        _config = Config.from_yaml(config_path)
    else:
        default_config_path = _get_default_config_dir() / "config.yaml"
        cwd_config_path = Path.cwd() / "config.yaml"

        if default_config_path.exists():
            config_path = default_config_path
            _config = Config.from_yaml(config_path)
        elif cwd_config_path.exists():
            config_path = cwd_config_path
            _config = Config.from_yaml(config_path)
        else:
            _config = Config()

    _config.resolve_paths(create_dirs=_config.logging.file.enabled)
    setup_logging(_config.logging, log_file=_config.get_log_file_path())

    logger.info(
        "catalogkit_configured",
        version=__version__,
        config_path=str(config_path) if config_path else None,
        config_dir=str(_config.config_dir),
    )
    return _config


def get_config() -> Config:
    """
    Get current configuration, initializing with defaults if needed.

    Example:
        >>> import catalogkit
        >>> catalogkit.get_config().aggregation.concurrency_limit
        20
    """
    global _config
    if _config is None:
        _config = Config()
        setup_logging(_config.logging)
    return _config
