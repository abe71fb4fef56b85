"""Configuration models using Pydantic for validation."""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator
from ruamel.yaml import YAML

logger = structlog.get_logger(__name__)


class RetryConfig(BaseModel):
    """Configuration for HTTP retry logic with exponential backoff."""

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of retry attempts",
    )
    backoff_multiplier: float = Field(
        default=1.0,
        ge=0.1,
        le=10.0,
        description="Multiplier for exponential backoff calculation",
    )
    min_wait: float = Field(
        default=1.0,
        ge=0.01,
        le=60.0,
        description="Minimum wait time between retries in seconds",
    )
    max_wait: float = Field(
        default=10.0,
        ge=0.01,
        le=300.0,
        description="Maximum wait time between retries in seconds",
    )
    status_codes: List[int] = Field(
        default_factory=lambda: [408, 429, 500, 502, 503, 504],
        description="HTTP status codes that should trigger a retry",
    )

    @field_validator("status_codes")
    @classmethod
    def validate_status_codes(cls, v: List[int]) -> List[int]:
        """Validate that status codes are in valid range."""
        for code in v:
            if not 100 <= code <= 599:
                raise ValueError(f"Invalid HTTP status code: {code}")
        return v


class HTTPConfig(BaseModel):
    """Configuration for HTTP client."""

    timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Request timeout in seconds",
    )
    max_redirects: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Maximum number of redirects to follow",
    )
    verify_ssl: bool = Field(
        default=True,
        description="Whether to verify SSL certificates",
    )
    max_connections: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Maximum number of connections in the pool",
    )
    max_keepalive_connections: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum number of keep-alive connections",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry configuration",
    )


class FileLoggingConfig(BaseModel):
    """Configuration for file-based logging.

    Log files are written as catalogkit.log in config_dir and rotated daily
    with 7-day retention.
    """

    enabled: bool = Field(
        default=False,
        description="Enable file logging (logs to catalogkit.log in config_dir)",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    format: str = Field(
        default="json",
        description="Log format: json or text",
    )
    file: FileLoggingConfig = Field(
        default_factory=FileLoggingConfig,
        description="File logging configuration",
    )
    third_party: Dict[str, str] = Field(
        default_factory=dict,
        description="Log levels for third-party libraries (advanced)",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid format: {v}. Must be one of {valid_formats}")
        return v_lower


class RateLimitConfig(BaseModel):
    """Configuration for rate limiting."""

    enabled: bool = Field(
        default=True,
        description="Whether rate limiting is enabled",
    )
    requests_per_minute: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum requests per minute",
    )
    requests_per_second: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum requests per second",
    )
    requests_per_hour: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum requests per hour",
    )
    burst_size: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum burst size (defaults to rate limit)",
    )

    def is_active(self) -> bool:
        """Return True when rate limiting is enabled and at least one rate is set."""
        return self.enabled and any(
            (self.requests_per_second, self.requests_per_minute, self.requests_per_hour)
        )


class ConcurrencyConfig(BaseModel):
    """Configuration for request-level concurrency control."""

    max_concurrent_requests: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum number of concurrent HTTP requests",
    )


class CatalogAPIConfig(BaseModel):
    """Configuration for the music catalog API client.

    The developer and music-user tokens are sent as static headers. Token
    issuance and refresh happen outside this package.
    """

    base_url: str = Field(
        default="https://api.music.apple.com/v1",
        description="Base URL of the catalog API",
    )
    developer_token: Optional[str] = Field(
        default=None,
        description="Developer token sent as a Bearer Authorization header",
    )
    music_user_token: Optional[str] = Field(
        default=None,
        description="Music user token sent as the Music-User-Token header",
    )
    page_limit: int = Field(
        default=100,
        ge=1,
        le=300,
        description="Page size requested from paginated endpoints",
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=lambda: RateLimitConfig(requests_per_minute=300, burst_size=20),
        description="Rate limiting configuration",
    )
    concurrency: ConcurrencyConfig = Field(
        default_factory=ConcurrencyConfig,
        description="Request-level concurrency configuration",
    )

    def auth_headers(self) -> Dict[str, str]:
        """Build static authentication headers, preferring environment overrides."""
        developer_token = os.environ.get("CATALOGKIT_DEVELOPER_TOKEN") or self.developer_token
        user_token = os.environ.get("CATALOGKIT_MUSIC_USER_TOKEN") or self.music_user_token

        headers: Dict[str, str] = {}
        if developer_token:
            headers["Authorization"] = f"Bearer {developer_token}"
        if user_token:
            headers["Music-User-Token"] = user_token
        return headers


class FailurePolicy(str, Enum):
    """How an aggregation reacts to a single storefront failing."""

    BEST_EFFORT = "best_effort"  # collect failures, return partial result
    FAIL_FAST = "fail_fast"  # cancel siblings, raise tagged error


class AggregationConfig(BaseModel):
    """Defaults for federated catalog aggregation calls."""

    concurrency_limit: Optional[int] = Field(
        default=20,
        ge=0,
        le=1000,
        description="Maximum storefront fetches in flight (0 or null for unbounded)",
    )
    failure_policy: FailurePolicy = Field(
        default=FailurePolicy.BEST_EFFORT,
        description="Failure policy: best_effort or fail_fast",
    )
    timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Per-call time bound in seconds (null for no bound)",
    )


def _get_default_config_dir() -> Path:
    """
    Get default config directory.

    Priority:
    1. CATALOGKIT_CONFIG_DIR environment variable
    2. $HOME/.config/catalogkit
    """
    env_config_dir = os.environ.get("CATALOGKIT_CONFIG_DIR")
    if env_config_dir:
        return Path(env_config_dir).expanduser().resolve()
    return Path.home() / ".config" / "catalogkit"


class Config(BaseModel):
    """Main configuration class for catalogkit.

    Environment Variables:
    - CATALOGKIT_CONFIG_DIR: Override config_dir (log file location)
    - CATALOGKIT_DEVELOPER_TOKEN: Override catalog.developer_token
    - CATALOGKIT_MUSIC_USER_TOKEN: Override catalog.music_user_token
    """

    config_dir: Optional[Path] = Field(
        default=None,
        description="Configuration directory. Resolved from CATALOGKIT_CONFIG_DIR or defaults.",
    )
    http: HTTPConfig = Field(
        default_factory=HTTPConfig,
        description="HTTP client configuration",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    catalog: CatalogAPIConfig = Field(
        default_factory=CatalogAPIConfig,
        description="Catalog API client configuration",
    )
    aggregation: AggregationConfig = Field(
        default_factory=AggregationConfig,
        description="Federated aggregation defaults",
    )

    def resolve_paths(self, create_dirs: bool = True) -> "Config":
        """
        Resolve config_dir from environment or defaults.

        Args:
            create_dirs: If True, create the directory if it doesn't exist

        Returns:
            Self with resolved paths (for chaining)
        """
        if self.config_dir is None:
            object.__setattr__(self, "config_dir", _get_default_config_dir())

        if create_dirs:
            self.config_dir.mkdir(parents=True, exist_ok=True)

        logger.debug("paths_resolved", config_dir=str(self.config_dir))
        return self

    def get_log_file_path(self) -> Path:
        """Get absolute log file path (catalogkit.log in config_dir)."""
        config_dir = self.config_dir or _get_default_config_dir()
        return config_dir / "catalogkit.log"

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config object with validated configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            pydantic.ValidationError: If configuration is invalid

        Example:
            >>> from pathlib import Path
            >>> config = Config.from_yaml(Path("config.yaml"))
        """
        yaml_loader = YAML(typ="safe")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml_loader.load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_string: str) -> "Config":
        """
        Load configuration from YAML string.

        Example:
            >>> yaml_str = "aggregation:\\n  concurrency_limit: 5"
            >>> config = Config.from_yaml_string(yaml_str)
        """
        data = yaml.safe_load(yaml_string)
        return cls.model_validate(data or {})

    def to_yaml_string(self, exclude_secrets: bool = True) -> str:
        """
        Serialize configuration to a YAML string.

        Args:
            exclude_secrets: Drop developer and music-user tokens from the output
        """
        exclude: Dict[str, Any] = {"config_dir": True}
        if exclude_secrets:
            exclude["catalog"] = {"developer_token", "music_user_token"}
        data = self.model_dump(mode="json", exclude=exclude, exclude_none=True)
        return yaml.safe_dump(data, sort_keys=False)
