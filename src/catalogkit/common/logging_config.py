"""structlog setup for catalogkit.

catalogkit events and third-party records (httpx, tenacity) go through the
root stdlib logger, so a single handler set and level applies to both.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from .config import LoggingConfig

# Quiet by default: per-request httpx lines would drown out aggregation events.
LIBRARY_LOG_LEVELS: Dict[str, str] = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "tenacity": "INFO",
}

_LOG_FILE_BACKUPS = 7


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def _rotating_file_handler(log_file: Path, level: int) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_file),
        when="midnight",
        backupCount=_LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    # catalogkit.log.2026-01-01
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    return handler


def setup_logging(config: LoggingConfig, log_file: Optional[Path] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        config: Level, format and library overrides
        log_file: Destination for the rotating log file, used only when
            ``config.file.enabled`` is set (see ``Config.get_log_file_path``)

    Example:
        >>> setup_logging(LoggingConfig(level="DEBUG", format="text"))
    """
    level = getattr(logging, config.level)

    for library, library_level in {**LIBRARY_LOG_LEVELS, **config.third_party}.items():
        logging.getLogger(library).setLevel(library_level.upper())

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    handlers[0].setLevel(level)
    if config.file.enabled and log_file is not None:
        handlers.append(_rotating_file_handler(log_file, level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(config.format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_context(**kwargs: Any) -> None:
    """
    Attach key/value pairs to every log event in the current async context.

    Example:
        >>> bind_context(aggregation_id="3f2a9c01b7de", kind="genres")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove ``keys`` from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
