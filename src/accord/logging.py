"""
Structured logging for accord.

Events are rendered as JSON lines. The consumer or provider being exercised
can be bound for the duration of a run so every event carries it.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog

from accord.config import Settings, get_settings


def resolve_level(settings: Optional[Settings] = None, debug: bool = False) -> int:
    """DEBUG when requested on the command line or via ACCORD_DEBUG, else WARNING."""
    settings = settings or get_settings()
    return logging.DEBUG if debug or settings.debug else logging.WARNING


def configure_logging(level: Optional[int | str] = None, settings: Optional[Settings] = None) -> None:
    """Configure structlog/standard logging bridge."""
    if level is None:
        level = resolve_level(settings)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger("accord").setLevel(level)


@contextmanager
def bound_identity(role: str, name: str, version: str, **extra: Any) -> Iterator[None]:
    """Attach ``<role>``/``<role>_version`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**{role: name, f"{role}_version": version}, **extra):
        yield


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Bind contextual fields (task id, provider, consumer) for downstream logs."""
    return structlog.get_logger().bind(**kwargs)
