"""structlog setup for KeyGate.

Events are short messages with keyword context:

    logger.info("Access key extended", access_key=mask_key(key), expires_at=...)

Every entry passes through redact_secrets() before rendering, so a bot token,
GitHub token or panel password handed to a logger never reaches the output,
and a raw access key is reduced to its masked suffix. The HTTP layer binds a
per-request id with structlog.contextvars; merge_contextvars adds it to every
event logged while the request is in flight.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

# Context keys whose values must never be rendered.
SECRET_FIELDS = frozenset({"bot_token", "token", "password", "authorization"})

REDACTED = "[REDACTED]"


def mask_key(access_key: str) -> str:
    """Return a log-safe form of an access key: ``key-...abcd``."""
    if len(access_key) <= 8:
        return "***"
    prefix, _, _ = access_key.partition("-")
    return f"{prefix}-...{access_key[-4:]}"


def redact_secrets(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Drop secret values and mask access keys that were logged unmasked."""
    for name in SECRET_FIELDS.intersection(event_dict):
        event_dict[name] = REDACTED
    access_key = event_dict.get("access_key")
    if isinstance(access_key, str) and "..." not in access_key and access_key != "***":
        event_dict["access_key"] = mask_key(access_key)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the process.

    Args:
        log_level:   DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_output: JSON lines when True, coloured console output otherwise.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        redact_secrets,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "keygate") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def timed_call(
    operation: str,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
    slow_ms: float = 1000.0,
) -> Iterator[None]:
    """Time a remote round-trip.

    Logs ``"<operation> completed"`` at DEBUG (WARNING above ``slow_ms``), or
    ``"<operation> failed"`` at WARNING when the block raises; the exception
    is re-raised unchanged.
    """
    log = logger or get_logger()
    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        log.warning(
            f"{operation} failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
            error=str(exc),
        )
        raise
    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    emit = log.warning if duration_ms > slow_ms else log.debug
    emit(f"{operation} completed", operation=operation, duration_ms=duration_ms)


configure_logging()
