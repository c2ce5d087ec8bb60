"""Structured logging configuration.

All records go through the ``buildpass`` logger tree as single
``KEY field=value`` lines so they can be grepped per modification id.
"""

import logging
import sys
from typing import Any

# Supabase talks PostgREST over httpx, which logs every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "hpack")


def _fields(**kwargs: Any) -> str:
    return " ".join(f"{k}={v}" for k, v in kwargs.items() if v is not None)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure structured logging for the application."""
    logger = logging.getLogger("buildpass")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    return logger


# Global logger instance
logger = setup_logging()


def log_request(method: str, path: str, **kwargs: Any) -> None:
    logger.info(f"REQUEST {method} {path} {_fields(**kwargs)}".strip())


def log_response(method: str, path: str, status: int, duration_ms: float) -> None:
    logger.info(
        f"RESPONSE {method} {path} status={status} duration_ms={duration_ms:.2f}"
    )


def log_error(message: str, exc: Exception | None = None, **kwargs: Any) -> None:
    """Log an error with optional exception."""
    line = f"ERROR {message} {_fields(**kwargs)}".strip()
    if exc:
        logger.error(line, exc_info=exc)
    else:
        logger.error(line)


def log_db_query(operation: str, table: str, duration_ms: float | None = None) -> None:
    duration = f"duration_ms={duration_ms:.2f}" if duration_ms else ""
    logger.debug(f"DB {operation} table={table} {duration}".strip())


def log_external_call(
    service: str, operation: str, success: bool, duration_ms: float | None = None
) -> None:
    status = "success" if success else "failed"
    duration = f"duration_ms={duration_ms:.2f}" if duration_ms else ""
    logger.info(f"EXTERNAL {service} {operation} status={status} {duration}".strip())


def log_lookup_degraded(source: str, exc: Exception, **kwargs: Any) -> None:
    """A best-effort lookup failed and was reduced to no signal."""
    logger.warning(
        f"DEGRADED {source} error={type(exc).__name__}: {exc} {_fields(**kwargs)}".strip()
    )


def log_legality_check(
    brand: str, part_name: str, status: str, approval_type: str, violations: int
) -> None:
    logger.info(
        f"CHECK brand={brand!r} part={part_name!r} status={status} "
        f"approval={approval_type} violations={violations}"
    )


def log_snapshot_written(
    modification_id: str, status: str, listings_updated: int, listings_failed: int
) -> None:
    """One line per recompute; failed listings converge on the next recompute."""
    level = logging.WARNING if listings_failed else logging.INFO
    logger.log(
        level,
        f"SNAPSHOT modification={modification_id} status={status} "
        f"listings={listings_updated} failed={listings_failed}",
    )
