"""structlog setup for the scheduled jobs.

Every CLI run gets a sortable run ID bound to all of its log entries.
``job_logging_context`` wraps one job (``collect``, ``discover``, ...)
and reports how it ended and how long it took, so a cron log can be
grepped for ``job_end status=error``.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Run ID
# ---------------------------------------------------------------------------


def generate_run_id(now: datetime | None = None) -> str:
    """Return a run ID that sorts by start time, e.g. ``20260315T060000-1a2b3c4d``."""
    started = now or datetime.now(tz=UTC)
    return f"{started:%Y%m%dT%H%M%S}-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# structlog configuration
# ---------------------------------------------------------------------------


_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Client libraries that log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "LiteLLM", "uvicorn.access")


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
    run_id: str | None = None,
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: ``"console"`` for humans or ``"json"`` for log shipping.
        log_file: Optional file that receives the same entries as stderr.
            Missing parent directories are created.
        run_id: Optional run ID to bind to every entry.

    Raises:
        ValueError: If ``level`` is not a recognized log level.
    """
    level_upper = level.upper()
    if level_upper not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)
    numeric_level = getattr(logging, level_upper)

    renderer: structlog.types.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    if run_id:
        structlog.contextvars.bind_contextvars(run_id=run_id)


# ---------------------------------------------------------------------------
# Job logging context manager
# ---------------------------------------------------------------------------


@contextmanager
def job_logging_context(
    job_name: str,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Bind job metadata for the duration of one job.

    Emits ``job_start`` on entry and ``job_end`` on exit with
    ``status`` (``ok`` or ``error``) and ``duration_seconds``. A failure
    is also logged as ``job_error`` with its traceback and re-raised.

    Args:
        job_name: Name of the job (``collect``, ``discover``, ...).
        **extra: Additional key-value pairs to bind.

    Yields:
        A structlog logger named after the job.
    """
    structlog.contextvars.bind_contextvars(job_name=job_name, **extra)
    log: structlog.stdlib.BoundLogger = structlog.get_logger(job_name)
    log.info("job_start")

    started = time.monotonic()
    status = "ok"
    try:
        yield log
    except Exception:
        status = "error"
        log.exception("job_error")
        raise
    finally:
        log.info(
            "job_end",
            status=status,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        structlog.contextvars.unbind_contextvars("job_name", *extra.keys())
