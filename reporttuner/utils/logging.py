"""Structured logging for reporttuner.

One processor chain feeds either a ConsoleRenderer (development) or a
JSONRenderer (``APP_ENV=production`` or ``json_output=True``).  stdlib
``logging`` is routed through the same chain so uvicorn output matches.

Retraining logs are correlated through structlog contextvars rather than
by passing bound loggers around: :func:`cycle_context` binds ``cycle_id``
once in the orchestrator, and every event emitted inside it (services,
stores, the OpenAI adapter) carries the id.  The API does the same with
``request_id`` per HTTP request.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# HTTP/SDK clients that log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "google.auth", "urllib3")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib bridge.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.
        json_output: Force JSON rendering regardless of ``APP_ENV``.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger named ``name``, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def cycle_context(cycle_id: str, **fields: object) -> Iterator[None]:
    """Bind ``cycle_id`` (and ``fields``) to every log event inside the block."""
    with structlog.contextvars.bound_contextvars(cycle_id=cycle_id, **fields):
        yield
