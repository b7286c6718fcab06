"""Logging for the docchat API process and the ingestion worker.

Both entry points (``src/main.py`` and ``src/cli/worker.py``) call
:func:`configure_logging` once at startup, passing ``json_output=True``
when ``APP_ENV=production``.  Production emits one JSON object per line
for log shipping; any other environment gets colourised console output.

Every event passes through the same processors, in order:

1. ``merge_contextvars``: copies ``job_id`` and ``collection_id`` bound by
   :func:`bind_job_context` while the worker runs a job, so extractor,
   embedding and vector-store events are attributable without passing ids
   around.
2. ``add_log_level`` and ``StackInfoRenderer``.
3. ``set_exc_info``: ``logger.exception`` calls keep their traceback.
4. ISO timestamps.

The root stdlib logger gets a single stdout handler with a
``ProcessorFormatter`` that reuses this chain, so records from uvicorn,
chromadb, redis and httpx render in the same format as docchat's own
events.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, uses console rendering in
                     development and JSON in production (detected via APP_ENV).

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # contextvars first so job / request bindings reach every event.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger.

    If structlog has not been configured yet, calls configure_logging() with defaults.

    Args:
        name: Logger name, typically the module name.

    Returns:
        A structlog BoundLogger bound with the given name.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextmanager
def bind_job_context(job_id: str, collection_id: str) -> Iterator[None]:
    """Bind job identifiers into structlog contextvars for the enclosed block."""
    with structlog.contextvars.bound_contextvars(job_id=job_id, collection_id=collection_id):
        yield
