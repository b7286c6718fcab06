# =============================================================================
# src/cli/worker.py - Ingestion worker process
# =============================================================================
#
#   python -m src.cli.worker [--concurrency N]
#
# Validates configuration, builds the job queue, embedding gateway and
# vector store exactly as the API does, then consumes the ingestion
# queue until SIGINT/SIGTERM.  Jobs already running finish before exit.
# Needs the Redis queue: an in-memory queue lives inside the API process.
# =============================================================================

"""Run the docchat ingestion worker."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from src.config.loader import load_config
from src.config.settings import Settings
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger


async def _run(app_settings: Settings, concurrency: int) -> None:
    from src.main import (
        build_embedding_gateway,
        build_ingestion_service,
        build_job_queue,
        build_vector_store,
    )
    from src.services.worker import IngestionWorker

    logger: structlog.BoundLogger = get_logger(__name__)
    config = load_config(settings=app_settings)
    job_queue = build_job_queue(app_settings)
    ingestion = build_ingestion_service(
        app_settings,
        config,
        build_embedding_gateway(app_settings),
        build_vector_store(app_settings),
        job_queue,
    )
    worker = IngestionWorker(
        job_queue=job_queue,
        ingestion=ingestion,
        concurrency=concurrency,
        poll_timeout=app_settings.worker_poll_timeout_seconds,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises.
            logger.debug("signal_handler_unsupported", signal=sig.name)

    try:
        await worker.run()
    finally:
        await job_queue.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.worker",
        description="Consume the docchat ingestion queue.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Jobs processed at once (default: WORKER_CONCURRENCY)",
    )
    args = parser.parse_args(argv)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    try:
        app_settings.validate_required(require_auth=False)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if app_settings.queue_backend == "memory":
        print(
            "Error: QUEUE_BACKEND=memory is consumed by the API process itself; "
            "use QUEUE_BACKEND=redis to run separate workers",
            file=sys.stderr,
        )
        return 1

    asyncio.run(_run(app_settings, args.concurrency or app_settings.worker_concurrency))
    return 0


if __name__ == "__main__":
    sys.exit(main())
