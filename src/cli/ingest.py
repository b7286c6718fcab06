# =============================================================================
# src/cli/ingest.py - Operator CLI for ingestion jobs and chat
# =============================================================================
#
# Talks to the same job queue, vector store and providers as the API, so
# an operator can drive the system without the HTTP layer.
#
# Supported subcommands:
#
#   enqueue - Enqueue a local file or a URL under a collection id
#   status - Show the ingestion job status of a collection
#   ask - Ask a question against a collection
#   token - Mint a bearer token for a user id
#   dead-letters - List jobs that exhausted their retries
#
# Usage examples:
#   python -m src.cli.ingest enqueue --file ./paper.pdf --id paper-1
#   python -m src.cli.ingest enqueue --url https://youtu.be/dQw4w9WgXcQ --id talk-1
#   python -m src.cli.ingest status --id paper-1
#   python -m src.cli.ingest ask --id paper-1 --question "What is the main result?"
#   python -m src.cli.ingest token --user alice
# =============================================================================

"""Operator CLI for docchat ingestion jobs.

Usage::

    python -m src.cli.ingest enqueue --file ./paper.pdf --id paper-1
    python -m src.cli.ingest status --id paper-1
    python -m src.cli.ingest ask --id paper-1 --question "What is it about?"
    python -m src.cli.ingest token --user alice

File jobs reference the file by absolute path, so the worker must share
the filesystem of the machine running this command.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from src.config.settings import Settings
from src.utils.errors import DocChatError


async def _handle_enqueue(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.main import build_job_queue
    from src.models.ingestion import IngestionJob, SourceKind

    if args.file:
        path = Path(args.file).expanduser().resolve()
        if not path.is_file():
            print(f"Error: file not found: {path}", file=sys.stderr)
            return 1
        source_kind, reference = SourceKind.FILE, str(path)
    else:
        source_kind, reference = SourceKind.URL, args.url

    job_queue = build_job_queue(app_settings)
    try:
        current = await job_queue.get_status(args.id)
        if current is not None and current.state.is_active:
            print(
                f"Error: a job for '{args.id}' is already {current.state.value}",
                file=sys.stderr,
            )
            return 1
        job = IngestionJob(
            source_kind=source_kind,
            source_reference=reference,
            owner_id=args.owner,
            collection_id=args.id,
        )
        await job_queue.enqueue(job)
    finally:
        await job_queue.close()

    print(f"Enqueued {source_kind.value} job {job.job_id}")
    print(f"  Collection: {args.id}")
    print(f"  Source:     {reference}")
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.main import build_job_queue

    job_queue = build_job_queue(app_settings)
    try:
        status = await job_queue.get_status(args.id)
    finally:
        await job_queue.close()

    if status is None:
        print(f"No ingestion job recorded for '{args.id}'", file=sys.stderr)
        return 1
    print(f"Collection:    {status.collection_id}")
    print(f"Job:           {status.job_id}")
    print(f"State:         {status.state.value}")
    print(f"Attempts:      {status.attempts}")
    print(f"Dead-lettered: {'yes' if status.dead_lettered else 'no'}")
    print(f"Updated:       {status.updated_at.isoformat()}")
    if status.error:
        print(f"Last error:    {status.error}")
    return 0


async def _handle_ask(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.config.loader import load_config
    from src.main import (
        build_chat_service,
        build_embedding_gateway,
        build_llm_provider,
        build_vector_store,
    )

    config = load_config(settings=app_settings)
    chat_service = build_chat_service(
        app_settings,
        config,
        build_embedding_gateway(app_settings),
        build_vector_store(app_settings),
        build_llm_provider(app_settings),
    )
    turn = await chat_service.answer(args.question, args.id)
    print(turn.content)
    return 0


async def _handle_dead_letters(app_settings: Settings) -> int:
    from src.main import build_job_queue

    job_queue = build_job_queue(app_settings)
    try:
        jobs = await job_queue.dead_letters()
    finally:
        await job_queue.close()

    if not jobs:
        print("No dead-lettered jobs.")
        return 0
    print(f"{'COLLECTION':<24} {'ATTEMPTS':>8}  SOURCE")
    for job in jobs:
        print(f"{job.collection_id:<24} {job.attempts:>8}  {job.source_reference}")
    return 0


def _handle_token(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.providers.auth.hmac_token_verifier import HMACTokenVerifier

    if not app_settings.auth_secret:
        print("Error: AUTH_SECRET is not set", file=sys.stderr)
        return 1
    verifier = HMACTokenVerifier(app_settings.auth_secret, app_settings.auth_token_ttl_hours)
    print(verifier.issue(args.user))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.ingest",
        description="Enqueue documents, inspect ingestion jobs, and ask questions.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- enqueue --
    enqueue_parser = subparsers.add_parser("enqueue", help="Enqueue a file or URL for ingestion")
    source = enqueue_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Path to a .pdf, .txt or .md file")
    source.add_argument("--url", help="YouTube video or web page URL")
    enqueue_parser.add_argument("--id", required=True, help="Collection id")
    enqueue_parser.add_argument("--owner", default="cli", help="Owner user id (default: cli)")

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show a collection's job status")
    status_parser.add_argument("--id", required=True, help="Collection id")

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Ask a question about a collection")
    ask_parser.add_argument("--id", required=True, help="Collection id")
    ask_parser.add_argument("--question", required=True, help="Question text")

    # -- token --
    token_parser = subparsers.add_parser("token", help="Mint a bearer token")
    token_parser.add_argument("--user", required=True, help="User id to embed in the token")

    # -- dead-letters --
    subparsers.add_parser("dead-letters", help="List jobs that exhausted their retries")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()

    try:
        if args.command == "token":
            return _handle_token(args, app_settings)
        if args.command == "enqueue":
            return asyncio.run(_handle_enqueue(args, app_settings))
        if args.command == "status":
            return asyncio.run(_handle_status(args, app_settings))
        if args.command == "ask":
            return asyncio.run(_handle_ask(args, app_settings))
        if args.command == "dead-letters":
            return asyncio.run(_handle_dead_letters(app_settings))
    except DocChatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
