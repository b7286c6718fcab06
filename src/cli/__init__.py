# =============================================================================
# src/cli/__init__.py - CLI Module Overview
# =============================================================================
#
#   1. WORKER (worker.py)
#      Long-running consumer of the ingestion queue: extract -> embed ->
#      store for every job, with bounded retries and dead-lettering.
#
#   2. OPERATOR CLI (ingest.py)
#      Enqueue files and URLs, inspect job status and dead letters, ask
#      questions, and mint bearer tokens without going through HTTP.
#
# Both use argparse and build their collaborators with the same
# ``build_*`` helpers as the API (src/main.py); heavy imports are
# deferred inside functions so `--help` stays fast.
# =============================================================================

"""Command-line tools for docchat.

- ``python -m src.cli.worker`` - run the ingestion worker.
- ``python -m src.cli.ingest`` - enqueue jobs, check status, ask questions.
"""
