# =============================================================================
# src/cli/__main__.py - Package Entry Point
# =============================================================================
#
# `python -m src.cli` delegates to the operator CLI (ingest.py).  The
# worker runs as its own module:
#     python -m src.cli.worker
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

import sys

from src.cli.ingest import main

sys.exit(main())
