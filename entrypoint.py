"""Launcher entrypoint for the analysis worker.

Behavior:
 - Settings are read from the environment / .env by orchestrator.bootstrap.Settings.
 - Runs the poll loop until SIGINT / SIGTERM, then closes Mongo and HTTP clients.
 - Exits with status 1 when Mongo cannot be reached at startup.
 - Test shortcut: set ENTRYPOINT_TEST_MODE=1 to return before any connection (used in unit tests).

Usage (source):
  python entrypoint.py [--burst] [--verbose]
"""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from orchestrator.worker import main as worker_main  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    # Test shortcut: bail out quickly (used by unit test)
    if os.environ.get("ENTRYPOINT_TEST_MODE") == "1":
        logging.getLogger(__name__).info("ENTRYPOINT_TEST_MODE active - skipping launch")
        return 0
    return worker_main(argv)


if __name__ == "__main__":
    try:
        sys.exit(main(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\n[entrypoint] Interrupted")
