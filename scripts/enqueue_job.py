"""Utility script to enqueue an analysis job for an existing session.

In production jobs are created by the session service when a recording is
finalized; this is for local runs against a dev database.

Usage:
  python scripts/enqueue_job.py --session-id 65f1c0ffee0000000000abcd
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Sequence

from orchestrator.bootstrap import Settings, configure_logging, init_mongo
from orchestrator.errors import StoreUnavailableError
from orchestrator.storage import MongoGateway

import structlog


async def main(argv: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(description="Enqueue analysis job")
    parser.add_argument("--session-id", required=True, help="Session to analyse")
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings.log_level, settings)
    logger = structlog.get_logger().bind(component="enqueue_job")
    try:
        client = await init_mongo(settings, logger)
    except StoreUnavailableError as exc:
        print(f"Mongo unavailable: {exc}", file=sys.stderr)
        return 1
    try:
        gateway = MongoGateway.from_settings(client[settings.mongo_db], settings)
        if await gateway.get_session(args.session_id) is None:
            print(f"Session {args.session_id} not found", file=sys.stderr)
            return 1
        job_id = await gateway.create_pending_job(args.session_id)
    finally:
        client.close()
    print("Job enqueued", {"jobId": job_id, "sessionId": args.session_id})
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(asyncio.run(main(sys.argv[1:])))
