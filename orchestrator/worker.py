"""Analysis worker process.

Responsibilities:
- Claim Pending analysis jobs from Mongo, oldest first, with an atomic
  find-and-update (the only mutual exclusion between concurrent workers)
- Hand each claimed job to the JobProcessor and loop again immediately
- Wait ``POLL_INTERVAL_MS`` when nothing is claimable
- Log and cool down on unexpected loop errors instead of crashing
- Stop cooperatively on SIGINT / SIGTERM, never in the middle of a job

Known limitation: there is no lease on claimed jobs. A worker killed while
processing leaves its job in Processing; nothing reclaims it.

Usage:
    analysis-orchestrator
    analysis-orchestrator --burst
    analysis-orchestrator --verbose
"""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from typing import Optional, Sequence

import structlog

from .bootstrap import JOB_CLAIM_ATTEMPTS, WORKER_LOOP_ERRORS, AppContext, Settings, bootstrap
from .config_inspect import format_snapshot, safe_snapshot
from .errors import StoreUnavailableError
from .processor import JobProcessor
from .storage import MongoGateway


class PollLoop:
    """Claim / process loop with idle backoff and crash isolation."""

    def __init__(
        self,
        gateway: MongoGateway,
        processor: JobProcessor,
        *,
        poll_interval: float = 0.75,
        error_cooldown: float = 1.0,
        logger: Optional[structlog.BoundLogger] = None,
    ):
        self.gateway = gateway
        self.processor = processor
        self.poll_interval = poll_interval
        self.error_cooldown = error_cooldown
        self.logger = logger or structlog.get_logger(__name__)
        self.jobs_processed = 0

    @classmethod
    def from_context(cls, ctx: AppContext) -> "PollLoop":
        return cls(
            ctx.gateway,
            JobProcessor.from_context(ctx),
            poll_interval=ctx.settings.poll_interval_seconds,
            error_cooldown=ctx.settings.error_cooldown_seconds,
            logger=ctx.logger.bind(component="worker"),
        )

    async def run_once(self) -> bool:
        """Claim and process at most one job. Returns True when a job was claimed."""
        job = await self.gateway.claim_next_pending_job()
        if job is None:
            JOB_CLAIM_ATTEMPTS.labels(result="idle").inc()
            return False
        JOB_CLAIM_ATTEMPTS.labels(result="claimed").inc()
        self.logger.info("job_claimed", job_id=job.id, session_id=job.session_id)
        await self.processor.process(job)
        self.jobs_processed += 1
        return True

    async def run(self, stop: asyncio.Event, *, burst: bool = False) -> int:
        """Loop until ``stop`` is set (or, in burst mode, until the queue is empty).

        Returns the number of jobs processed by this call.
        """
        start_count = self.jobs_processed
        self.logger.info("worker_started", poll_interval=self.poll_interval, burst=burst)
        while not stop.is_set():
            try:
                claimed = await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                WORKER_LOOP_ERRORS.inc()
                self.logger.error("worker_loop_error", error=str(exc), exc_info=True)
                await self._wait(stop, self.error_cooldown)
                continue
            if claimed:
                continue
            if burst:
                break
            await self._wait(stop, self.poll_interval)
        processed = self.jobs_processed - start_count
        self.logger.info("worker_stopped", processed=processed)
        return processed

    async def _wait(self, stop: asyncio.Event, seconds: float) -> None:
        # Returns early when shutdown is requested.
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=seconds)


def install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):  # Windows event loops
            loop.add_signal_handler(sig, stop.set)


async def worker_loop(ctx: AppContext, stop: Optional[asyncio.Event] = None, *, burst: bool = False) -> int:
    stop = stop or asyncio.Event()
    return await PollLoop.from_context(ctx).run(stop, burst=burst)


async def run(burst: bool = False, settings: Optional[Settings] = None) -> int:
    """Bootstrap, run until signalled, close clients. Returns a process exit code."""
    try:
        ctx = await bootstrap(settings)
    except StoreUnavailableError as exc:
        structlog.get_logger(__name__).error("startup_failed", error=str(exc))
        return 1
    stop = asyncio.Event()
    install_signal_handlers(stop)
    try:
        await worker_loop(ctx, stop, burst=burst)
    finally:
        await ctx.aclose()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Analysis job orchestrator worker")
    parser.add_argument("--burst", action="store_true", help="Process all pending jobs and exit")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--print-config", action="store_true", help="Print effective settings and exit")
    args = parser.parse_args(argv)

    settings = Settings()
    if args.verbose:
        settings.log_level = "DEBUG"
    if args.print_config:
        print(format_snapshot(safe_snapshot(settings.model_dump())))
        return 0
    return asyncio.run(run(burst=args.burst, settings=settings))


# Entry point
if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
