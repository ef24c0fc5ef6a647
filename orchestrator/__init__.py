"""Analysis job orchestrator.

Turns the landmark batches recorded during an exercise session into a scored
result: claims analysis jobs from Mongo, calls the posture scoring service and
records job, session and result outcomes.

MODULES:
    - bootstrap: settings, logging, metrics and application context
    - storage: Mongo gateway (atomic job claim, typed accessors)
    - scoring: posture scoring client with fallback result
    - processor: processing of one claimed job
    - worker: poll loop and process entry point

USAGE:
    from orchestrator import PollLoop
    from orchestrator.bootstrap import bootstrap
    ctx = await bootstrap()
    await PollLoop.from_context(ctx).run(stop_event)
"""

from .bootstrap import AppContext, Settings, configure_logging  # noqa: F401
from .errors import (  # noqa: F401
    OrchestratorError,
    ScoringUnavailableError,
    SessionNotFoundError,
    StoreUnavailableError,
)
from .processor import JobProcessor  # noqa: F401
from .scoring import PostureScoringClient, Scored, Unavailable  # noqa: F401
from .storage import MongoGateway  # noqa: F401
from .worker import PollLoop, worker_loop  # noqa: F401

__all__ = [
    "AppContext",
    "Settings",
    "configure_logging",
    "OrchestratorError",
    "ScoringUnavailableError",
    "SessionNotFoundError",
    "StoreUnavailableError",
    "JobProcessor",
    "PostureScoringClient",
    "Scored",
    "Unavailable",
    "MongoGateway",
    "PollLoop",
    "worker_loop",
]
