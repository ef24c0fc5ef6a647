"""Bootstrap module for the analysis orchestrator.

Central responsibilities:
- Load and validate settings from environment (.env supported by the Settings class)
- Configure structured logging (structlog + optional rotating file handler)
- Initialize the asynchronous Mongo (Motor) client, failing hard when unreachable
- Build the storage gateway and scoring client injected into the worker
- Expose Prometheus metric instruments (counters, histograms)

Design notes:
- No module-level context singleton: ``bootstrap()`` returns a fresh AppContext and
  callers pass its collaborators explicitly.
- Clients can be injected (tests use an in-memory Mongo and a mock HTTP transport).
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING
import logging
from logging.handlers import RotatingFileHandler
import sys
import time

import structlog
from motor.motor_asyncio import AsyncIOMotorClient
from prometheus_client import Counter, Histogram, start_http_server
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo.errors import PyMongoError

from .config_inspect import log_safe, mask_uri
from .errors import StoreUnavailableError
from .utils import retryable

if TYPE_CHECKING:  # pragma: no cover
    import httpx

    from .scoring import PostureScoringClient
    from .storage import MongoGateway

# ------------------------------------------------------------
# Settings
# ------------------------------------------------------------

class Settings(BaseSettings):
    """Application settings loaded from environment.

    Uses Pydantic BaseSettings to automatically read from env vars.
    Defaults are safe for local development against a local Mongo.
    """

    app_name: str = Field("analysis-orchestrator", alias="APP_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(None, alias="LOG_FILE")
    log_max_bytes: int = Field(2_000_000, alias="LOG_MAX_BYTES")  # ~2MB
    log_backup_count: int = Field(5, alias="LOG_BACKUP_COUNT")

    # Mongo (collections shared with the session service)
    mongo_uri: str = Field("mongodb://localhost:27017", alias="MONGO_URI")
    mongo_db: str = Field("fuji36", alias="MONGO_DB")
    mongo_collection_jobs: str = Field("fuji36_analysis_jobs", alias="MONGO_COLLECTION_JOBS")
    mongo_collection_sessions: str = Field("fuji36_sessions", alias="MONGO_COLLECTION_SESSIONS")
    mongo_collection_batches: str = Field("fuji36_landmark_batches", alias="MONGO_COLLECTION_BATCHES")
    mongo_collection_results: str = Field("fuji36_session_results", alias="MONGO_COLLECTION_RESULTS")
    mongo_connect_timeout_ms: int = Field(5000, alias="MONGO_CONNECT_TIMEOUT_MS")
    mongo_connect_attempts: int = Field(3, ge=1, alias="MONGO_CONNECT_ATTEMPTS")

    # Poll loop
    poll_interval_ms: int = Field(750, gt=0, alias="POLL_INTERVAL_MS")
    error_cooldown_ms: int = Field(1000, ge=0, alias="ERROR_COOLDOWN_MS")

    # Job processing
    max_frames_per_job: int = Field(6000, gt=0, alias="MAX_FRAMES_PER_JOB")
    default_sample_fps: int = Field(10, gt=0, alias="DEFAULT_SAMPLE_FPS")

    # Scoring service
    scoring_base_url: str = Field("http://localhost:7003", alias="SCORING_BASE_URL")
    scoring_timeout_seconds: float = Field(100.0, gt=0, alias="SCORING_TIMEOUT_SECONDS")
    scoring_smoothing_window: Optional[int] = Field(None, gt=0, alias="SCORING_SMOOTHING_WINDOW")
    scoring_thresholds: dict[str, float] = Field(default_factory=dict, alias="SCORING_THRESHOLDS")

    # Misc
    metrics_port: int = Field(0, ge=0, alias="METRICS_PORT")  # 0 = no exporter

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def error_cooldown_seconds(self) -> float:
        return self.error_cooldown_ms / 1000.0

    # Pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )


# ------------------------------------------------------------
# Logging configuration (structlog)
# ------------------------------------------------------------

_SENSITIVE_KEYS = ("password", "token", "secret", "authorization", "cookie")


def configure_logging(level: str = "INFO", settings: Settings | None = None) -> None:
    """Configure structured logging with structlog.

    Uses a standard logging handler + structlog processors for JSON output.
    A rotating file handler is added when ``settings.log_file`` is set.
    """
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    def redact_sensitive(logger, method_name, event_dict):  # noqa: D401
        """Mask credential-looking keys and credentials embedded in connection URIs."""

        def _scrub(key, value):
            if any(sk in str(key).lower() for sk in _SENSITIVE_KEYS):
                return "[REDACTED]"
            if isinstance(value, str) and "://" in value:
                return mask_uri(value)
            if isinstance(value, dict):
                return {k: _scrub(k, v) for k, v in value.items()}
            return value

        return {k: _scrub(k, v) for k, v in event_dict.items()}

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            timestamper,
            structlog.processors.add_log_level,
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(stream_handler)

    if settings and settings.log_file:
        try:
            log_path = Path(settings.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                settings.log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(logging.Formatter("%(message)s"))
            handlers.append(file_handler)
        except OSError as e:  # pragma: no cover
            print(f"Failed to set file handler: {e}", file=sys.stderr)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


# ------------------------------------------------------------
# Metrics instruments
# ------------------------------------------------------------
ANALYSIS_JOBS_TOTAL = Counter(
    "analysis_jobs_total", "Analysis jobs brought to a terminal status", labelnames=("status",)
)
ANALYSIS_JOB_DURATION_SECONDS = Histogram(
    "analysis_job_duration_seconds", "Duration of one analysis job in seconds"
)
ANALYSIS_FRAMES_TRUNCATED = Counter(
    "analysis_frames_truncated_total", "Jobs whose frame sequence exceeded the per-job maximum"
)
JOB_CLAIM_ATTEMPTS = Counter(
    "analysis_job_claim_attempts_total", "Claim attempts by outcome", labelnames=("result",)
)
SCORING_REQUESTS_TOTAL = Counter(
    "scoring_requests_total", "Scoring calls by outcome", labelnames=("outcome",)
)
SCORING_DURATION_SECONDS = Histogram(
    "scoring_duration_seconds", "Duration of scoring calls in seconds"
)
WORKER_LOOP_ERRORS = Counter(
    "worker_loop_errors_total", "Exceptions escaping the poll loop body"
)


# ------------------------------------------------------------
# Context dataclass
# ------------------------------------------------------------
@dataclass(slots=True)
class AppContext:
    settings: Settings
    logger: structlog.BoundLogger
    mongo_client: Any
    gateway: "MongoGateway"
    scoring: "PostureScoringClient"

    async def aclose(self) -> None:
        await self.scoring.aclose()
        self.mongo_client.close()


# ------------------------------------------------------------
# Initialization helpers
# ------------------------------------------------------------
async def init_mongo(settings: Settings, logger: structlog.BoundLogger) -> Any:
    """Create the Motor client and ping it.

    The ping is retried a bounded number of times; a store that stays unreachable
    is the one fatal startup condition.
    """
    client = AsyncIOMotorClient(
        settings.mongo_uri,
        serverSelectionTimeoutMS=settings.mongo_connect_timeout_ms,
        tz_aware=True,
    )

    @retryable(PyMongoError, attempts=settings.mongo_connect_attempts)
    async def _ping():
        await client.admin.command("ping")

    try:
        await _ping()
    except PyMongoError as exc:
        client.close()
        logger.error("mongo_connection_failed", uri=settings.mongo_uri, error=str(exc))
        raise StoreUnavailableError(f"MongoDB unreachable: {exc}") from exc
    logger.info("mongo_connected", uri=settings.mongo_uri)
    return client


async def bootstrap(
    settings: Settings | None = None,
    *,
    mongo_client: Any = None,
    http_client: Optional["httpx.AsyncClient"] = None,
) -> AppContext:
    """Create the application context.

    Args:
        settings: Pre-built settings (read from the environment when omitted).
        mongo_client: Already connected Motor-compatible client; skips the ping.
        http_client: Pre-configured httpx client for the scoring service.
    """
    settings = settings or Settings()  # Loads from env automatically
    configure_logging(settings.log_level, settings)
    logger = structlog.get_logger().bind(component="bootstrap", app=settings.app_name)
    log_safe(logger, settings.model_dump())

    t0 = time.perf_counter()
    if mongo_client is None:
        mongo_client = await init_mongo(settings, logger)

    # Lazy import to avoid circular imports (both modules use the metrics above)
    from .scoring import PostureScoringClient
    from .storage import MongoGateway

    gateway = MongoGateway.from_settings(mongo_client[settings.mongo_db], settings)
    await gateway.ensure_indexes()
    scoring = PostureScoringClient.from_settings(settings, http_client=http_client)
    elapsed = time.perf_counter() - t0

    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info("metrics_exporter_started", port=settings.metrics_port)

    logger.info(
        "bootstrap_complete",
        elapsed=f"{elapsed:.3f}s",
        database=settings.mongo_db,
        scoring_base_url=settings.scoring_base_url,
    )
    return AppContext(
        settings=settings,
        logger=logger.bind(subsystem="core"),
        mongo_client=mongo_client,
        gateway=gateway,
        scoring=scoring,
    )
