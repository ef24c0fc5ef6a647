"""Client for the external posture scoring service.

The scoring engine is best effort: any failure (transport error, timeout,
non-2xx status, empty or malformed body) yields a deterministic fallback result
instead of an exception, so a session always ends up with *some* result.

Internally a call produces a ``ScoreOutcome`` (``Scored`` or ``Unavailable``);
``score()`` collapses it to a single ``ScoreResult``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

import httpx
import structlog
from pydantic import ValidationError

from domain.contracts import ScoreRequest, ScoreResult, ScoringConfig, SmoothingConfig
from domain.models import LandmarkFrame

from .bootstrap import SCORING_DURATION_SECONDS, SCORING_REQUESTS_TOTAL
from .errors import ScoringUnavailableError

logger = structlog.get_logger(__name__)

SCORE_PATH = "/score"


@dataclass(frozen=True)
class Scored:
    result: ScoreResult


@dataclass(frozen=True)
class Unavailable:
    reason: str


ScoreOutcome = Union[Scored, Unavailable]


class PostureScoringClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 100.0,
        config: Optional[ScoringConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings, *, http_client: Optional[httpx.AsyncClient] = None) -> "PostureScoringClient":
        config = None
        if settings.scoring_smoothing_window or settings.scoring_thresholds:
            config = ScoringConfig(
                smoothing=(
                    SmoothingConfig(window=settings.scoring_smoothing_window)
                    if settings.scoring_smoothing_window
                    else None
                ),
                thresholds=dict(settings.scoring_thresholds) or None,
            )
        return cls(
            settings.scoring_base_url,
            timeout=settings.scoring_timeout_seconds,
            config=config,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def score(
        self,
        session_id: str,
        exercise_type: str,
        sample_fps: int,
        frames: Sequence[Union[LandmarkFrame, dict[str, Any]]],
    ) -> ScoreResult:
        """Score a session; never raises for scoring-service failures."""
        request = ScoreRequest(
            session_id=session_id,
            exercise_type=exercise_type,
            sample_fps=sample_fps,
            frames=[f.to_wire() if isinstance(f, LandmarkFrame) else dict(f) for f in frames],
            config=self.config,
        )
        outcome = await self.request_score(request)
        if isinstance(outcome, Scored):
            SCORING_REQUESTS_TOTAL.labels(outcome="scored").inc()
            return outcome.result
        SCORING_REQUESTS_TOTAL.labels(outcome="fallback").inc()
        logger.warning(
            "scoring_unavailable",
            session_id=session_id,
            reason=outcome.reason,
            frames=len(request.frames),
            sample_fps=sample_fps,
        )
        return ScoreResult.fallback(len(request.frames), sample_fps)

    async def request_score(self, request: ScoreRequest) -> ScoreOutcome:
        try:
            with SCORING_DURATION_SECONDS.time():
                return Scored(await self._post(request))
        except ScoringUnavailableError as exc:
            return Unavailable(str(exc))

    async def _post(self, request: ScoreRequest) -> ScoreResult:
        try:
            resp = await self._http.post(f"{self.base_url}{SCORE_PATH}", json=request.to_wire())
        except httpx.HTTPError as exc:
            raise ScoringUnavailableError(f"transport error: {type(exc).__name__}: {exc}") from exc
        if not resp.is_success:
            raise ScoringUnavailableError(f"scoring service status {resp.status_code}")
        if not resp.content.strip():
            raise ScoringUnavailableError("empty scoring response")
        try:
            return ScoreResult.model_validate_json(resp.content)
        except ValidationError as exc:
            raise ScoringUnavailableError(f"malformed scoring response: {exc.error_count()} error(s)") from exc
