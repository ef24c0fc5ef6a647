"""Processing of one claimed analysis job.

Steps:
1. load the session (missing session -> job failure)
2. concatenate the frames of every landmark batch in creation order, truncated
   to ``max_frames``
3. pick the sample rate of the first batch (or the default)
4. score through the scoring client
5. upsert the result, then complete job and session; on any exception mark job
   and session failed instead
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from domain.models import AnalysisJob, JobStatus, LandmarkBatch, LandmarkFrame, SessionResult, SessionStatus

from .bootstrap import ANALYSIS_FRAMES_TRUNCATED, ANALYSIS_JOB_DURATION_SECONDS, ANALYSIS_JOBS_TOTAL
from .errors import SessionNotFoundError
from .scoring import PostureScoringClient
from .storage import MongoGateway

DEFAULT_SAMPLE_FPS = 10
DEFAULT_MAX_FRAMES = 6000


@dataclass(slots=True)
class JobInput:
    frames: list[LandmarkFrame]
    sample_fps: int
    total_frames: int

    @property
    def truncated(self) -> bool:
        return self.total_frames > len(self.frames)


def concat_frames(batches: Iterable[LandmarkBatch], max_frames: int) -> tuple[list[LandmarkFrame], int]:
    """Concatenate batch frames in order, keeping at most the first ``max_frames``.

    Returns the kept frames and the total count before truncation.
    """
    frames: list[LandmarkFrame] = []
    for batch in batches:
        frames.extend(batch.frames)
    total = len(frames)
    if total > max_frames:
        frames = frames[:max_frames]
    return frames, total


def effective_sample_fps(batches: list[LandmarkBatch], default: int = DEFAULT_SAMPLE_FPS) -> int:
    # All batches of a session are assumed to share the rate of the first one.
    if batches:
        return max(1, batches[0].sample_fps)
    return default


def build_job_input(
    batches: list[LandmarkBatch],
    *,
    max_frames: int = DEFAULT_MAX_FRAMES,
    default_fps: int = DEFAULT_SAMPLE_FPS,
) -> JobInput:
    frames, total = concat_frames(batches, max_frames)
    return JobInput(frames=frames, sample_fps=effective_sample_fps(batches, default_fps), total_frames=total)


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class JobProcessor:
    def __init__(
        self,
        gateway: MongoGateway,
        scoring: PostureScoringClient,
        *,
        max_frames: int = DEFAULT_MAX_FRAMES,
        default_fps: int = DEFAULT_SAMPLE_FPS,
        logger: Optional[structlog.BoundLogger] = None,
    ):
        self.gateway = gateway
        self.scoring = scoring
        self.max_frames = max_frames
        self.default_fps = default_fps
        self.logger = logger or structlog.get_logger(__name__)

    @classmethod
    def from_context(cls, ctx) -> "JobProcessor":
        return cls(
            ctx.gateway,
            ctx.scoring,
            max_frames=ctx.settings.max_frames_per_job,
            default_fps=ctx.settings.default_sample_fps,
            logger=ctx.logger.bind(component="processor"),
        )

    async def process(self, job: AnalysisJob) -> None:
        """Run one claimed job to a terminal state. Never raises."""
        log = self.logger.bind(job_id=job.id, session_id=job.session_id)
        log.info("job_processing")
        with ANALYSIS_JOB_DURATION_SECONDS.time():
            try:
                await self._run(job, log)
            except Exception as exc:
                log.error("job_failed", error=_error_text(exc), exc_info=True)
                await self._fail(job, _error_text(exc), log)
                ANALYSIS_JOBS_TOTAL.labels(status="failed").inc()
            else:
                ANALYSIS_JOBS_TOTAL.labels(status="completed").inc()

    async def _run(self, job: AnalysisJob, log) -> None:
        session = await self.gateway.get_session(job.session_id)
        if session is None:
            raise SessionNotFoundError(job.session_id)

        batches = await self.gateway.list_batches(job.session_id)
        job_input = build_job_input(batches, max_frames=self.max_frames, default_fps=self.default_fps)
        if job_input.truncated:
            ANALYSIS_FRAMES_TRUNCATED.inc()
            log.warning("frames_truncated", total=job_input.total_frames, kept=len(job_input.frames))

        score = await self.scoring.score(session.id, session.exercise_type, job_input.sample_fps, job_input.frames)

        result = SessionResult(
            session_id=session.id,
            user_id=session.user_id,
            exercise_type=session.exercise_type,
            result=score,
        )
        await self.gateway.upsert_result(session.id, result)
        await self.gateway.mark_job_completed(job.id)
        job.status = JobStatus.COMPLETED
        await self.gateway.mark_session_terminal(session.id, SessionStatus.COMPLETED)
        log.info(
            "job_completed",
            batches=len(batches),
            frames=len(job_input.frames),
            sample_fps=job_input.sample_fps,
            reps=score.reps,
            engine=score.engine,
        )

    async def _fail(self, job: AnalysisJob, error: str, log) -> None:
        if job.status is JobStatus.COMPLETED:
            # Result and job are already recorded; only the session write was lost.
            log.error("session_completion_not_recorded", error=error)
            return
        # A failing store here leaves the job in Processing, like a worker crash would.
        try:
            await self.gateway.mark_job_failed(job.id, error)
            await self.gateway.mark_session_terminal(job.session_id, SessionStatus.FAILED)
        except Exception as exc:
            log.error("job_failure_not_recorded", error=_error_text(exc), exc_info=True)
