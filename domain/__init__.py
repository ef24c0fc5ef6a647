"""Records and wire contracts shared by the orchestrator components."""

from .contracts import ScoreRequest, ScoreResult, ScoringConfig, ScoringIssue, SmoothingConfig
from .models import (
    AnalysisJob,
    JobStatus,
    Landmark,
    LandmarkBatch,
    LandmarkFrame,
    Session,
    SessionResult,
    SessionStatus,
)

__all__ = [
    "AnalysisJob",
    "JobStatus",
    "Landmark",
    "LandmarkBatch",
    "LandmarkFrame",
    "ScoreRequest",
    "ScoreResult",
    "ScoringConfig",
    "ScoringIssue",
    "Session",
    "SessionResult",
    "SessionStatus",
    "SmoothingConfig",
]
