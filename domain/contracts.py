"""Wire contract of the posture scoring service.

Request:  {sessionId, exerciseType, sampleFps, frames[], config?}
Response: {reps, compensationScore, issues[], confidence, engine, engineVersion}
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Confidence at or above which a result is considered produced by a real engine.
REAL_CONFIDENCE_THRESHOLD = 0.5

FALLBACK_ENGINE = "fallback"
FALLBACK_ENGINE_VERSION = "0.1"
FALLBACK_COMPENSATION_SCORE = 10
FALLBACK_CONFIDENCE = 0.3


def camelize_keys(data: Any) -> Any:
    """Lower the first letter of each top-level key (``FrameId`` -> ``frameId``).

    Documents written by the session service use PascalCase member names.
    """
    if isinstance(data, dict):
        return {
            k[:1].lower() + k[1:] if isinstance(k, str) and k[:1].isupper() else k: v for k, v in data.items()
        }
    return data


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class _Reply(_Wire):
    @model_validator(mode="before")
    @classmethod
    def accept_pascal_case(cls, data: Any) -> Any:
        return camelize_keys(data)


class ScoringIssue(_Reply):
    type: str
    severity: str
    count: int = 1


class ScoreResult(_Reply):
    reps: int
    compensation_score: int
    issues: list[ScoringIssue] = Field(default_factory=list)
    confidence: float
    engine: str
    engine_version: str

    @property
    def is_fallback(self) -> bool:
        return self.engine == FALLBACK_ENGINE

    @classmethod
    def fallback(cls, frame_count: int, sample_fps: int) -> "ScoreResult":
        """Deterministic placeholder used when the scoring engine is unavailable."""
        reps = max(0, frame_count // max(1, sample_fps))
        return cls(
            reps=reps,
            compensation_score=FALLBACK_COMPENSATION_SCORE,
            issues=[],
            confidence=FALLBACK_CONFIDENCE,
            engine=FALLBACK_ENGINE,
            engine_version=FALLBACK_ENGINE_VERSION,
        )


class SmoothingConfig(_Wire):
    window: int = 7


class ScoringConfig(_Wire):
    smoothing: Optional[SmoothingConfig] = None
    thresholds: Optional[dict[str, float]] = None


class ScoreRequest(_Wire):
    session_id: str
    exercise_type: str
    sample_fps: int
    frames: list[dict[str, Any]]
    config: Optional[ScoringConfig] = None
