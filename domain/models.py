from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .contracts import ScoreResult, camelize_keys


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(IntEnum):
    """Analysis job lifecycle. Stored as integers, shared with the session service."""

    PENDING = 0
    PROCESSING = 1
    COMPLETED = 2
    FAILED = 3

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def __str__(self) -> str:
        return self.name.lower()


class SessionStatus(IntEnum):
    CREATED = 0
    RECORDING = 1
    INGESTING = 2
    PROCESSING = 3
    COMPLETED = 4
    FAILED = 5

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)

    def __str__(self) -> str:
        return self.name.lower()


class _Document(BaseModel):
    """Base for records persisted as camelCase Mongo documents.

    ``_id`` is exposed as ``id`` (string form of the ObjectId).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_storage(cls, data: dict[str, Any]):
        payload = dict(data)
        if "_id" in payload:
            payload["_id"] = str(payload["_id"])
        return cls.model_validate(payload)


class AnalysisJob(_Document):
    id: str = Field(..., alias="_id")
    session_id: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    error: Optional[str] = None


class Session(_Document):
    id: str = Field(..., alias="_id")
    user_id: str
    exercise_type: str
    status: SessionStatus = SessionStatus.CREATED
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class _FrameRecord(BaseModel):
    """Frames are written by the session service with PascalCase keys
    (``FrameId``, ``LeftHand``, ``X``); capture clients use camelCase."""

    @model_validator(mode="before")
    @classmethod
    def accept_pascal_case(cls, data: Any) -> Any:
        return camelize_keys(data)


class Landmark(_FrameRecord):
    x: float
    y: float
    z: Optional[float] = None
    visibility: Optional[float] = None


class LandmarkFrame(_FrameRecord):
    """One timestamped sample of pose / hand keypoints.

    Unknown keys are kept so metadata written by newer capture clients survives
    the round trip to the scoring service.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    frame_id: int
    ts_ms: int
    pose: Optional[list[Landmark]] = None
    left_hand: Optional[list[Landmark]] = None
    right_hand: Optional[list[Landmark]] = None
    meta: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class LandmarkBatch(_Document):
    id: str = Field(..., alias="_id")
    session_id: str
    batch_id: Optional[str] = None
    sample_fps: int = 0
    frames: list[LandmarkFrame] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class SessionResult(_Document):
    """Single current scoring outcome of a session (one per session)."""

    id: Optional[str] = Field(None, alias="_id")
    session_id: str
    user_id: str
    exercise_type: str
    result: ScoreResult
    created_at: datetime = Field(default_factory=_utcnow)

    def to_storage_dict(self) -> dict[str, Any]:
        # _id is left out so a replace keeps the identity of an existing result
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "exerciseType": self.exercise_type,
            "result": self.result.to_wire(),
            "createdAt": self.created_at,
        }
