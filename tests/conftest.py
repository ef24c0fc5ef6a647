import os
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from orchestrator.bootstrap import Settings
from orchestrator.scoring import PostureScoringClient
from orchestrator.storage import MongoGateway

# Keep tests away from a developer's real database / scoring service
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("SCORING_BASE_URL", "http://scoring.test")

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_frames(count: int, start: int = 0) -> list[dict]:
    return [
        {
            "frameId": start + i,
            "tsMs": (start + i) * 100,
            "pose": [{"x": 0.5, "y": 0.4, "z": -0.1, "visibility": 0.9}],
            "leftHand": None,
            "rightHand": [{"x": 0.2, "y": 0.3}],
            "meta": {"handedness": "Right"},
        }
        for i in range(count)
    ]


@pytest.fixture
def settings():
    return Settings(
        poll_interval_ms=20,
        error_cooldown_ms=10,
        max_frames_per_job=6000,
        scoring_base_url="http://scoring.test",
    )


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient(tz_aware=True)


@pytest.fixture
def db(mongo_client, settings):
    return mongo_client[settings.mongo_db]


@pytest.fixture
def gateway(db, settings):
    return MongoGateway.from_settings(db, settings)


@pytest.fixture
def unreachable_http():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def unreachable_scoring(unreachable_http):
    return PostureScoringClient("http://scoring.test", http_client=unreachable_http)


class Seeder:
    """Writes documents the way the session service does."""

    def __init__(self, gateway: MongoGateway):
        self.gateway = gateway

    async def session(self, user_id="user-1", exercise_type="shoulder_flexion", status=3) -> str:
        oid = ObjectId()
        await self.gateway.sessions.insert_one(
            {
                "_id": oid,
                "userId": user_id,
                "exerciseType": exercise_type,
                "status": status,
                "createdAt": BASE_TIME,
                "updatedAt": BASE_TIME,
            }
        )
        return str(oid)

    async def batch(self, session_id: str, frames: list[dict], sample_fps: int = 10, offset_s: int = 0) -> str:
        oid = ObjectId()
        await self.gateway.batches.insert_one(
            {
                "_id": oid,
                "sessionId": session_id,
                "batchId": f"b-{offset_s}",
                "sampleFps": sample_fps,
                "frames": frames,
                "createdAt": BASE_TIME + timedelta(seconds=offset_s),
            }
        )
        return str(oid)

    async def job(self, session_id: str, status: int = 0, offset_s: int = 0, error: str | None = None) -> str:
        oid = ObjectId()
        doc = {
            "_id": oid,
            "sessionId": session_id,
            "status": status,
            "createdAt": BASE_TIME + timedelta(seconds=offset_s),
            "updatedAt": BASE_TIME + timedelta(seconds=offset_s),
        }
        if error is not None:
            doc["error"] = error
        await self.gateway.jobs.insert_one(doc)
        return str(oid)


@pytest.fixture
def seed(gateway):
    return Seeder(gateway)
