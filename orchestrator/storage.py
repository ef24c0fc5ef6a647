"""Storage gateway over the Mongo collections used by the orchestrator.

Every method is a single document-level atomic call. Consistency across job,
session and result is obtained by the order in which the processor issues
these writes, not by a multi-document transaction.
"""
from __future__ import annotations

from typing import Any, Optional

import structlog
from pymongo import ASCENDING, ReturnDocument

from domain.models import AnalysisJob, JobStatus, LandmarkBatch, Session, SessionResult, SessionStatus

from .utils import to_object_id, utcnow

logger = structlog.get_logger(__name__)

_TERMINAL_SESSION_STATUSES = (SessionStatus.COMPLETED, SessionStatus.FAILED)


class MongoGateway:
    """Typed accessors to jobs, sessions, landmark batches and results."""

    def __init__(self, jobs, sessions, batches, results):
        self.jobs = jobs
        self.sessions = sessions
        self.batches = batches
        self.results = results

    @classmethod
    def from_settings(cls, db, settings) -> "MongoGateway":
        return cls(
            jobs=db[settings.mongo_collection_jobs],
            sessions=db[settings.mongo_collection_sessions],
            batches=db[settings.mongo_collection_batches],
            results=db[settings.mongo_collection_results],
        )

    async def ensure_indexes(self) -> None:
        await self.jobs.create_index([("status", ASCENDING), ("createdAt", ASCENDING)])
        await self.batches.create_index([("sessionId", ASCENDING), ("createdAt", ASCENDING)])
        await self.results.create_index([("sessionId", ASCENDING)], unique=True)

    # ------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------
    async def claim_next_pending_job(self) -> Optional[AnalysisJob]:
        """Atomically move the oldest Pending job to Processing and return it.

        Two pollers racing for the same document cannot both receive it: the
        loser's filter no longer matches and it gets ``None``.
        """
        doc = await self.jobs.find_one_and_update(
            {"status": int(JobStatus.PENDING)},
            {"$set": {"status": int(JobStatus.PROCESSING), "updatedAt": utcnow()}},
            sort=[("createdAt", ASCENDING)],
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        return AnalysisJob.from_storage(doc)

    async def mark_job_completed(self, job_id: str) -> None:
        await self.jobs.update_one(
            {"_id": to_object_id(job_id)},
            {
                "$set": {"status": int(JobStatus.COMPLETED), "updatedAt": utcnow()},
                "$unset": {"error": ""},
            },
        )

    async def mark_job_failed(self, job_id: str, error_message: str) -> None:
        await self.jobs.update_one(
            {"_id": to_object_id(job_id)},
            {"$set": {"status": int(JobStatus.FAILED), "error": error_message, "updatedAt": utcnow()}},
        )

    async def get_job(self, job_id: str) -> Optional[AnalysisJob]:
        doc = await self.jobs.find_one({"_id": to_object_id(job_id)})
        return AnalysisJob.from_storage(doc) if doc else None

    async def create_pending_job(self, session_id: str) -> str:
        """Insert a Pending job (normally done by the session service on finalize)."""
        now = utcnow()
        res = await self.jobs.insert_one(
            {"sessionId": session_id, "status": int(JobStatus.PENDING), "createdAt": now, "updatedAt": now}
        )
        return str(res.inserted_id)

    # ------------------------------------------------------------
    # Sessions & batches
    # ------------------------------------------------------------
    async def get_session(self, session_id: str) -> Optional[Session]:
        doc = await self.sessions.find_one({"_id": to_object_id(session_id)})
        return Session.from_storage(doc) if doc else None

    async def mark_session_terminal(self, session_id: str, status: SessionStatus) -> None:
        if status not in _TERMINAL_SESSION_STATUSES:
            raise ValueError(f"session status {status!s} is not terminal")
        await self.sessions.update_one(
            {"_id": to_object_id(session_id)},
            {"$set": {"status": int(status), "updatedAt": utcnow()}},
        )

    async def list_batches(self, session_id: str) -> list[LandmarkBatch]:
        cursor = self.batches.find({"sessionId": session_id}).sort("createdAt", ASCENDING)
        return [LandmarkBatch.from_storage(doc) async for doc in cursor]

    # ------------------------------------------------------------
    # Results
    # ------------------------------------------------------------
    async def upsert_result(self, session_id: str, result: SessionResult) -> None:
        doc: dict[str, Any] = result.to_storage_dict()
        doc["sessionId"] = session_id
        await self.results.replace_one({"sessionId": session_id}, doc, upsert=True)
        logger.debug("result_upserted", session_id=session_id, engine=result.result.engine)

    async def get_result(self, session_id: str) -> Optional[SessionResult]:
        doc = await self.results.find_one({"sessionId": session_id})
        return SessionResult.from_storage(doc) if doc else None
