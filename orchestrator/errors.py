"""Exception types raised inside the orchestrator."""
from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for orchestrator failures."""


class SessionNotFoundError(OrchestratorError):
    """Raised when a claimed job references a session that does not exist."""

    def __init__(self, session_id: str):
        super().__init__("Session not found")
        self.session_id = session_id


class ScoringUnavailableError(OrchestratorError):
    """Raised by the scoring transport; converted to a fallback result by the client."""


class StoreUnavailableError(OrchestratorError):
    """Raised at startup when MongoDB cannot be reached. Fatal."""
