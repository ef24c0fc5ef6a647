"""Small stateless helpers shared by the orchestrator modules."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from bson import ObjectId
from bson.errors import InvalidId
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Any:
    """Return ``value`` as an ObjectId when it parses as one, else unchanged.

    Ids that are not ObjectIds are queried verbatim so they simply match nothing.
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return value


def retryable(*exc_types: type[BaseException], attempts: int = 4):
    """Decorator factory for retry logic with exponential backoff + jitter.

    Example:
        @retryable(ConnectionFailure, attempts=3)
        async def ping(): ...
    """
    if not exc_types:
        exc_types = (Exception,)  # type: ignore

    def _decorator(fn: Callable[..., Awaitable[Any]]):
        return retry(
            reraise=True,
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential_jitter(multiplier=0.2, max=5),
            retry=retry_if_exception_type(exc_types),
        )(fn)

    return _decorator
