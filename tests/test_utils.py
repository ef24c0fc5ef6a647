from __future__ import annotations

import warnings

import pytest
from bson import ObjectId

from orchestrator import utils


def test_utcnow_is_timezone_aware():
    assert utils.utcnow().tzinfo is not None


def test_to_object_id_parses_hex_ids():
    oid = ObjectId()
    assert utils.to_object_id(str(oid)) == oid
    assert utils.to_object_id(oid) is oid


def test_to_object_id_passes_through_other_ids():
    assert utils.to_object_id("session-42") == "session-42"
    assert utils.to_object_id(None) is None


@pytest.mark.asyncio
async def test_retryable_retries_then_succeeds():
    calls = []

    @utils.retryable(ConnectionError, attempts=3)
    async def flaky():
        calls.append(1)
        if len(calls) < 2:
            raise ConnectionError("reset")
        return "ok"

    assert await flaky() == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_retryable_reraises_after_last_attempt():
    calls = []

    @utils.retryable(ConnectionError, attempts=1)
    async def always_down():
        calls.append(1)
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        await always_down()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retryable_ignores_other_exceptions():
    calls = []

    @utils.retryable(ConnectionError, attempts=3)
    async def broken():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await broken()
    assert len(calls) == 1


def test_retryable_builds_without_deprecation_warnings():
    async def ping():
        return True

    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        utils.retryable(ConnectionError, attempts=2)(ping)
