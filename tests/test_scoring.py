import json

import httpx
import pytest

from domain.contracts import FALLBACK_ENGINE, ScoreRequest, ScoringConfig, SmoothingConfig
from domain.models import LandmarkFrame
from orchestrator.scoring import PostureScoringClient, Scored, Unavailable

from tests.conftest import make_frames

ENGINE_BODY = {
    "reps": 5,
    "compensationScore": 64,
    "issues": [{"type": "trunk_lean", "severity": "moderate", "count": 3}],
    "confidence": 0.87,
    "engine": "posture-engine",
    "engineVersion": "1.4.2",
}


def _client(handler, **kwargs) -> PostureScoringClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PostureScoringClient("http://scoring.test/", http_client=http, **kwargs)


@pytest.mark.asyncio
async def test_score_success_sends_camel_case_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=ENGINE_BODY)

    client = _client(handler)
    frames = [LandmarkFrame.model_validate(f) for f in make_frames(3)]

    result = await client.score("s-1", "shoulder_flexion", 15, frames)

    assert result.engine == "posture-engine"
    assert result.reps == 5
    assert result.issues[0].type == "trunk_lean"
    assert not result.is_fallback
    assert seen["url"] == "http://scoring.test/score"
    body = seen["body"]
    assert body["sessionId"] == "s-1"
    assert body["exerciseType"] == "shoulder_flexion"
    assert body["sampleFps"] == 15
    assert [f["frameId"] for f in body["frames"]] == [0, 1, 2]
    assert body["frames"][0]["rightHand"][0]["x"] == 0.2
    assert body["frames"][0]["meta"] == {"handedness": "Right"}
    assert "config" not in body


def _refused(request):
    raise httpx.ConnectError("refused", request=request)


def _timed_out(request):
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        _refused,
        _timed_out,
        lambda req: httpx.Response(503, json={"detail": "warming up"}),
        lambda req: httpx.Response(200, content=b""),
        lambda req: httpx.Response(200, json={"reps": "many"}),
        lambda req: httpx.Response(200, content=b"<html>oops</html>"),
    ],
    ids=["connect-error", "timeout", "status-503", "empty-body", "missing-fields", "not-json"],
)
async def test_score_failures_yield_fallback(handler):
    client = _client(handler)

    result = await client.score("s-1", "shoulder_flexion", 10, make_frames(40))

    assert result.is_fallback
    assert result.engine == FALLBACK_ENGINE
    assert result.engine_version == "0.1"
    assert result.reps == 4
    assert result.compensation_score == 10
    assert result.confidence == pytest.approx(0.3)
    assert result.issues == []


@pytest.mark.asyncio
async def test_fallback_guards_against_zero_sample_rate(unreachable_scoring):
    result = await unreachable_scoring.score("s-1", "squat", 0, make_frames(7))
    assert result.reps == 7


@pytest.mark.asyncio
async def test_fallback_with_no_frames(unreachable_scoring):
    result = await unreachable_scoring.score("s-1", "squat", 10, [])
    assert result.reps == 0
    assert result.is_fallback


@pytest.mark.asyncio
async def test_request_score_reports_reason(unreachable_scoring):
    request = ScoreRequest(session_id="s-1", exercise_type="squat", sample_fps=10, frames=[])

    outcome = await unreachable_scoring.request_score(request)

    assert isinstance(outcome, Unavailable)
    assert "ConnectError" in outcome.reason


@pytest.mark.asyncio
async def test_request_score_returns_scored():
    client = _client(lambda req: httpx.Response(200, json=ENGINE_BODY))
    request = ScoreRequest(session_id="s-1", exercise_type="squat", sample_fps=10, frames=[])

    outcome = await client.request_score(request)

    assert isinstance(outcome, Scored)
    assert outcome.result.compensation_score == 64


@pytest.mark.asyncio
async def test_configured_tuning_is_forwarded():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=ENGINE_BODY)

    config = ScoringConfig(smoothing=SmoothingConfig(window=9), thresholds={"trunkLeanDeg": 12.5})
    client = _client(handler, config=config)

    await client.score("s-1", "squat", 10, make_frames(1))

    assert seen["body"]["config"] == {"smoothing": {"window": 9}, "thresholds": {"trunkLeanDeg": 12.5}}


def test_from_settings_builds_config(settings):
    settings.scoring_smoothing_window = 5
    settings.scoring_thresholds = {"elbowFlexDeg": 20.0}

    client = PostureScoringClient.from_settings(settings)

    assert client.base_url == "http://scoring.test"
    assert client.config.smoothing.window == 5
    assert client.config.thresholds == {"elbowFlexDeg": 20.0}


def test_from_settings_without_tuning(settings):
    client = PostureScoringClient.from_settings(settings)
    assert client.config is None


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open(unreachable_http):
    client = PostureScoringClient("http://scoring.test", http_client=unreachable_http)
    await client.aclose()
    assert not unreachable_http.is_closed
