"""Tests for the FastAPI generation API.

WHY: Validates the HTTP boundary: input validation before any model call,
the error-kind to status mapping, the outer route deadline, rate limiting,
ZIP downloads and the health check.

HOW: The lifespan is not entered, so each test puts its own service on
app.state: a GenerationService over the scripted model client for happy
paths, or a small fake whose methods raise or hang for failure paths.

RULES:
- All tests use the FastAPI TestClient (synchronous)
- The upstream model is never called (scripted client or fakes)
- The rate limiter and app.state.service are reset around every test
"""

from __future__ import annotations

import asyncio
import io
import json
import zipfile

import pytest
from fastapi.testclient import TestClient

from ugc_script_splitter import config
from ugc_script_splitter.pipeline.errors import (
    FatalUpstreamError,
    MalformedOutputError,
    UpstreamTimeoutError,
)
from ugc_script_splitter.server.app import app, build_segments_zip, rate_limiter, status_for_exception
from ugc_script_splitter.server.guard import ROUTE_TIMEOUT_BODY

VOICE = {"pitchRange": "170 Hz", "speakingRate": "150 wpm", "toneQualities": "warm"}


class FailingService:
    """Stand-in service whose every pipeline raises the given exception."""

    def __init__(self, exc):
        self.exc = exc

    async def run(self, params):
        raise self.exc

    async def generate_continuation(self, params, voice_profile, previous_segment=None):
        raise self.exc


class HangingService:
    """Stand-in service whose pipeline outlives any short route deadline."""

    async def run(self, params):
        await asyncio.sleep(0.5)
        raise AssertionError("deadline should have answered first")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_app_state():
    """Clear rate-limit windows and the shared service before each test."""
    rate_limiter.reset()
    app.state.service = None
    yield
    rate_limiter.reset()
    app.state.service = None


@pytest.fixture
def client(service):
    """TestClient with a GenerationService over the scripted model client."""
    app.state.service = service
    return TestClient(app)


@pytest.fixture
def bare_client():
    """TestClient with whatever service the test puts on app.state."""
    return TestClient(app)


@pytest.fixture
def long_script(script_of):
    return script_of(2)


# ---------------------------------------------------------------------------
# POST /api/generate
# ---------------------------------------------------------------------------


class TestGenerate:
    """Tests for POST /api/generate."""

    def test_success_body(self, client, model_client, long_script):
        resp = client.post("/api/generate", json={
            "script": long_script, "gender": "female", "ageRange": "25-34", "room": "kitchen",
        })
        assert resp.status_code == 200

        body = resp.json()
        assert body["success"] is True
        assert len(body["segments"]) == 2
        assert body["voiceProfile"] is None
        metadata = body["metadata"]
        assert metadata["totalSegments"] == 2
        assert metadata["estimatedDurationSeconds"] == 16
        assert metadata["mode"] == "standard"
        assert metadata["characterId"].startswith("human_female_25-34_")
        assert "Current Location: kitchen" in model_client.requests[1].user_content

    def test_short_script_is_rejected_before_any_call(self, client, model_client):
        resp = client.post("/api/generate", json={"script": "   too short   "})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Script must be at least 50 characters long"}
        assert model_client.requests == []

    def test_missing_script_is_400(self, client):
        resp = client.post("/api/generate", json={})
        assert resp.status_code == 400

    def test_max_segments(self, client, model_client, script_of):
        resp = client.post("/api/generate", json={"script": script_of(10), "maxSegments": 2})
        assert resp.status_code == 200
        assert resp.json()["metadata"]["totalSegments"] == 2
        assert len(model_client.requests) == 3

    def test_invalid_setting_mode_is_422(self, client, long_script):
        resp = client.post("/api/generate", json={"script": long_script, "settingMode": "castle"})
        assert resp.status_code == 422

    def test_continuation_mode_returns_voice_profile(self, client, script_of, voice_payload):
        resp = client.post("/api/generate", json={"script": script_of(2), "continuationMode": True})
        assert resp.status_code == 200
        body = resp.json()
        assert body["metadata"]["mode"] == "voice-profile"
        assert body["voiceProfile"]["pitchRange"] == voice_payload["pitchRange"]

    def test_no_service_is_503(self, bare_client, long_script):
        resp = bare_client.post("/api/generate", json={"script": long_script})
        assert resp.status_code == 503
        assert "OPENAI_API_KEY" in resp.json()["error"]


class TestGeneratePlus:
    """Tests for POST /api/generate-plus."""

    def test_defaults_to_enhanced_template(self, client, model_client, long_script):
        resp = client.post("/api/generate-plus", json={"script": long_script})
        assert resp.status_code == 200
        assert "Enhanced Continuity Guidelines" in model_client.requests[0].instructions


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    """Pipeline failures map to status codes by error kind."""

    @pytest.mark.parametrize("exc,status", [
        (UpstreamTimeoutError("openai_segment_1"), 504),
        (MalformedOutputError(label="openai_segment_2"), 502),
        (FatalUpstreamError("invalid api key", status_code=401), 500),
        (RuntimeError("unexpected"), 500),
    ])
    def test_status_by_kind(self, bare_client, long_script, exc, status):
        app.state.service = FailingService(exc)
        resp = bare_client.post("/api/generate", json={"script": long_script})
        assert resp.status_code == status
        assert resp.json()["error"] == "Failed to generate segments"

    def test_development_exposes_message(self, bare_client, long_script, monkeypatch):
        monkeypatch.setattr(config, "IS_DEVELOPMENT", True)
        app.state.service = FailingService(UpstreamTimeoutError("openai_segment_3"))
        resp = bare_client.post("/api/generate", json={"script": long_script})
        assert resp.json() == {
            "error": "Failed to generate segments",
            "message": "openai_segment_3_timeout",
        }

    def test_production_hides_message(self, bare_client, long_script, monkeypatch):
        monkeypatch.setattr(config, "IS_DEVELOPMENT", False)
        app.state.service = FailingService(MalformedOutputError())
        resp = bare_client.post("/api/generate-plus", json={"script": long_script})
        assert resp.status_code == 502
        assert resp.json() == {
            "error": "Failed to generate segments (plus)",
            "message": "Internal server error",
        }

    def test_status_for_foreign_timeout(self):
        assert status_for_exception(asyncio.TimeoutError()) == 504
        assert status_for_exception(ValueError("boom")) == 500


class TestRouteDeadline:
    """The outer deadline answers 504 while the pipeline is still running."""

    def test_deadline_wins(self, bare_client, long_script, monkeypatch):
        monkeypatch.setattr(config, "API_ROUTE_TIMEOUT_S", 0.05)
        app.state.service = HangingService()
        resp = bare_client.post("/api/generate", json={"script": long_script})
        assert resp.status_code == 504
        assert resp.json() == ROUTE_TIMEOUT_BODY == {"ok": False, "error": "route_timeout"}

    def test_fast_pipeline_beats_deadline(self, client, long_script, monkeypatch):
        monkeypatch.setattr(config, "API_ROUTE_TIMEOUT_S", 5.0)
        resp = client.post("/api/generate", json={"script": long_script})
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Continuation routes
# ---------------------------------------------------------------------------


class TestGenerateContinuation:
    """Tests for POST /api/generate-continuation."""

    def test_requires_voice_profile(self, client, long_script):
        resp = client.post("/api/generate-continuation", json={"script": long_script})
        assert resp.status_code == 400
        assert resp.json() == {"error": "voiceProfile (object) is required"}

    def test_success(self, client, model_client, long_script):
        previous = {"action_timeline": {"transition_prep": "holding the jar", "dialogue": "Earlier."}}
        resp = client.post("/api/generate-continuation", json={
            "script": long_script,
            "voiceProfile": VOICE,
            "previousSegment": previous,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["metadata"]["mode"] == "continuation"
        assert body["voiceProfile"]["pitchRange"] == "170 Hz"
        assert "Position: holding the jar" in model_client.requests[1].user_content
        assert "Current Location: living room" in model_client.requests[1].user_content

    def test_profile_hints_fill_missing_params(self, client, model_client, long_script):
        profile = dict(VOICE, accentRegion="Texan", voiceType="raspy")
        resp = client.post("/api/generate-continuation", json={
            "script": long_script, "voiceProfile": profile,
        })
        assert resp.status_code == 200
        base_request = model_client.requests[0].user_content
        assert "Accent/Region: Texan" in base_request
        assert "Voice Type: raspy" in base_request

    def test_failure_title(self, bare_client, long_script):
        app.state.service = FailingService(UpstreamTimeoutError("openai_continuation_style_1"))
        resp = bare_client.post("/api/generate-continuation", json={
            "script": long_script, "voiceProfile": VOICE,
        })
        assert resp.status_code == 504
        assert resp.json()["error"] == "Failed to generate continuation"


class TestGenerateContinuationMinimal:
    """Tests for POST /api/generate-continuation-minimal."""

    def test_success(self, client, model_client):
        resp = client.post("/api/generate-continuation-minimal", json={
            "script": "And that is why I keep it on my counter.",
            "voiceProfile": VOICE,
            "imageUrl": "https://example.com/frame.png",
        })
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["segment"]["segment_info"]["type"] == "continuation"
        assert model_client.labels == ["openai_continuation_minimal"]

    def test_requires_voice_profile(self, client):
        resp = client.post("/api/generate-continuation-minimal", json={"script": "Next line."})
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class TestRateLimit:
    def test_over_limit_is_429(self, client, long_script, monkeypatch):
        monkeypatch.setattr(rate_limiter, "max_requests", 2)
        for _ in range(2):
            assert client.post("/api/generate", json={"script": long_script}).status_code == 200

        resp = client.post("/api/generate", json={"script": long_script})
        assert resp.status_code == 429
        assert "Too many requests" in resp.json()["error"]
        assert int(resp.headers["Retry-After"]) >= 1

    def test_downloads_are_not_limited(self, client, monkeypatch):
        monkeypatch.setattr(rate_limiter, "max_requests", 1)
        for _ in range(3):
            resp = client.post("/api/download", json={"segments": [{"a": 1}]})
            assert resp.status_code == 200

    def test_limiter_window_resets(self):
        from ugc_script_splitter.server.ratelimit import RateLimiter

        now = {"t": 0.0}
        limiter = RateLimiter(max_requests=1, window_s=10.0, clock=lambda: now["t"])
        assert limiter.hit("a")
        assert not limiter.hit("a")
        assert limiter.hit("b")
        assert limiter.retry_after("a") == 10
        now["t"] = 10.0
        assert limiter.hit("a")

    def test_expired_windows_are_pruned(self):
        from ugc_script_splitter.server.ratelimit import RateLimiter

        now = {"t": 0.0}
        limiter = RateLimiter(max_requests=5, window_s=10.0, clock=lambda: now["t"], prune_threshold=3)
        for key in ("a", "b", "c"):
            limiter.hit(key)
        assert limiter.tracked_keys() == 3

        now["t"] = 5.0
        limiter.hit("d")
        # Over the threshold, but nothing has expired yet.
        assert limiter.tracked_keys() == 4

        now["t"] = 12.0
        assert limiter.hit("e")
        # a, b and c expired at t=10; d and e are still live.
        assert limiter.tracked_keys() == 2
        assert limiter.hit("d")


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------


class TestDownload:
    """Tests for POST /api/download and /api/download-plus."""

    @pytest.mark.parametrize("path", ["/api/download", "/api/download-plus"])
    def test_zip_contents(self, bare_client, path):
        segments = [{"segment_info": {"segment_number": 1}}, {"segment_info": {"segment_number": 2}}]
        resp = bare_client.post(path, json={"segments": segments})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/zip"
        assert 'filename="veo3-segments.zip"' in resp.headers["content-disposition"]

        with zipfile.ZipFile(io.BytesIO(resp.content)) as archive:
            assert archive.namelist() == ["segment_01.json", "segment_02.json", "README.txt"]
            assert json.loads(archive.read("segment_02.json")) == segments[1]
            assert "Instructions for Veo 3" in archive.read("README.txt").decode("utf-8")

    def test_empty_segments_rejected(self, bare_client):
        resp = bare_client.post("/api/download", json={"segments": []})
        assert resp.status_code == 422

    def test_build_segments_zip_keeps_unicode(self):
        data = build_segments_zip([{"dialogue": "Café ☕"}])
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert "Café ☕" in archive.read("segment_01.json").decode("utf-8")


# ---------------------------------------------------------------------------
# GET /api/health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, bare_client, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        resp = bare_client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["apiKeyConfigured"] is True
        assert body["environment"] == config.APP_ENV
        assert body["rateLimit"] == rate_limiter.describe()
        assert body["routeTimeoutS"] == config.API_ROUTE_TIMEOUT_S

    def test_openapi_docs(self, bare_client):
        resp = bare_client.get("/openapi.json")
        assert resp.status_code == 200
        assert "/api/generate" in resp.json()["paths"]
