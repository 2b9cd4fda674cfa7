# src/realtime_helper/tests/test_app.py
"""
Integration tests for the HTTP application.

Tests cover:
- /healthz
- /token success and error envelopes, rate limiting
- /rag/search validation, clamping and results
- /rag/stats recording, capping and reset
- /emotion/analyze including malformed bodies
- Security headers, CORS and static client serving
"""
import asyncio
import os
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from realtime_helper.errors import UpstreamStatusError, UpstreamTimeoutError
from realtime_helper.knowledge_base import KnowledgeBase
from realtime_helper.models import Document


MOCK_ENV_VARS = {
    "OPENAI_API_KEY": "sk-test-key",
    "APP_ENV": "dev",
    "TOKEN_RATE_LIMIT": "3/minute",
}

DOCUMENTS = [
    Document(
        id="rtc",
        title="WebRTC の基本",
        url="https://kb.example/rtc",
        tags=["WebRTC", "音声"],
        content="WebRTC はブラウザ間でリアルタイムに音声をやり取りする仕組みです。",
    ),
    Document(
        id="joy",
        title="日記",
        url="https://kb.example/joy",
        tags=["生活"],
        content="今日はとても嬉しい気分です",
    ),
    Document(
        id="vad",
        title="ターン検出",
        url="https://kb.example/vad",
        tags=["VAD"],
        content="無音の長さで発話の終わりを判断します。音声の区切りに使います。",
    ),
]


def _config(**overrides):
    env = {**MOCK_ENV_VARS, **overrides}
    with patch.dict(os.environ, env, clear=True):
        from realtime_helper.config import RealtimeHelperConfig
        return RealtimeHelperConfig()


def _client(config=None, session_client=None, knowledge_base=None):
    from realtime_helper.app import create_app

    app = create_app(
        config or _config(),
        knowledge_base=knowledge_base or KnowledgeBase(DOCUMENTS),
        session_client=session_client or MagicMock(),
    )
    return TestClient(app)


@pytest.fixture
def session_client():
    return MagicMock()


@pytest.fixture
def client(session_client):
    return _client(session_client=session_client)


class TestHealth:

    @pytest.mark.integration
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "model": "gpt-realtime"}


class TestToken:
    """Tests for POST /token."""

    @pytest.mark.integration
    def test_relays_upstream_body(self, client, session_client):
        upstream = {"id": "sess_1", "client_secret": {"value": "ek_1"}, "model": "gpt-realtime"}
        session_client.create_session.return_value = upstream

        response = client.post("/token")

        assert response.status_code == 200
        assert response.json() == upstream

    @pytest.mark.integration
    def test_upstream_status_error(self, client, session_client):
        session_client.create_session.side_effect = UpstreamStatusError(401, "bad key")

        response = client.post("/token")

        assert response.status_code == 502
        assert response.json() == {
            "error": "Failed to create ephemeral session",
            "upStatus": 401,
            "detail": "bad key",
        }

    @pytest.mark.integration
    def test_upstream_timeout(self, client, session_client):
        session_client.create_session.side_effect = UpstreamTimeoutError()

        response = client.post("/token")

        assert response.status_code == 500
        assert response.json()["detail"] == "Upstream timeout"

    @pytest.mark.integration
    def test_unexpected_error(self, client, session_client):
        session_client.create_session.side_effect = RuntimeError("boom")

        response = client.post("/token")

        assert response.status_code == 500
        assert response.json() == {"error": "Token endpoint error", "detail": "boom"}

    @pytest.mark.integration
    def test_rate_limited(self, client, session_client):
        session_client.create_session.return_value = {"id": "sess"}

        statuses = [client.post("/token").status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]
        limited = client.post("/token")
        assert limited.json() == {"error": "Too many requests, slow down."}
        assert limited.headers["retry-after"] == "60"

    @pytest.mark.integration
    def test_rate_limit_disabled(self, session_client):
        session_client.create_session.return_value = {"id": "sess"}
        client = _client(config=_config(RATE_LIMIT_ENABLED="false"), session_client=session_client)

        statuses = {client.post("/token").status_code for _ in range(5)}

        assert statuses == {200}


class TestRagSearch:
    """Tests for POST /rag/search."""

    @pytest.mark.integration
    @pytest.mark.parametrize("body", [{}, {"query": ""}, {"query": "   "}, {"top_k": 3}])
    def test_missing_query(self, client, body):
        response = client.post("/rag/search", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing 'query'"}

    @pytest.mark.integration
    def test_malformed_body(self, client):
        response = client.post(
            "/rag/search", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert "error" in response.json()

    @pytest.mark.integration
    def test_results_shape(self, client):
        response = client.post("/rag/search", json={"query": " WebRTC ", "top_k": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["query"] == "WebRTC"
        assert body["top_k"] == 3
        first = body["results"][0]
        assert first["id"] == "rtc"
        assert first["url"] == "https://kb.example/rtc"
        assert first["tags"] == ["WebRTC", "音声"]
        # title 3 + tags 2 + content 1
        assert first["score"] == 6

    @pytest.mark.integration
    def test_content_only_match(self, client):
        body = client.post("/rag/search", json={"query": "嬉しい"}).json()

        assert [r["id"] for r in body["results"]] == ["joy"]
        assert body["results"][0]["score"] == 1
        assert "嬉しい" in body["results"][0]["snippet"]

    @pytest.mark.integration
    def test_results_sorted_and_bounded(self, client):
        body = client.post("/rag/search", json={"query": "音声", "top_k": 1}).json()

        assert body["top_k"] == 1
        assert len(body["results"]) == 1
        assert body["results"][0]["id"] == "rtc"

        body = client.post("/rag/search", json={"query": "音声", "top_k": 10}).json()
        scores = [r["score"] for r in body["results"]]
        assert scores == sorted(scores, reverse=True)
        assert len(body["results"]) == 2

    @pytest.mark.integration
    @pytest.mark.parametrize("top_k,expected", [("abc", 5), (None, 5), (0, 5), (50, 10), (-2, 1)])
    def test_top_k_clamped(self, client, top_k, expected):
        body = client.post("/rag/search", json={"query": "音声", "top_k": top_k}).json()
        assert body["top_k"] == expected

    @pytest.mark.integration
    def test_overflowing_top_k_clamps_to_max(self, client):
        # JSON 1e400 decodes to infinity
        response = client.post(
            "/rag/search",
            content='{"query": "WebRTC", "top_k": 1e400}'.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        assert response.json()["top_k"] == 10

    @pytest.mark.integration
    def test_no_hits(self, client):
        body = client.post("/rag/search", json={"query": "存在しない語句"}).json()
        assert body["results"] == []

    @pytest.mark.integration
    def test_empty_knowledge_base_when_file_missing(self, tmp_path, session_client):
        from realtime_helper.app import create_app

        config = _config(KB_PATH=str(tmp_path / "missing.json"))
        client = TestClient(create_app(config, session_client=session_client))

        response = client.post("/rag/search", json={"query": "WebRTC"})

        assert response.status_code == 200
        assert response.json()["results"] == []


class TestRagStats:
    """Tests for /rag/stats and /rag/stats/reset."""

    @pytest.mark.integration
    def test_searches_are_recorded(self, client):
        client.post("/rag/search", json={"query": "WebRTC"})
        client.post("/rag/search", json={"query": "嬉しい", "top_k": 2})

        body = client.get("/rag/stats").json()

        assert body["total"] == 2
        latest = body["recent"][0]
        assert latest["query"] == "嬉しい"
        assert latest["top_k"] == 2
        assert latest["hit_count"] == 1
        assert latest["ua"] == "testclient"
        assert latest["ts"]
        assert body["recent"][1]["query"] == "WebRTC"

    @pytest.mark.integration
    def test_rejected_searches_are_not_recorded(self, client):
        client.post("/rag/search", json={})
        assert client.get("/rag/stats").json()["total"] == 0

    @pytest.mark.integration
    def test_reset(self, client):
        client.post("/rag/search", json={"query": "WebRTC"})

        response = client.post("/rag/stats/reset")

        assert response.json() == {"ok": True}
        assert client.get("/rag/stats").json() == {"total": 0, "recent": []}

    @pytest.mark.integration
    def test_recent_capped_at_fifty(self, client):
        for i in range(55):
            client.post("/rag/search", json={"query": f"query{i}"})

        body = client.get("/rag/stats").json()

        assert body["total"] == 55
        assert len(body["recent"]) == 50
        assert body["recent"][0]["query"] == "query54"


class TestEmotionAnalyze:
    """Tests for POST /emotion/analyze."""

    @pytest.mark.integration
    def test_analyze(self, client):
        response = client.post(
            "/emotion/analyze",
            json={"f0_mean": 240, "rms_mean": 0.2, "speech_rate": 8, "transcript": "嬉しい"},
        )

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"primary", "polarity", "valence", "arousal", "confidence", "features"}
        assert body["primary"] == "excited/happy"
        assert body["polarity"] == "positive"
        assert body["arousal"] == pytest.approx(1.0)
        assert body["features"]["supplied"] == 3

    @pytest.mark.integration
    def test_malformed_body_uses_defaults(self, client):
        response = client.post(
            "/emotion/analyze", content=b"oops", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["primary"] == "calm/neutral"
        assert body["arousal"] == 0.0
        assert body["confidence"] == pytest.approx(0.4)

    @pytest.mark.integration
    def test_empty_body(self, client):
        response = client.post("/emotion/analyze")
        assert response.status_code == 200
        assert response.json()["polarity"] == "neutral"


def _event_loop_running():
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class TestScoringOffEventLoop:
    """Scoring for /rag/search and /emotion/analyze runs in worker threads."""

    @pytest.mark.integration
    def test_search_scores_in_worker_thread(self, session_client):
        seen = []

        class RecordingKnowledgeBase(KnowledgeBase):
            def search(self, query, top_k=5):
                seen.append(_event_loop_running())
                return super().search(query, top_k)

        client = _client(
            session_client=session_client,
            knowledge_base=RecordingKnowledgeBase(DOCUMENTS),
        )

        assert client.post("/rag/search", json={"query": "WebRTC"}).status_code == 200
        assert seen == [False]

    @pytest.mark.integration
    def test_emotion_scores_in_worker_thread(self, session_client):
        from realtime_helper.app import create_app
        from realtime_helper.emotion import LexiconSentimentScorer

        seen = []
        lexicon = LexiconSentimentScorer()

        class RecordingScorer:
            def score_text(self, text):
                seen.append(_event_loop_running())
                return lexicon.score_text(text)

        app = create_app(
            _config(),
            knowledge_base=KnowledgeBase(DOCUMENTS),
            session_client=session_client,
            sentiment_scorer=RecordingScorer(),
        )
        response = TestClient(app).post("/emotion/analyze", json={"transcript": "嬉しい"})

        assert response.status_code == 200
        assert seen == [False]


class TestMiddlewareAndStatic:
    """Tests for security headers, CORS and static serving."""

    @pytest.mark.integration
    def test_security_headers(self, client):
        response = client.get("/healthz")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert "strict-transport-security" not in response.headers

    @pytest.mark.integration
    def test_hsts_outside_dev(self):
        client = _client(config=_config(APP_ENV="prod"))
        response = client.get("/healthz")
        assert "max-age" in response.headers["strict-transport-security"]

    @pytest.mark.integration
    def test_security_headers_disabled(self):
        client = _client(config=_config(SECURITY_HEADERS_ENABLED="false"))
        response = client.get("/healthz")
        assert "x-content-type-options" not in response.headers

    @pytest.mark.integration
    def test_cors_allow_list(self):
        client = _client(config=_config(CORS_ALLOW_ORIGIN="https://allowed.example"))

        allowed = client.get("/healthz", headers={"Origin": "https://allowed.example"})
        denied = client.get("/healthz", headers={"Origin": "https://denied.example"})

        assert allowed.headers["access-control-allow-origin"] == "https://allowed.example"
        assert "access-control-allow-origin" not in denied.headers

    @pytest.mark.integration
    def test_cors_any_origin_by_default(self, client):
        response = client.get("/healthz", headers={"Origin": "https://anywhere.example"})
        assert response.headers["access-control-allow-origin"] in ("*", "https://anywhere.example")

    @pytest.mark.integration
    def test_static_client_served(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "Realtime Voice Helper" in response.text

    @pytest.mark.integration
    def test_missing_static_dir(self, tmp_path):
        client = _client(config=_config(STATIC_DIR=str(tmp_path / "nope")))
        assert client.get("/").status_code == 404
        assert client.get("/healthz").status_code == 200
