# session_issuer.py
"""Ephemeral realtime session issuing against the OpenAI Realtime REST API."""

import concurrent.futures
import json
import time
from typing import Any, Dict, Optional, Tuple

import requests

from .config import RealtimeHelperConfig
from .errors import (
    SessionIssuerError,
    UpstreamFormatError,
    UpstreamStatusError,
    UpstreamTimeoutError,
)
from .logging_utils import get_logger

MODALITIES = ["audio", "text"]

BODY_CHUNK_SIZE = 8192

TOOLS = [
    {
        "type": "function",
        "name": "get_weather",
        "description": "指定された都市の現在の天気(気温と簡易天気)を返す",
        "parameters": {
            "type": "object",
            "properties": {
                "city": {"type": "string", "description": "都市名（日本語可）"},
                "unit": {"type": "string", "enum": ["c", "f"], "default": "c"},
            },
            "required": ["city"],
        },
    },
    {
        "type": "function",
        "name": "search_kb",
        "description": "ナレッジベースから関連情報を検索して要約を返す",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "検索クエリ（日本語可）"},
                "top_k": {"type": "integer", "minimum": 1, "maximum": 10, "default": 5},
            },
            "required": ["query"],
        },
    },
]

INSTRUCTIONS = (
    "あなたは親切な音声アシスタントです。原則日本語で簡潔に回答します。"
    "一般知識・技術解説・定義・事実確認などの『知識質問』に回答する前に必ず一度 "
    "search_kb 関数を呼び出し、上位ヒットの要点を統合して回答してください。"
    "最低1件の出典（タイトルとURL）を短く明示します。天気の質問は get_weather を使用します。"
    "ヒットが0件のときはその旨を伝え、質問の絞り込みを促してください。"
    "推測やハルシネーションは避けてください。"
)


def build_session_config(config: RealtimeHelperConfig) -> Dict[str, Any]:
    """Build the session creation payload from configuration."""
    return {
        "model": config.REALTIME_MODEL,
        "voice": config.REALTIME_VOICE,
        "modalities": list(MODALITIES),
        "turn_detection": {
            "type": "server_vad",
            "silence_duration_ms": config.TURN_SILENCE_MS,
        },
        "input_audio_transcription": {"model": config.TRANSCRIBE_MODEL},
        "tools": TOOLS,
        "instructions": INSTRUCTIONS,
    }


class RealtimeSessionClient:
    """Creates ephemeral realtime sessions.

    One attempt per call, no retries: clients retry on their side. The
    configured timeout bounds the whole exchange, including a response that
    trickles in slowly, not just each socket read.
    """

    def __init__(
        self,
        config: RealtimeHelperConfig,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the session client.

        Args:
            config: Service configuration (credential, endpoint, timeout).
            session: Optional requests session, created lazily if omitted.
        """
        self.logger = get_logger(__name__)
        self.config = config
        self.url = config.OPENAI_REALTIME_SESSIONS_URL
        self.timeout = config.UPSTREAM_TIMEOUT_SECONDS
        self._session = session
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _get_executor(self) -> concurrent.futures.ThreadPoolExecutor:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                thread_name_prefix="realtime-session"
            )
        return self._executor

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.OPENAI_API_KEY}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "realtime=v1",
        }

    def _post(self, payload: Dict[str, Any], deadline: float) -> Tuple[int, str]:
        """Send the request and read the body, giving up once ``deadline`` passes."""
        response = self._get_session().post(
            self.url,
            headers=self._headers(),
            json=payload,
            timeout=self.timeout,
            stream=True,
        )
        try:
            chunks = []
            for chunk in response.iter_content(chunk_size=BODY_CHUNK_SIZE):
                if time.monotonic() > deadline:
                    raise UpstreamTimeoutError()
                chunks.append(chunk)
            text = b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")
            return response.status_code, text
        finally:
            response.close()

    def create_session(self) -> Dict[str, Any]:
        """Create an ephemeral session and return the upstream JSON body.

        Returns:
            The upstream session object, unmodified.

        Raises:
            UpstreamStatusError: Upstream answered with a non-2xx status.
            UpstreamFormatError: Upstream answered with a non-JSON body.
            UpstreamTimeoutError: Upstream did not finish answering within the timeout.
            SessionIssuerError: Any other transport failure.
        """
        payload = build_session_config(self.config)

        self.logger.debug(
            "Creating realtime session",
            extra={"model": payload["model"], "voice": payload["voice"]},
        )

        deadline = time.monotonic() + self.timeout
        future = self._get_executor().submit(self._post, payload, deadline)
        try:
            status_code, text = future.result(timeout=self.timeout)
        except (concurrent.futures.TimeoutError, UpstreamTimeoutError, requests.exceptions.Timeout):
            # The worker may still be blocked on the socket; it stops at its
            # own deadline check or read timeout.
            future.cancel()
            self.logger.error(f"Realtime session request timed out after {self.timeout}s")
            raise UpstreamTimeoutError()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Realtime session request failed: {e}")
            raise SessionIssuerError(str(e)) from e

        if not 200 <= status_code < 300:
            self.logger.error(
                "Realtime session creation rejected upstream",
                extra={"status_code": status_code, "response_text": text[:500]},
            )
            raise UpstreamStatusError(status_code, text)

        try:
            data = json.loads(text)
        except ValueError as e:
            self.logger.error("Realtime session response is not JSON")
            raise UpstreamFormatError(text) from e

        self.logger.info(
            "Realtime session created",
            extra={"model": payload["model"], "status_code": status_code},
        )
        return data

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        if self._session is not None:
            self._session.close()
            self._session = None
