# config.py
import logging
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_KB_PATH = PACKAGE_DIR / "kb" / "sample_kb.json"
DEFAULT_STATIC_DIR = PACKAGE_DIR / "public"

DEFAULT_SESSIONS_URL = "https://api.openai.com/v1/realtime/sessions"
DEFAULT_TURN_SILENCE_MS = 700
DEFAULT_UPSTREAM_TIMEOUT = 15.0


class RealtimeHelperConfig:
    """Realtime helper configuration class that loads settings from environment variables."""

    def __init__(self):
        """Initialize the configuration with environment variables.

        Raises:
            ValueError: If OPENAI_API_KEY is not set
        """
        self.logger = logging.getLogger(__name__)

        # Application environment
        self.APP_ENV = self._get_optional("APP_ENV", "dev")
        self.LOG_LEVEL = self._get_optional("LOG_LEVEL", "INFO").upper()

        # Upstream credential
        self.OPENAI_API_KEY = self._get_required("OPENAI_API_KEY")

        # Listener
        self.HOST = self._get_optional("HOST", "0.0.0.0")
        self.PORT = self._get_int("PORT", 3000)
        self.TRUST_PROXY = self._get_bool("TRUST_PROXY", default=True)

        # Realtime session settings
        self.REALTIME_MODEL = self._get_optional("REALTIME_MODEL", "gpt-realtime")
        self.REALTIME_VOICE = self._get_optional("REALTIME_VOICE", "alloy")
        self.TRANSCRIBE_MODEL = self._get_optional(
            "TRANSCRIBE_MODEL", "gpt-4o-transcribe"
        )
        self.TURN_SILENCE_MS = self._parse_silence_ms(
            self._get_optional("TURN_SILENCE_MS", str(DEFAULT_TURN_SILENCE_MS))
        )
        self.OPENAI_REALTIME_SESSIONS_URL = self._get_optional(
            "OPENAI_REALTIME_SESSIONS_URL", DEFAULT_SESSIONS_URL
        )
        self.UPSTREAM_TIMEOUT_SECONDS = self._get_float(
            "UPSTREAM_TIMEOUT_SECONDS", DEFAULT_UPSTREAM_TIMEOUT
        )

        # Security middleware
        self.CORS_ALLOW_ORIGIN = self._get_optional("CORS_ALLOW_ORIGIN", "")
        self.RATE_LIMIT_ENABLED = self._get_bool("RATE_LIMIT_ENABLED", default=True)
        self.TOKEN_RATE_LIMIT = self._get_optional("TOKEN_RATE_LIMIT", "60/minute")
        self.SECURITY_HEADERS_ENABLED = self._get_bool(
            "SECURITY_HEADERS_ENABLED", default=True
        )

        # Bundled assets
        self.KB_PATH = Path(self._get_optional("KB_PATH", str(DEFAULT_KB_PATH)))
        self.STATIC_DIR = Path(
            self._get_optional("STATIC_DIR", str(DEFAULT_STATIC_DIR))
        )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS_ALLOW_ORIGIN into a list; empty means any origin."""
        return [o.strip() for o in self.CORS_ALLOW_ORIGIN.split(",") if o.strip()]

    @property
    def is_dev(self) -> bool:
        return self.APP_ENV == "dev"

    @staticmethod
    def _parse_silence_ms(raw: str) -> int:
        # Zero and unparsable values fall back to the default
        try:
            value = int(float(raw))
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_TURN_SILENCE_MS
        return value or DEFAULT_TURN_SILENCE_MS

    @staticmethod
    def _get_required(name: str) -> str:
        # An empty value counts as missing
        value = os.environ.get(name)
        if not value:
            raise ValueError(f"{name} must be set to a non-empty value")
        return value

    @staticmethod
    def _get_optional(name: str, default: str = "") -> str:
        return os.environ.get(name, default)

    @staticmethod
    def _get_bool(name: str, default: bool = False) -> bool:
        """Read a flag; only 'true' and '1' (any case) switch it on once set."""
        if name not in os.environ:
            return default
        return os.environ[name].strip().lower() in ("true", "1")

    def _get_int(self, name: str, default: int) -> int:
        raw = self._get_optional(name, str(default))
        try:
            return int(raw)
        except ValueError:
            self.logger.warning(
                "Environment variable %s is not an integer (%r), using %d",
                name,
                raw,
                default,
            )
            return default

    def _get_float(self, name: str, default: float) -> float:
        raw = self._get_optional(name, str(default))
        try:
            return float(raw)
        except ValueError:
            self.logger.warning(
                "Environment variable %s is not a number (%r), using %s",
                name,
                raw,
                default,
            )
            return default
