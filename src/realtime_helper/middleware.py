# middleware.py
"""Cross-origin policy, rate limiting and security headers.

All three are always configured; configuration flags switch rate limiting
and security headers on or off.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .config import RealtimeHelperConfig
from .logging_utils import get_logger

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, slow down."


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to every response.

    No Content-Security-Policy is set: the bundled client talks to the
    realtime API directly and plays remote media.
    """

    def __init__(self, app, enable_hsts: bool = False):
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["X-DNS-Prefetch-Control"] = "off"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


async def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit exceeded",
        extra={"path": request.url.path, "limit": str(exc.detail)},
    )
    return JSONResponse(
        status_code=429,
        content={"error": RATE_LIMIT_MESSAGE},
        headers={"Retry-After": "60"},
    )


def configure_cors(app: FastAPI, config: RealtimeHelperConfig) -> None:
    """Allow any origin when no allow-list is configured, otherwise only the listed ones."""
    origins = config.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )


def configure_rate_limiting(app: FastAPI, config: RealtimeHelperConfig) -> Limiter:
    """Create the limiter, attach it to the app and register the 429 handler.

    Returns:
        Limiter instance for use in endpoint decorators
    """
    limiter = Limiter(
        key_func=get_remote_address,
        enabled=config.RATE_LIMIT_ENABLED,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    return limiter


def configure_security_middleware(app: FastAPI, config: RealtimeHelperConfig) -> Limiter:
    """Install CORS, security headers and the rate limiter on ``app``."""
    configure_cors(app, config)
    if config.SECURITY_HEADERS_ENABLED:
        app.add_middleware(SecurityHeadersMiddleware, enable_hsts=not config.is_dev)
    limiter = configure_rate_limiting(app, config)

    logger.info(
        "Security middleware configured",
        extra={
            "cors_origins": config.cors_origins or ["*"],
            "rate_limit": config.TOKEN_RATE_LIMIT if config.RATE_LIMIT_ENABLED else None,
            "security_headers": config.SECURITY_HEADERS_ENABLED,
        },
    )
    return limiter
