"""Process entry point.

Example:
    realtime-helper
    uvicorn realtime_helper.main:build_app --factory --port 3000
"""

import sys

import uvicorn
from fastapi import FastAPI

from .app import create_app
from .config import RealtimeHelperConfig
from .logging_utils import get_logger, setup_logging

logger = get_logger(__name__)


def load_config() -> RealtimeHelperConfig:
    """Read configuration, exiting the process when the API key is missing."""
    try:
        return RealtimeHelperConfig()
    except ValueError as e:
        logger.critical(f"Missing OPENAI_API_KEY: {e}")
        sys.exit(1)


def build_app() -> FastAPI:
    """Application factory for ``uvicorn --factory``."""
    setup_logging()
    return create_app(load_config())


def main() -> None:
    setup_logging()
    config = load_config()
    app = create_app(config)

    logger.info(f"Realtime helper listening: http://localhost:{config.PORT}")
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        proxy_headers=config.TRUST_PROXY,
        forwarded_allow_ips="*" if config.TRUST_PROXY else None,
        log_config=None,
    )


if __name__ == "__main__":
    main()
