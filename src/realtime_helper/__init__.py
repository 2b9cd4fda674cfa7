"""Realtime voice helper backend.

This package provides a FastAPI server that mints ephemeral OpenAI Realtime
sessions for browser clients, serves the bundled client, and offers a
keyword knowledge base search and a heuristic emotion estimator.
"""

from .app import create_app
from .config import RealtimeHelperConfig

__version__ = "1.0.0"

__all__ = ["create_app", "RealtimeHelperConfig"]
