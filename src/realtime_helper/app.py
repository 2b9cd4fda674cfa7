"""FastAPI application for the realtime voice helper.

Endpoints:
- POST /token - Mint an ephemeral OpenAI Realtime session
- GET /healthz - Health check
- POST /rag/search - Keyword search over the knowledge base
- GET /rag/stats - Search statistics
- POST /rag/stats/reset - Clear search statistics
- POST /emotion/analyze - Heuristic emotion estimate
- GET / - Bundled browser client (static files)
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from .config import RealtimeHelperConfig
from .emotion import EmotionAnalyzer, EmotionFeatures, SentimentScorer
from .errors import (
    InvalidArgumentError,
    RealtimeHelperError,
    SessionIssuerError,
    json_error,
)
from .knowledge_base import KnowledgeBase, load_knowledge_base
from .logging_utils import get_logger
from .middleware import configure_security_middleware
from .models import QueryRecord, SearchResponse
from .retriever import clamp_top_k
from .session_issuer import RealtimeSessionClient
from .stats import InMemoryQueryStats, QueryStatsRecorder

logger = get_logger(__name__)


async def _read_json_body(request: Request) -> Any:
    """Decode the request body as JSON; malformed or empty bodies give None."""
    try:
        return await request.json()
    except ValueError:
        return None


def create_app(
    config: RealtimeHelperConfig,
    knowledge_base: Optional[KnowledgeBase] = None,
    query_stats: Optional[QueryStatsRecorder] = None,
    session_client: Optional[RealtimeSessionClient] = None,
    sentiment_scorer: Optional[SentimentScorer] = None,
) -> FastAPI:
    """Build the application and its collaborators.

    The knowledge base is loaded here, at startup, unless one is injected.

    Args:
        config: Service configuration.
        knowledge_base: Preloaded knowledge base (tests); read from
            config.KB_PATH when omitted.
        query_stats: Search statistics recorder; in-memory by default.
        session_client: Upstream session client; built from config by default.
        sentiment_scorer: Valence strategy for the emotion estimator.

    Returns:
        Configured FastAPI application.
    """
    if knowledge_base is None:
        load_result = load_knowledge_base(config.KB_PATH)
        knowledge_base = KnowledgeBase(load_result.documents)
        if not load_result.ok:
            logger.warning(
                "Serving with an empty knowledge base",
                extra={"kb_path": str(load_result.source), "reason": load_result.error},
            )

    query_stats = query_stats or InMemoryQueryStats()
    session_client = session_client or RealtimeSessionClient(config)
    emotion_analyzer = EmotionAnalyzer(sentiment_scorer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Realtime helper starting",
            extra={"model": config.REALTIME_MODEL, "kb_documents": len(knowledge_base)},
        )
        yield
        session_client.close()
        logger.info("Realtime helper shut down")

    app = FastAPI(
        title="Realtime Helper",
        description="Ephemeral session issuing, knowledge base search and emotion heuristics",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.knowledge_base = knowledge_base
    app.state.query_stats = query_stats
    app.state.session_client = session_client

    limiter = configure_security_middleware(app, config)

    @app.exception_handler(RealtimeHelperError)
    async def realtime_helper_error_handler(request: Request, exc: RealtimeHelperError) -> JSONResponse:
        return exc.to_response()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error: %s %s - %s",
            request.method,
            request.url.path,
            str(exc),
            exc_info=True,
        )
        return json_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            detail=str(exc) if config.LOG_LEVEL == "DEBUG" else "An unexpected error occurred",
        )

    @app.post("/token")
    @limiter.limit(config.TOKEN_RATE_LIMIT)
    def create_token(request: Request) -> JSONResponse:
        """Mint an ephemeral realtime session and relay the upstream body."""
        try:
            data = session_client.create_session()
        except RealtimeHelperError:
            raise
        except Exception as e:
            logger.error(f"Token endpoint error: {e}", exc_info=True)
            raise SessionIssuerError(str(e)) from e
        return JSONResponse(content=data)

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True, "model": config.REALTIME_MODEL}

    @app.post("/rag/search")
    async def rag_search(request: Request) -> JSONResponse:
        """Keyword search over the knowledge base.

        Body: ``{"query": str, "top_k": int?}``. Every accepted search is
        recorded in the query statistics.
        The body is read on the event loop, scoring runs in the thread pool.
        """
        body = await _read_json_body(request)
        if not isinstance(body, dict):
            body = {}

        raw_query = body.get("query")
        query = str(raw_query).strip() if raw_query else ""
        if not query:
            raise InvalidArgumentError("Missing 'query'")
        top_k = clamp_top_k(body.get("top_k"))

        try:
            results = await run_in_threadpool(knowledge_base.search, query, top_k)
        except Exception as e:
            logger.error(f"RAG search error: {e}", exc_info=True)
            return json_error(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "RAG search error", detail=str(e)
            )

        query_stats.record(
            QueryRecord(
                query=query,
                top_k=top_k,
                hit_count=len(results),
                ua=request.headers.get("user-agent", ""),
            )
        )
        logger.info(
            "RAG search served",
            extra={"query": query, "top_k": top_k, "hit_count": len(results)},
        )

        response = SearchResponse(results=results, query=query, top_k=top_k)
        return JSONResponse(content=response.model_dump())

    @app.get("/rag/stats")
    def rag_stats() -> Dict[str, Any]:
        return query_stats.snapshot().model_dump()

    @app.post("/rag/stats/reset")
    def rag_stats_reset() -> Dict[str, Any]:
        query_stats.reset()
        logger.info("RAG stats reset")
        return {"ok": True}

    @app.post("/emotion/analyze")
    async def emotion_analyze(request: Request) -> JSONResponse:
        """Estimate affect from prosodic features and transcript.

        Body: ``{"f0_mean"?, "rms_mean"?, "speech_rate"?, "transcript"?}``.
        Malformed bodies are analyzed as all defaults.
        """
        features = EmotionFeatures.from_payload(await _read_json_body(request))
        result = await run_in_threadpool(emotion_analyzer.analyze, features)
        return JSONResponse(content=result.model_dump())

    # Mounted last so the API routes take precedence over static files
    if config.STATIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=str(config.STATIC_DIR), html=True), name="static")
    else:
        logger.warning(
            "Static directory not found, client will not be served",
            extra={"static_dir": str(config.STATIC_DIR)},
        )

    return app
