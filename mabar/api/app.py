"""FastAPI application factory."""

from __future__ import annotations

import time
from collections import defaultdict
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from mabar import __version__
from mabar.agent.coordinator import MatchmakingCoordinator
from mabar.agent.tools import make_tools
from mabar.api.routes import router as core_router
from mabar.core.config.loader import load_config
from mabar.core.parse.client import ParseClient
from mabar.memory.store import MemoryStore


# ── Rate Limiting Middleware ─────────────────────────────────


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window rate limiter.

    Logged-in users are limited per Parse session token, anonymous callers per IP.
    """

    # Paths exempt from rate limiting
    _EXEMPT = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})

    def __init__(self, app: FastAPI) -> None:
        super().__init__(app)
        self._requests: dict[str, list[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next):
        config = getattr(request.app.state, "config", None)
        if not config or not config.rate_limit.enabled:
            return await call_next(request)

        if request.url.path in self._EXEMPT:
            return await call_next(request)

        rpm = config.rate_limit.requests_per_minute
        key = request.headers.get("X-Parse-Session-Token") or (
            request.client.host if request.client else "unknown"
        )
        now = time.time()
        window = 60.0

        # Clean old entries
        self._requests[key] = [t for t in self._requests[key] if now - t < window]

        if len(self._requests[key]) >= rpm:
            logger.warning(f"Rate limit hit on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests"},
                headers={"Retry-After": "60"},
            )

        self._requests[key].append(now)
        return await call_next(request)


# ── App Factory ──────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: Config → MemoryStore → ParseClient → Toolbox → Coordinator."""
    config = load_config()
    db = MemoryStore(str(config.db_path))
    parse = ParseClient.from_config(config)
    registry = make_tools(config, parse)
    coordinator = MatchmakingCoordinator(config, db, registry=registry)

    app.state.config = config
    app.state.db = db
    app.state.parse = parse
    app.state.coordinator = coordinator

    logger.info(
        f"MaBar API started — model: {config.assistant.model}, "
        f"presenter: {config.presenter_model}, parse: {config.parse_enabled}"
    )
    yield
    logger.info("MaBar API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="MaBar API",
        description="Padel matchmaking assistant API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RateLimitMiddleware)

    app.include_router(core_router)
    return app


app = create_app()
