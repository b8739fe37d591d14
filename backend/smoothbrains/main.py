"""
SmoothBrains Backend: FastAPI Application Factory

App creation, middleware (CORS, rate limiting, request ID logging), router registration.
Run with: uvicorn smoothbrains.main:app --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from smoothbrains.api import chat, dashboard, market, pages, score, sentiment, sessions
from smoothbrains.config import log, settings
from smoothbrains.rate_limit import limiter

VERSION = "0.1.0"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Log the X-Request-Id header from every incoming request.

    The frontend includes X-Request-Id on every fetch call so REST errors
    can be correlated with backend logs.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", "none")
        log(
            "INFO",
            "request received",
            method=request.method,
            path=request.url.path,
            request_id=request_id,
        )
        return await call_next(request)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Steps:
        1. Create FastAPI instance with title, version, description
        2. Add CORS middleware (origins from settings.cors_origins)
        3. Add request ID logging middleware
        4. Add rate limiting (slowapi, per-endpoint decorators)
        5. Register routers
    """
    app = FastAPI(
        title="SmoothBrains API",
        version=VERSION,
        description="Product-market fit analysis for startup ideas: scoring, market, sentiment and chat.",
    )

    # CORS
    origins = [origin.strip() for origin in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID logging
    app.add_middleware(RequestIdMiddleware)

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(score.router)
    app.include_router(market.router)
    app.include_router(sentiment.router)
    app.include_router(chat.router)
    app.include_router(sessions.router)
    app.include_router(dashboard.router)
    app.include_router(pages.router)

    @app.get("/api/health")
    async def health_check():
        """GET /api/health. Returns: { "status": "ok", "version": "0.1.0" }"""
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()
