"""
TCG Shop Manager API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api.v1 import router as api_v1_router
from app.core.config import get_settings
from app.core.database import engine
from app.core.logging import configure_logging
from app.core.middleware import (
    CSRFMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)
from app.core.provider import ProviderError, close_provider
from app.core.redis import close_redis, ping_redis

settings = get_settings()
log = structlog.get_logger()


async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    """Surface provider failures verbatim so the user can retry manually."""
    log.warning("provider.request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=502, content={"detail": exc.message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="TCG Shop Manager",
        description="Shop membership, roles and team management for trading-card shops.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters: the last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(ProviderError, provider_error_handler)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis must both answer."""
        database_ok = True
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            log.warning("database.unreachable", error=str(exc))
            database_ok = False
        redis_ok = await ping_redis()

        ready = database_ok and redis_ok
        return JSONResponse(
            status_code=200 if ready else 503,
            content={
                "status": "ready" if ready else "unavailable",
                "database": database_ok,
                "redis": redis_ok,
            },
        )

    @app.on_event("startup")
    async def on_startup():
        log.info("TCG Shop Manager starting", provider=settings.provider_name)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("TCG Shop Manager shutting down")
        await close_provider()
        await close_redis()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
