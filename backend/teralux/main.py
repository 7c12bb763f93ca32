"""
Teralux Gateway - FastAPI Application Entry Point.

Feature-based modular architecture:
  Each feature in teralux/features/ has its own router, schemas and services.
  Every response uses the {status, message, data} envelope.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from teralux.config import Settings, get_settings
from teralux.core.dependencies import close_resources
from teralux.core.exceptions import AppBaseError, app_error_to_response, error_envelope
from teralux.core.middleware import TokenExpiryMiddleware

# ── Feature Routers ──────────────────────────────────────
from teralux.features.cache.router import router as cache_router
from teralux.features.device_state.router import router as device_state_router
from teralux.features.tuya.router import router as tuya_router

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    level = level.upper()
    if level == "WARN":
        level = "WARNING"
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup & shutdown."""
    settings: Settings = app.state.settings
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} starting...")
    logger.info(f"Tuya endpoint: {settings.TUYA_BASE_URL}")
    logger.info(f"Local store: {settings.CACHE_DB_PATH} (cache TTL {settings.CACHE_TTL_SECONDS}s)")
    yield
    logger.info("Shutting down...")
    close_resources()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Gateway between the Teralux mobile app and Tuya Cloud",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ── Middleware ───────────────────────────────────────
    app.add_middleware(TokenExpiryMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error envelopes ──────────────────────────────────
    @app.exception_handler(AppBaseError)
    async def app_error_handler(request: Request, exc: AppBaseError):
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return app_error_to_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        response = error_envelope(str(exc.detail), exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return error_envelope(f"Invalid request: {errors}", status.HTTP_400_BAD_REQUEST)

    # ── Register Feature Routers ─────────────────────────
    app.include_router(tuya_router, prefix="/api/tuya", tags=["Tuya"])
    app.include_router(device_state_router, prefix="/api/devices", tags=["Device State"])
    app.include_router(cache_router, prefix="/api/cache", tags=["Cache"])

    # ── Health Check ─────────────────────────────────────
    @app.get("/health", tags=["System"])
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    return app


app = create_app()
