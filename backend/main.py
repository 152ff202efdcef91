"""
SafetyAI - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --reload  (from the backend/ directory)
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from safetyai import __version__
from safetyai.api import routes
from safetyai.config import Settings, get_settings
from safetyai.core.exceptions import SafetyAIError
from safetyai.core.logging import setup_structured_logging
from safetyai.services.gateway import SafetyGateway, create_gateway

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[SafetyGateway] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings to use (default: cached environment settings)
        gateway: Pre-built gateway (tests pass one with a scripted client)
    """
    settings = settings or get_settings()
    setup_structured_logging(settings.app_log_level, json_format=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Build the gateway (generation client, adapters, session store)
            - Start background session cleanup

        Shutdown:
            - Stop session cleanup and close the HTTP client
        """
        # === Startup ===
        logger.info("SafetyAI starting in %s mode", settings.app_env)

        app.state.gateway = gateway or create_gateway(settings)
        app.state.settings = settings
        await app.state.gateway.startup()

        logger.info(
            "Gateway ready: backend=%s, model=%s, retry_count=%d",
            settings.generation_backend,
            app.state.gateway.model_id,
            settings.retry_count,
        )

        yield

        # === Shutdown ===
        logger.info("SafetyAI shutting down")
        await app.state.gateway.shutdown()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="SafetyAI",
        description="AI gateway for workplace safety documents, audio and chat",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Errors ---
    @app.exception_handler(SafetyAIError)
    async def safetyai_error_handler(request: Request, exc: SafetyAIError):
        logger.warning("Request failed: %s %s -> %s", request.method, request.url.path, exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": exc.message, "details": exc.details},
        )

    # --- Routes ---
    app.include_router(routes.router, prefix="/api")

    @app.get("/")
    async def root():
        """Service info."""
        return {
            "service": "SafetyAI",
            "status": "operational",
            "version": __version__,
        }

    return app


# Create app instance
app = create_app()
