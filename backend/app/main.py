"""
Session Bridge Gateway Application Entry Point

FastAPI application main entry, including router registration and application configuration.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.proxy import anthropic_router, openai_router
from app.common.errors import AppError
from app.config import get_settings
from app.logging_config import setup_logging
from app.providers.factory import create_transport
from app.serializers.anthropic import AnthropicSerializer
from app.services.session_bridge import SessionBridge

logger = logging.getLogger(__name__)

# Initialize logging configuration
setup_logging()


# Application Lifecycle Management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application Lifecycle Management

    Create the transport and the single session bridge on startup,
    end the backend session on shutdown.
    """
    # Startup
    settings = get_settings()
    transport = create_transport(settings)
    app.state.bridge = SessionBridge.from_settings(transport, settings)
    logger.info(
        "Gateway started: transport=%s, model=%s",
        settings.TRANSPORT_CLASS,
        settings.MODEL_ID,
    )
    yield
    # Shutdown
    await app.state.bridge.shutdown()


# Create FastAPI application
settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    description="Local gateway serving Anthropic/OpenAI compatible APIs from one backend inference session",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
# Parse ALLOWED_ORIGINS from comma-separated string to list
allowed_origins_str = settings.ALLOWED_ORIGINS.strip()
if allowed_origins_str:
    allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]
else:
    # In production, empty list means no CORS
    allowed_origins = []

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_content(request: Request, exc: AppError) -> dict:
    """Render an error in the shape of the caller's protocol"""
    if request.url.path.startswith("/v1/messages"):
        return AnthropicSerializer(get_settings().MODEL_ID).error_body(exc)
    return exc.to_dict()


# Global Exception Handler
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Handle application custom exceptions

    Raised outside the endpoint handlers (e.g. authentication dependencies).
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(request, exc),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions

    In production mode, stack traces and error details are logged but not returned to clients.
    """
    settings = get_settings()
    # Log the full error for debugging
    logger.error(
        "Uncaught exception: %s\nPath: %s\nTraceback:\n%s",
        str(exc),
        request.url.path,
        traceback.format_exc(),
    )

    # In debug mode, return detailed error information
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "message": str(exc),
                    "type": type(exc).__name__,
                    "code": "internal_error",
                    "traceback": traceback.format_exc().split("\n"),
                }
            },
        )

    # In production, return generic error message
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Internal server error",
                "type": "internal_error",
                "code": "internal_error",
            }
        },
    )


# Health Check Endpoint
@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health Check

    Used for service liveness probe. Also reports backend session and circuit state.
    """
    bridge: SessionBridge = request.app.state.bridge
    circuit = bridge.circuit
    return {
        "status": "degraded" if bridge.is_circuit_open() else "healthy",
        "session_active": bridge.session_id is not None,
        "circuit": {
            "phase": circuit.phase.value,
            "consecutive_failures": circuit.consecutive_failures,
            "last_error": circuit.last_error,
            "opened_at": circuit.opened_at.isoformat() if circuit.opened_at else None,
        },
    }


@app.get("/", tags=["Health"])
async def root():
    """
    Root Path

    Return basic service information.
    """
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "description": "Session Bridge Gateway - Anthropic/OpenAI protocol translation",
    }


# Register Routers
app.include_router(openai_router)
app.include_router(anthropic_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
