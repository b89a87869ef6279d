from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
import logging

from app.core.config import Settings, settings
from app.core.logging import setup_logging
from app.core.exceptions import (
    AudioServiceException, audio_service_exception_handler, general_exception_handler
)
from app.core.rate_limiting import configure_limiter, custom_rate_limit_exceeded_handler, limiter
from app.services.container import ServiceContainer
from app.api.v1.api import api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    # Startup
    container: ServiceContainer = app.state.container
    await container.startup()

    yield

    # Shutdown
    await container.shutdown()


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400 in the service's error shape"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "Invalid request body"))

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation error", "detail": detail}
    )


def create_app(config: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the API application. Tests pass their own settings and services."""
    config = config or settings
    container = container or ServiceContainer.build(config)

    app = FastAPI(
        title=config.PROJECT_NAME,
        description="Extracts the audio track of remotely hosted videos",
        version=config.VERSION,
        openapi_url=f"{config.API_V1_STR}/openapi.json",
        lifespan=lifespan
    )

    app.state.container = container

    # Add rate limiter to app
    configure_limiter(config)
    app.state.limiter = limiter

    # Exception handlers
    app.add_exception_handler(RateLimitExceeded, custom_rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(AudioServiceException, audio_service_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in config.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router, prefix=config.API_V1_STR)

    # Locally stored artifacts
    app.mount("/media", StaticFiles(directory=config.STORAGE_DIR, check_dir=False), name="media")

    @app.get("/")
    async def root():
        return {"message": f"{config.PROJECT_NAME} is running"}

    return app


# Set up logging
setup_logging()

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
