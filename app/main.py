"""FastAPI application entry point for the automated phone/SMS survey.

This module initializes the FastAPI application, sets up logging and the
database schema, registers routers, and handles global exception handling.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.logging_config import setup_logging, get_logger
from app.models.database import init_db
from app.routes import health, results, survey

logger = get_logger(__name__)

SERVICE_NAME = "Automated Survey"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and create tables on startup; log shutdown."""
    settings = get_settings()
    setup_logging()
    init_db()

    logger.info(
        f"{SERVICE_NAME} starting - "
        f"Environment: {settings.environment}, "
        f"Survey: {settings.default_survey_id}, "
        f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'configured'}, "
        f"Version: {settings.git_commit_sha}"
    )

    yield

    logger.info(f"{SERVICE_NAME} shutting down")


app = FastAPI(
    title=SERVICE_NAME,
    description="Phone and SMS surveys driven by Twilio webhooks",
    version=SERVICE_VERSION,
    lifespan=lifespan
)


@app.get("/")
async def root() -> dict:
    """Basic service information."""
    settings = get_settings()
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "survey": settings.default_survey_id,
        "status": "operational"
    }


app.include_router(health.router, tags=["Health"])
app.include_router(survey.router, tags=["Survey"])
app.include_router(results.router, tags=["Results"])


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unhandled exceptions and return a generic error body.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Generic error response
    """
    logger.error(
        f"Unhandled exception for {request.method} {request.url.path}: {exc}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )
