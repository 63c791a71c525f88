"""
Agent Profile Engine API - Main Application Entry Point

This module initializes the FastAPI application with:
- Database connection and schema initialization
- CORS middleware for frontend communication
- Prometheus metrics (/metrics)
- Engine error → JSON response mapping
- API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup/shutdown)
    ├── CORS Middleware (settings.cors_origins)
    ├── Prometheus Middleware
    └── API Router
        ├── /projects/{project_id}/profile - Profile, history, manual edits, rollback
        └── /projects/{project_id}/recommendations - Generate, list, diff, dismiss, apply-all
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from profile_engine.config import get_settings
from profile_engine.database import init_db
from profile_engine.api import api_router
from profile_engine.errors import ProfileEngineError
from profile_engine.middleware import setup_metrics
from profile_engine.services.rate_limit import close_rate_limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events.

    Startup:
        1. Initialize database tables

    Shutdown:
        1. Close the rate limiter's Redis connection
    """
    await init_db()
    yield
    await close_rate_limiter()


app = FastAPI(
    title="Agent Profile Engine API",
    description="Feedback-driven recommendations and version history for agent profiles",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)


@app.exception_handler(ProfileEngineError)
async def profile_engine_error_handler(request: Request, exc: ProfileEngineError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    content = {"detail": exc.message, "code": exc.code, "retryable": exc.retryable}
    if exc.details is not None:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
