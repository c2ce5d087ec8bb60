"""FastAPI app entry point for the Build Passport legality API."""

import time
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from buildpass.api.routes import limiter, router
from buildpass.core.config import get_settings, validate_settings
from buildpass.core.dependencies import check_supabase_health, get_repository
from buildpass.core.exceptions import (
    InputValidationError,
    input_validation_exception_handler,
)
from buildpass.core.logging import (
    log_error,
    log_request,
    log_response,
    logger,
    setup_logging,
)
from buildpass.db.repository import LegalityRepository
from buildpass.services.overlay_cache import OverlayCache
from buildpass.services.reference_data import ReferenceData


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - validate config and load reference data."""
    settings = get_settings()
    setup_logging(settings.log_level)
    try:
        validate_settings()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise

    logger.info("Starting Build Passport legality API...")
    app.state.reference_data = ReferenceData.load(settings.reference_data_dir)
    app.state.overlay_cache = OverlayCache(
        maxsize=settings.overlay_cache_size, ttl=settings.overlay_cache_ttl
    )
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Build Passport Legality API",
    description="German road-legality assessment for vehicle modifications (advisory only)",
    version="1.0.0",
    lifespan=lifespan,
)

# State for limiter
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    log_error("Rate limit exceeded", client=get_remote_address(request))
    return JSONResponse(
        status_code=429, content={"error": "Rate limit exceeded. Try again later."}
    )


app.add_exception_handler(InputValidationError, input_validation_exception_handler)

# CORS
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Admin-Key"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    log_request(request.method, request.url.path)

    response = await call_next(request)

    duration_ms = (time.time() - start) * 1000
    log_response(request.method, request.url.path, response.status_code, duration_ms)

    return response


# Routes
app.include_router(router, prefix="/api")


class HealthResponse(BaseModel):
    status: str
    supabase: dict[str, Any] | None = None


@app.get("/health", response_model=HealthResponse)
async def health_check(
    repo: Annotated[LegalityRepository, Depends(get_repository)],
    detailed: bool = False,
):
    """
    Health check endpoint.

    - Basic: Returns {"status": "healthy"}
    - Detailed (?detailed=true): Checks Supabase connectivity
    """
    if not detailed:
        return {"status": "healthy"}

    supabase_health = await check_supabase_health(repo)
    overall = "healthy" if supabase_health["status"] == "healthy" else "degraded"
    return {"status": overall, "supabase": supabase_health}
