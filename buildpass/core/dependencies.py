"""FastAPI dependency injection for services."""

import asyncio
import time
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request

from supabase import Client

from buildpass.core.config import Settings, get_settings
from buildpass.core.logging import log_db_query, log_external_call, logger
from buildpass.db.client import get_supabase_client
from buildpass.db.repository import LegalityRepository
from buildpass.services.overlay_cache import OverlayCache
from buildpass.services.reference_data import ReferenceData

# -----------------------------------------------------------------------------
# Supabase Client / Repository
# -----------------------------------------------------------------------------


def get_supabase() -> Client:
    """Dependency for Supabase client."""
    return get_supabase_client()


def get_repository(
    supabase: Annotated[Client, Depends(get_supabase)],
) -> LegalityRepository:
    """Dependency for the legality repository."""
    return LegalityRepository(supabase)


# -----------------------------------------------------------------------------
# Reference Data / Caches (built in the app lifespan)
# -----------------------------------------------------------------------------


def get_reference_data(request: Request) -> ReferenceData:
    """Dependency for the immutable reference data loaded at startup."""
    data = getattr(request.app.state, "reference_data", None)
    if data is None:
        raise HTTPException(status_code=503, detail="Reference data not loaded")
    return data


def get_overlay_cache(request: Request) -> OverlayCache | None:
    """Dependency for the overlay lookup cache (None disables caching)."""
    return getattr(request.app.state, "overlay_cache", None)


# -----------------------------------------------------------------------------
# Admin Authentication
# -----------------------------------------------------------------------------


async def verify_admin_key(
    request: Request,
    x_admin_key: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> bool:
    """Verify admin API key for protected endpoints."""
    if not settings.api_admin_key:
        logger.warning("API_ADMIN_KEY not set - admin endpoints unprotected")
        raise HTTPException(
            status_code=503,
            detail="Admin endpoints not configured. Set API_ADMIN_KEY environment variable.",
        )

    if not x_admin_key:
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-Key header",
        )

    if x_admin_key != settings.api_admin_key:
        logger.warning(f"Invalid admin key attempt from {request.client}")
        raise HTTPException(
            status_code=403,
            detail="Invalid admin key",
        )

    return True


# -----------------------------------------------------------------------------
# Health Check Helpers
# -----------------------------------------------------------------------------


async def check_supabase_health(repo: LegalityRepository) -> dict[str, Any]:
    """Check Supabase connectivity."""
    start = time.time()
    try:
        await asyncio.to_thread(repo.ping)
        duration_ms = (time.time() - start) * 1000
        log_db_query("health_check", "legality_references", duration_ms)
        return {
            "status": "healthy",
            "latency_ms": round(duration_ms, 2),
        }
    except Exception as e:
        duration_ms = (time.time() - start) * 1000
        log_external_call("supabase", "health_check", False, duration_ms)
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": round(duration_ms, 2),
        }
