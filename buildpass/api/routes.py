"""FastAPI route definitions for the legality API."""

import asyncio
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from buildpass.core.config import get_settings
from buildpass.core.dependencies import (
    get_overlay_cache,
    get_reference_data,
    get_repository,
    verify_admin_key,
)
from buildpass.core.enums import Severity
from buildpass.core.exceptions import ModificationNotFoundError, SnapshotPersistenceError
from buildpass.core.logging import log_error
from buildpass.db.repository import LegalityRepository
from buildpass.models.legality import (
    LegalityCheckQuery,
    LegalityCheckResponse,
    RecomputeResponse,
    RegionalRulesResponse,
    TuvReadiness,
)
from buildpass.models.modification import UserParameters
from buildpass.services import regional_rules
from buildpass.services.legality_check import run_legality_check
from buildpass.services.overlay_cache import OverlayCache
from buildpass.services.readiness import compute_tuv_readiness
from buildpass.services.reference_data import ReferenceData
from buildpass.services.snapshot_writer import recompute_and_persist

router = APIRouter()

# Rate limiter (registered on app.state in main)
limiter = Limiter(key_func=get_remote_address)


def _check_rate_limit() -> str:
    return get_settings().check_rate_limit


ReferenceDataDep = Annotated[ReferenceData, Depends(get_reference_data)]
RepositoryDep = Annotated[LegalityRepository, Depends(get_repository)]


# ---------------------------------------------------------------------------
# Legality check
# ---------------------------------------------------------------------------


@router.get("/legality/check", response_model=LegalityCheckResponse)
@limiter.limit(_check_rate_limit)
async def legality_check(
    request: Request,
    reference_data: ReferenceDataDep,
    repo: RepositoryDep,
    overlay_cache: Annotated[Optional[OverlayCache], Depends(get_overlay_cache)],
    brand: str = "",
    part_name: Annotated[str, Query(alias="partName")] = "",
    category: Optional[str] = None,
    approval_number: Annotated[Optional[str], Query(alias="approvalNumber")] = None,
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[str] = None,
    state_id: Annotated[Optional[str], Query(alias="stateId")] = None,
    et: Optional[str] = None,
    track_width_change: Annotated[Optional[str], Query(alias="trackWidthChange")] = None,
    clearance_loaded: Annotated[Optional[str], Query(alias="clearanceLoaded")] = None,
    noise_level_db: Annotated[Optional[str], Query(alias="noiseLevelDb")] = None,
):
    """Read-only legality assessment of a described part.

    Numeric parameters that do not parse are ignored. Missing brand or
    partName is a 400; every other failure degrades to less information.
    """
    query = LegalityCheckQuery(
        brand=brand,
        part_name=part_name,
        category=category,
        approval_number=approval_number,
        make=make,
        model=model,
        year=year,
        state_id=state_id,
    )
    params = UserParameters(
        clearance_loaded=clearance_loaded,
        track_width_change=track_width_change,
        et=et,
        noise_level_db=noise_level_db,
    )
    return await asyncio.to_thread(
        run_legality_check, query, params, reference_data, repo, overlay_cache
    )


@router.get("/legality/regional-rules", response_model=RegionalRulesResponse)
async def list_regional_rules(
    reference_data: ReferenceDataDep,
    state_id: Annotated[Optional[str], Query(alias="stateId")] = None,
    categories: Optional[str] = None,
):
    """Rules of a federal state, optionally for comma-separated categories."""
    wanted = [c for c in (categories or "").split(",") if c.strip()]
    rules = regional_rules.rules_for_state(reference_data, state_id, wanted)
    return RegionalRulesResponse(
        state_id=state_id.strip().upper() if state_id else None,
        count=len(rules),
        critical_count=sum(1 for r in rules if r.severity == Severity.CRITICAL),
        warnings=regional_rules.to_warnings(rules),
        rules=rules,
    )


@router.get("/legality/categories")
async def list_categories(reference_data: ReferenceDataDep):
    """Catalog outline: categories, subcategories, accepted approvals, critical parameters."""
    return {
        "version": reference_data.catalog_version,
        "categories": list(reference_data.categories),
    }


# ---------------------------------------------------------------------------
# Snapshot recompute (admin)
# ---------------------------------------------------------------------------


@router.post(
    "/modifications/{modification_id}/legality/recompute",
    response_model=RecomputeResponse,
    dependencies=[Depends(verify_admin_key)],
)
async def recompute_modification_legality(
    modification_id: str,
    reference_data: ReferenceDataDep,
    repo: RepositoryDep,
):
    """Recompute and persist a modification's legality snapshot."""
    try:
        result = await asyncio.to_thread(
            recompute_and_persist, modification_id, repo, reference_data
        )
    except ModificationNotFoundError:
        raise HTTPException(status_code=404, detail="Modification not found")
    except SnapshotPersistenceError as e:
        log_error("Snapshot persistence failed", e, modification_id=modification_id)
        raise HTTPException(
            status_code=503, detail="Legality snapshot could not be persisted"
        )

    return RecomputeResponse(
        modification_id=result.modification_id,
        snapshot=result.snapshot.to_row(),
        listings_updated=result.listings_updated,
        failed_listing_ids=result.failed_listing_ids,
    )


# ---------------------------------------------------------------------------
# Build passport readiness
# ---------------------------------------------------------------------------


@router.get("/cars/{car_id}/tuv-readiness", response_model=TuvReadiness)
async def car_tuv_readiness(car_id: str, repo: RepositoryDep):
    """Can this car go to inspection with the documented modifications?"""
    try:
        mods = await asyncio.to_thread(repo.list_car_modifications, car_id)
    except Exception as e:
        log_error("Readiness lookup failed", e, car_id=car_id)
        raise HTTPException(status_code=503, detail="Modifications unavailable")
    return compute_tuv_readiness(mods)
