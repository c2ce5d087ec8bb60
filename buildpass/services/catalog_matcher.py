"""Catalog matching: rank reference entries against a free-text part query.

Two sources feed the candidate list:
- the static catalog (bundled, immutable), ranked in memory
- the database overlay (imports, reviewed contributions), queried per request

Ranking must be a strict total order so that identical inputs against an
unchanged catalog always yield the same list; snapshots depend on it.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from buildpass.core.enums import DEFAULT_MATCH_LIMIT, MAX_MATCH_LIMIT, Category
from buildpass.db.repository import LegalityRepository
from buildpass.models.reference import CatalogMatch, ReferenceEntry
from buildpass.services.lookup import LookupResult, best_effort
from buildpass.utils.text import normalize_approval_number, normalize_text


def clamp_limit(limit: Optional[int]) -> int:
    """Clamp a requested result count into 1..25 (default 10)."""
    n = DEFAULT_MATCH_LIMIT if limit is None else int(limit)
    return max(1, min(MAX_MATCH_LIMIT, n))


def _haystack(entry: ReferenceEntry) -> str:
    return normalize_text(
        f"{entry.brand} {entry.part_name} {entry.approval_number or ''} "
        f"{entry.vehicle_compatibility or ''}"
    )


def _rank_key(entry: ReferenceEntry, q: str) -> tuple:
    label = entry.value
    norm_label = normalize_text(label)
    if q:
        prefix = 0 if norm_label.startswith(q) else 1
        index = norm_label.find(q)
        index = index if index >= 0 else len(norm_label)
    else:
        prefix, index = 1, 0
    return (prefix, index, len(norm_label), norm_label, label, entry.identity)


def suggest(
    entries: Iterable[ReferenceEntry],
    q: str = "",
    category: Optional[Category] = None,
    subcategory: Optional[str] = None,
    approval_number: Optional[str] = None,
    limit: Optional[int] = DEFAULT_MATCH_LIMIT,
) -> list[CatalogMatch]:
    """Rank static catalog entries for a query.

    Filters (all optional): category, subcategory, approval number substring,
    and the query substring over "brand model approvalNumber compatibility".

    Ranking: label prefix match first, then leftmost match position, then
    shorter label, then normalized alphabetical, then raw label, then
    fingerprint as the final tie-break.
    """
    query = normalize_text(q)
    candidates = list(entries)

    if category is not None:
        candidates = [e for e in candidates if e.category == category]
    if subcategory:
        sub = subcategory.strip()
        candidates = [e for e in candidates if e.subcategory == sub]
    if approval_number:
        needle = normalize_text(normalize_approval_number(approval_number))
        if needle:
            candidates = [
                e for e in candidates if needle in normalize_text(e.approval_number)
            ]
    if query:
        candidates = [e for e in candidates if query in _haystack(e)]

    candidates.sort(key=lambda e: _rank_key(e, query))
    return [CatalogMatch.of(e) for e in candidates[: clamp_limit(limit)]]


def is_vehicle_compatible(
    entry: ReferenceEntry,
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[str] = None,
) -> bool:
    """Conservative compatibility filter.

    An entry without a compatibility string is never excluded. A make or
    model that does not appear in the string excludes the entry. The year
    is deliberately ignored: compatibility strings rarely list every year.
    """
    compat = normalize_text(entry.vehicle_compatibility)
    if not compat:
        return True
    mk = normalize_text(make)
    md = normalize_text(model)
    if mk and mk not in compat:
        return False
    if md and md not in compat:
        return False
    return True


def filter_compatible(
    matches: Sequence[CatalogMatch],
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[str] = None,
) -> list[CatalogMatch]:
    return [m for m in matches if is_vehicle_compatible(m.item, make, model, year)]


def merge_candidates(
    static: Sequence[ReferenceEntry], overlay: Sequence[ReferenceEntry]
) -> list[ReferenceEntry]:
    """Combine static and overlay candidates.

    Deduplicated by fingerprint (first occurrence wins), then stably sorted
    so primary-sourced entries precede synthetic ones. Within each group the
    static ranking comes first, then the overlay's recency order: the bundled
    catalog is the current curated release, so its entries count as newer
    than any overlay row whatever that row's ``updated_at``.
    """
    seen: set[str] = set()
    merged: list[ReferenceEntry] = []
    for entry in [*static, *overlay]:
        key = entry.identity
        if key in seen:
            continue
        seen.add(key)
        merged.append(entry)
    merged.sort(key=lambda e: e.is_synthetic)
    return merged


@dataclass(frozen=True)
class OverlayQuery:
    """Database overlay lookup parameters (hashable, used as a cache key)."""

    brand: Optional[str] = None
    category: Optional[Category] = None
    approval_number: Optional[str] = None
    limit: int = 10


def lookup_overlay(
    repo: LegalityRepository, query: OverlayQuery
) -> list[ReferenceEntry]:
    """Overlay entries: approval-number containment first, then brand + category.

    Each source is already ordered non-synthetic first, newest first. Results
    are deduplicated by database id (or fingerprint) keeping first occurrence.
    """
    hits: list[ReferenceEntry] = []
    if query.approval_number:
        hits.extend(
            repo.find_references_by_approval_number(
                query.approval_number, category=query.category, limit=query.limit
            )
        )
    if query.brand:
        hits.extend(
            repo.find_references_by_brand(
                query.brand, category=query.category, limit=query.limit
            )
        )

    seen: set[str] = set()
    out: list[ReferenceEntry] = []
    for entry in hits:
        key = entry.id or entry.identity
        if key in seen:
            continue
        seen.add(key)
        out.append(entry)
    return out


def lookup_overlay_best_effort(
    repo: LegalityRepository | None, query: OverlayQuery
) -> LookupResult[list[ReferenceEntry]]:
    if repo is None:
        return LookupResult.success([])
    return best_effort("reference_overlay", lambda: lookup_overlay(repo, query), [])
