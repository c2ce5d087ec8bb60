"""Recompute and persist a modification's legality snapshot.

The snapshot is a cache: a pure function of the modification, its
documents/approvals and the car's region at recompute time. Re-running the
recompute with unchanged inputs (and the same clock) writes identical
fields. Concurrent recomputes of the same modification are not locked;
the last write wins and the next recompute converges it.

Only the persistence steps raise. Matching, regional rules and citations
degrade to "no signal".
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from buildpass.core.enums import ApprovalType, Category, EvidenceType, Severity
from buildpass.core.exceptions import (
    ModificationNotFoundError,
    SnapshotPersistenceError,
)
from buildpass.core.logging import log_error, log_snapshot_written
from buildpass.db.repository import LegalityRepository
from buildpass.models.legality import Violation
from buildpass.models.modification import (
    LegalitySnapshot,
    ListingLegalityMirror,
    ModificationRecord,
)
from buildpass.models.reference import CriticalParameters, ReferenceEntry
from buildpass.services import regional_rules
from buildpass.services.catalog_matcher import merge_candidates, suggest
from buildpass.services.citations import attach_legal_references
from buildpass.services.lookup import best_effort
from buildpass.services.parameter_validator import validate_against_references
from buildpass.services.reference_data import ReferenceData
from buildpass.services.status_resolver import resolve_status
from buildpass.utils.text import normalize_approval_number

Clock = Callable[[], datetime]

MATCH_LIMIT = 3
MAX_NOTE_VIOLATIONS = 2

APPROVAL_NOTES: dict[ApprovalType, str] = {
    ApprovalType.ABG: "ABG is often vehicle/headlight specific; check Annex/vehicle list.",
    ApprovalType.TEILEGUTACHTEN: "Teilegutachten usually requires inspection and registration.",
    ApprovalType.EINZELABNAHME_21: "§21 individual approval is often required for combinations/deviations.",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SnapshotWriteResult:
    """Outcome of a recompute: what was written and which listings lagged behind."""

    modification_id: str
    snapshot: LegalitySnapshot
    violations: list[Violation] = field(default_factory=list)
    listings_updated: int = 0
    failed_listing_ids: list[str] = field(default_factory=list)


def approval_number_hints(record: ModificationRecord) -> list[str]:
    """Normalized approval numbers from approvals first, then documents. Deduplicated."""
    hints: list[str] = []
    raw = [a.approval_number for a in record.approval_documents]
    raw += [d.document_number for d in record.documents]
    for value in raw:
        hint = normalize_approval_number(value)
        if hint and hint not in hints:
            hints.append(hint)
    return hints


@dataclass
class ReferenceMatch:
    """The entry a snapshot is built from, plus the overlay row it links to.

    ``best`` supplies the approval regime and source. ``overlay`` is the
    database row resolved on its own; it is linked by id and its thresholds
    are validated even when a static catalog entry ranks first.
    """

    best: Optional[ReferenceEntry] = None
    overlay: Optional[ReferenceEntry] = None

    @property
    def reference_id(self) -> Optional[str]:
        if self.overlay is not None:
            return self.overlay.id
        return self.best.id if self.best else None

    def thresholds(self) -> list[Optional[CriticalParameters]]:
        return [
            self.overlay.critical_parameters if self.overlay else None,
            self.best.critical_parameters if self.best else None,
        ]


def find_static_reference(
    record: ModificationRecord,
    category: Optional[Category],
    reference_data: ReferenceData,
) -> tuple[Optional[ReferenceEntry], bool]:
    """Top static catalog entry: evidence approval numbers in order, then brand + part name.

    The flag is True when the entry was found by approval number.
    """
    for hint in approval_number_hints(record):
        matches = suggest(reference_data.entries, approval_number=hint, limit=1)
        if matches:
            return matches[0].item, True
    q = f"{record.brand or ''} {record.part_name}".strip()
    matches = suggest(reference_data.entries, q=q, category=category, limit=1)
    return (matches[0].item if matches else None), False


def find_overlay_reference(
    record: ModificationRecord,
    category: Optional[Category],
    repo: LegalityRepository,
) -> tuple[Optional[ReferenceEntry], bool]:
    """Top database overlay row: evidence approval numbers in order, then brand + category.

    The flag is True when the row was found by approval number. An
    unreachable overlay is no signal, never an error.
    """

    def lookup() -> tuple[Optional[ReferenceEntry], bool]:
        for hint in approval_number_hints(record):
            rows = repo.find_references_by_approval_number(
                hint, category=category, limit=MATCH_LIMIT
            )
            if rows:
                return rows[0], True
        if record.brand:
            rows = repo.find_references_by_brand(
                record.brand, category=category, limit=MATCH_LIMIT
            )
            if rows:
                return rows[0], False
        return None, False

    return best_effort("reference_overlay", lookup, (None, False)).value


def find_best_reference(
    record: ModificationRecord,
    reference_data: ReferenceData,
    repo: LegalityRepository,
) -> ReferenceMatch:
    """Resolve the static and overlay references for a modification.

    A match on an evidence approval number outranks a brand match from the
    other source; otherwise the static entry goes first.
    """
    category = Category.from_string(record.category)
    static, static_by_number = find_static_reference(record, category, reference_data)
    overlay, overlay_by_number = find_overlay_reference(record, category, repo)

    first = [static] if static else []
    second = [overlay] if overlay else []
    if overlay_by_number and not static_by_number:
        first, second = second, first
    candidates = merge_candidates(first, second)
    return ReferenceMatch(best=candidates[0] if candidates else None, overlay=overlay)


def build_notes(
    best: Optional[ReferenceEntry],
    evidence: list[EvidenceType],
    violations: list[Violation],
) -> Optional[str]:
    """Short free-text summary stored with the snapshot."""
    parts: list[str] = []
    approval = best.approval_type if best else None
    if approval and approval != ApprovalType.NONE:
        parts.append(f"Ref: {approval.value}")
        if approval in APPROVAL_NOTES:
            parts.append(APPROVAL_NOTES[approval])
    if best is None and evidence:
        parts.append(f"Evidence: {', '.join(e.value for e in evidence)}")

    notable = [v for v in violations if v.severity != Severity.INFO]
    parts.extend(f"[{v.rule_id}] {v.message_de}" for v in notable[:MAX_NOTE_VIOLATIONS])
    return " ".join(parts) or None


def assess_modification(
    record: ModificationRecord,
    reference_data: ReferenceData,
    repo: LegalityRepository,
    checked_at: datetime,
) -> tuple[LegalitySnapshot, list[Violation]]:
    """Steps b-f: match, validate, regional overlay, citations, status."""
    match = find_best_reference(record, reference_data, repo)
    best = match.best

    violations = validate_against_references(record.user_parameters, match.thresholds())

    category = Category.from_string(record.category)
    rules = best_effort(
        "regional_rules",
        lambda: regional_rules.applicable_rules(
            reference_data, record.state_id, category, checked_at.date()
        ),
        [],
    ).value
    violations.extend(regional_rules.to_violations(rules))
    violations = attach_legal_references(violations, reference_data)

    evidence = record.evidence_types()
    status = resolve_status(
        record.tuv_status,
        evidence,
        best.approval_type if best else None,
        violations,
    )

    snapshot = LegalitySnapshot(
        legality_status=status,
        legality_approval_type=best.approval_type.value if best else None,
        legality_approval_number=best.approval_number if best else None,
        legality_source_id=best.source_id if best else None,
        legality_source_url=best.source_url if best else None,
        legality_notes=build_notes(best, evidence, violations),
        legality_reference_id=match.reference_id,
        legality_last_checked_at=checked_at,
    )
    return snapshot, violations


def recompute_and_persist(
    modification_id: str,
    repo: LegalityRepository,
    reference_data: ReferenceData,
    clock: Clock = utc_now,
) -> SnapshotWriteResult:
    """
    Recompute the snapshot of one modification and fan it out to its listings.

    Raises:
        ModificationNotFoundError: no modification with this id
        SnapshotPersistenceError: loading the modification, writing its
            snapshot, or enumerating its listings failed
    """
    # a. Inputs
    try:
        record = repo.fetch_modification(modification_id)
    except Exception as e:
        raise SnapshotPersistenceError(
            f"Could not load modification: {e}", modification_id
        ) from e
    if record is None:
        raise ModificationNotFoundError(modification_id)

    state_id = best_effort(
        "car_region", lambda: repo.fetch_state_id(record.log_entry_id), None
    ).value
    record = record.model_copy(update={"state_id": state_id})

    # b-f. Assessment
    snapshot, violations = assess_modification(record, reference_data, repo, clock())

    # g. Snapshot write
    try:
        repo.update_modification_snapshot(record.id, snapshot.to_row())
    except Exception as e:
        raise SnapshotPersistenceError(
            f"Snapshot write failed: {e}", modification_id
        ) from e

    # h. Listing fan-out
    try:
        listing_ids = repo.list_listing_ids(record.id)
    except Exception as e:
        raise SnapshotPersistenceError(
            f"Listing enumeration failed: {e}", modification_id
        ) from e

    mirror_row = ListingLegalityMirror.from_snapshot(snapshot).to_row()
    result = SnapshotWriteResult(
        modification_id=record.id, snapshot=snapshot, violations=violations
    )
    for listing_id in listing_ids:
        try:
            repo.update_listing_legality(listing_id, mirror_row)
            result.listings_updated += 1
        except Exception as e:
            # Left for the next recompute to converge
            log_error(
                "Listing legality mirror update failed",
                e,
                modification_id=record.id,
                listing_id=listing_id,
            )
            result.failed_listing_ids.append(listing_id)

    log_snapshot_written(
        record.id,
        snapshot.legality_status.value,
        result.listings_updated,
        len(result.failed_listing_ids),
    )
    return result


def recompute_legality_quietly(
    modification_id: str,
    repo: LegalityRepository,
    reference_data: ReferenceData,
    clock: Clock = utc_now,
) -> Optional[SnapshotWriteResult]:
    """Recompute for callers that already committed their own write.

    Evidence-upload handlers call this after persisting the upload. A stale
    snapshot must not fail their request, so every error is logged and
    reduced to None.
    """
    try:
        return recompute_and_persist(modification_id, repo, reference_data, clock)
    except Exception as e:
        log_error("Legality recompute failed", e, modification_id=modification_id)
        return None
