"""Interactive legality check (read-only).

Matcher -> parameter validator -> regional overlay -> status resolver, plus
the advisory extras shown next to the verdict: next steps, approval-type
warnings and approved community proofs. Nothing here is persisted, and no
sub-lookup can fail the request.
"""

from datetime import date
from typing import Optional

from buildpass.core.enums import ApprovalType, Category
from buildpass.core.exceptions import InputValidationError
from buildpass.core.logging import log_legality_check
from buildpass.db.repository import LegalityRepository
from buildpass.models.legality import (
    DISCLAIMER,
    CommunityProof,
    LegalityCheckQuery,
    LegalityCheckResponse,
)
from buildpass.models.modification import UserParameters
from buildpass.models.reference import CatalogMatch, ReferenceEntry
from buildpass.services import regional_rules
from buildpass.services.catalog_matcher import (
    OverlayQuery,
    filter_compatible,
    is_vehicle_compatible,
    lookup_overlay_best_effort,
    merge_candidates,
    suggest,
)
from buildpass.services.citations import attach_legal_references
from buildpass.services.lookup import best_effort
from buildpass.services.overlay_cache import OverlayCache
from buildpass.services.parameter_validator import validate_against_references
from buildpass.services.reference_data import ReferenceData
from buildpass.services.status_resolver import resolve_status
from buildpass.utils.text import normalize_approval_number

SUGGESTION_LIMIT = 5
DB_MATCH_LIMIT = 5
COMMUNITY_PROOF_LIMIT = 3

NEXT_STEPS: dict[ApprovalType, list[str]] = {
    ApprovalType.ABE: [
        "ABE lesen und alle Auflagen einhalten.",
        "Dokument als Nachweis im Build Passport hochladen (PDF/Foto).",
    ],
    ApprovalType.ABG: [
        "ABG herunterladen, ausdrucken und ggf. mitfuehren (je nach Auflagen).",
        "Pruefen, ob dein Fahrzeug/Dein Scheinwerfertyp in der Liste/Anlage enthalten ist.",
        "Dokument als Nachweis im Build Passport hochladen (PDF/Foto).",
    ],
    ApprovalType.ECE: [
        "E-Kennzeichnung am Teil pruefen (E1/E4 usw.) und Einbauhinweise befolgen.",
        "Falls zusaetzliche Auflagen gelten: Nachweis/Dokumentation speichern.",
    ],
    ApprovalType.TEILEGUTACHTEN: [
        "Teilegutachten bereit halten (PDF/Scan).",
        "Aenderungsabnahme (z.B. TUEV/DEKRA/GTUE) und anschliessend Eintragung, falls gefordert.",
        "Nachweis (Gutachten + Eintragung) im Build Passport speichern.",
    ],
    ApprovalType.EINZELABNAHME_21: [
        "Einzelabnahme nach §21 mit Prueforganisation klaeren (Unterlagen, Messungen, Kombinationswirkung).",
        "Ergebnisdokument (Gutachten/Eintragung) als Nachweis speichern.",
    ],
    ApprovalType.EINTRAGUNGSPFLICHTIG: [
        "Ohne passende Dokumente: Eintragung/Abnahme erforderlich.",
        "Vor Umbau mit Prueforganisation abstimmen und Nachweise sammeln.",
    ],
}

DEFAULT_NEXT_STEPS = [
    "Nachweisart (ABE/ABG/Teilegutachten/ECE/§21) klaeren.",
    "Wenn du Dokumente hast: als Nachweis hochladen.",
]

APPROVAL_WARNINGS: dict[ApprovalType, str] = {
    ApprovalType.ABG: (
        "ABG ist oft fahrzeug-/scheinwerferspezifisch: vor Einbau Anlage/Fahrzeugliste pruefen."
    ),
    ApprovalType.TEILEGUTACHTEN: (
        "Teilegutachten bedeutet in der Praxis meist Abnahme/Eintragung. Plane Termin/Kosten ein."
    ),
    ApprovalType.EINZELABNAHME_21: (
        "§21 Einzelabnahme kann komplex sein (Kombinationswirkung, Messungen). Vorab abstimmen."
    ),
}


def next_steps_for(approval_type: Optional[ApprovalType]) -> list[str]:
    """Practical steps for the user, by approval regime."""
    if approval_type is None:
        return list(DEFAULT_NEXT_STEPS)
    return list(NEXT_STEPS.get(approval_type, DEFAULT_NEXT_STEPS))


def approval_warnings(approval_type: Optional[ApprovalType]) -> list[str]:
    warning = APPROVAL_WARNINGS.get(approval_type) if approval_type else None
    return [warning] if warning else []


def _filter_db_matches(
    entries: list[ReferenceEntry], query: LegalityCheckQuery
) -> list[ReferenceEntry]:
    """Overlay hits must mention the queried part and brand."""
    part = query.part_name.strip().lower()
    brand = query.brand.strip().lower()
    out = [
        e
        for e in entries
        if part in e.part_name.lower()
        and brand in e.brand.lower()
        and is_vehicle_compatible(e, query.make, query.model, query.year)
    ]
    return out[:DB_MATCH_LIMIT]


def _community_proofs(
    repo: Optional[LegalityRepository], query: LegalityCheckQuery
) -> list[CommunityProof]:
    if repo is None:
        return []
    return best_effort(
        "community_proofs",
        lambda: repo.find_community_proofs(
            query.brand, query.part_name, limit=COMMUNITY_PROOF_LIMIT
        ),
        [],
    ).value


def run_legality_check(
    query: LegalityCheckQuery,
    user_parameters: UserParameters,
    reference_data: ReferenceData,
    repo: Optional[LegalityRepository] = None,
    overlay_cache: Optional[OverlayCache] = None,
    today: Optional[date] = None,
) -> LegalityCheckResponse:
    """
    Assess a described part without persisting anything.

    Raises:
        InputValidationError: brand or partName missing/blank
    """
    if not query.brand.strip():
        raise InputValidationError("Missing parameters", field="brand")
    if not query.part_name.strip():
        raise InputValidationError("Missing parameters", field="partName")

    category = Category.from_string(query.category)
    approval_hint = normalize_approval_number(query.approval_number)

    # 1. Static catalog, then conservative compatibility filter
    suggestions = suggest(
        reference_data.entries,
        q=f"{query.brand} {query.part_name}".strip(),
        category=category,
        approval_number=approval_hint,
        limit=SUGGESTION_LIMIT,
    )
    suggestions = filter_compatible(suggestions, query.make, query.model, query.year)

    # 2. Database overlay
    overlay_query = OverlayQuery(
        brand=query.brand.strip(), category=category, approval_number=approval_hint
    )
    if overlay_cache is not None and repo is not None:
        overlay = overlay_cache.lookup(repo, overlay_query)
    else:
        overlay = lookup_overlay_best_effort(repo, overlay_query)
    db_matches = _filter_db_matches(overlay.value, query)

    candidates = merge_candidates([m.item for m in suggestions], db_matches)
    best = candidates[0] if candidates else None
    approval_type = best.approval_type if best else ApprovalType.NONE

    # 3. Thresholds: the first database match is more specific than the catalog
    violations = validate_against_references(
        user_parameters,
        [
            db_matches[0].critical_parameters if db_matches else None,
            best.critical_parameters if best else None,
        ],
    )

    # 4. Regional overlay
    rules = best_effort(
        "regional_rules",
        lambda: regional_rules.applicable_rules(
            reference_data, query.state_id, category, today
        ),
        [],
    ).value
    violations.extend(regional_rules.to_violations(rules))
    warnings = regional_rules.to_warnings(rules)
    violations = attach_legal_references(violations, reference_data)

    status = resolve_status(
        tuv_status=None,
        evidence=[],
        approval_type=approval_type,
        violations=violations,
        assume_matching_document=True,
    )
    warnings.extend(approval_warnings(approval_type))

    log_legality_check(
        query.brand, query.part_name, status.value, approval_type.value, len(violations)
    )

    return LegalityCheckResponse(
        query=query,
        best_match=CatalogMatch.of(best) if best else None,
        suggestions=suggestions,
        db_matches=db_matches,
        community_proofs=_community_proofs(repo, query),
        approval_type=approval_type.value,
        legality_status=status,
        violations=violations,
        user_parameters=None if user_parameters.is_empty() else user_parameters.to_public(),
        next_steps=next_steps_for(approval_type),
        warnings=warnings,
        disclaimer=DISCLAIMER,
    )
