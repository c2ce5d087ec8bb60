"""TÜV readiness of a build: can the car go to inspection as documented?"""

from enum import Enum
from typing import Sequence

from buildpass.core.enums import EvidenceType, TuvStatus
from buildpass.models.legality import ReadinessSummary, TuvReadiness
from buildpass.models.modification import ModificationRecord

# Evidence that counts as an approval for a yellow modification. ECE marks
# alone are not accepted here.
READINESS_APPROVALS = frozenset(
    {
        EvidenceType.ABE,
        EvidenceType.ABG,
        EvidenceType.EBE,
        EvidenceType.TEILEGUTACHTEN,
        EvidenceType.EINZELABNAHME,
        EvidenceType.EINTRAGUNG,
    }
)

ACTION_MISSING_APPROVAL = (
    "Fuege ABE/EBE/Teilegutachten als Nachweis hinzu (mind. 1 pro gelbe Modifikation)."
)
ACTION_RACING_PART = (
    "Racing-Teile (rot) verhindern TUEV-Ready. Dokumentiere Ausbau oder Einzelabnahme/Eintragung."
)
ACTION_NO_MODS = "Noch keine Modifikationen dokumentiert."
ACTION_ALL_DOCUMENTED = "Alle dokumentierten Modifikationen haben Nachweise."


class ReadinessStatus(str, Enum):
    READY = "READY"
    NEEDS_DOCS = "NEEDS_DOCS"
    NOT_READY = "NOT_READY"
    UNKNOWN = "UNKNOWN"


def has_approval(mod: ModificationRecord) -> bool:
    return any(e in READINESS_APPROVALS for e in mod.evidence_types())


def compute_tuv_readiness(modifications: Sequence[ModificationRecord]) -> TuvReadiness:
    """
    Summarize a car's modifications into a readiness verdict.

    Scoring:
        no modifications   -> UNKNOWN, 0
        any red            -> NOT_READY, max(0, 60 - 20 * red)
        yellow w/o proof   -> NEEDS_DOCS, max(0, 80 - 15 * missing)
        otherwise          -> READY, 95
    """
    summary = ReadinessSummary(total_mods=len(modifications))
    actions: list[str] = []

    for mod in modifications:
        if mod.tuv_status == TuvStatus.GREEN_REGISTERED:
            summary.green += 1
        elif mod.tuv_status == TuvStatus.YELLOW_ABE:
            summary.yellow += 1
        elif mod.tuv_status == TuvStatus.RED_RACING:
            summary.red += 1

        approved = has_approval(mod)
        if approved:
            summary.with_approvals += 1

        if mod.tuv_status == TuvStatus.YELLOW_ABE and not approved:
            summary.missing_approvals += 1
            actions.append(ACTION_MISSING_APPROVAL)
        if mod.tuv_status == TuvStatus.RED_RACING:
            actions.append(ACTION_RACING_PART)

    unique_actions = list(dict.fromkeys(actions))

    if summary.total_mods == 0:
        return TuvReadiness(
            status=ReadinessStatus.UNKNOWN.value,
            score=0,
            summary=summary,
            actions=[ACTION_NO_MODS],
        )
    if summary.red > 0:
        return TuvReadiness(
            status=ReadinessStatus.NOT_READY.value,
            score=max(0, 60 - 20 * summary.red),
            summary=summary,
            actions=unique_actions,
        )
    if summary.missing_approvals > 0:
        return TuvReadiness(
            status=ReadinessStatus.NEEDS_DOCS.value,
            score=max(0, 80 - 15 * summary.missing_approvals),
            summary=summary,
            actions=unique_actions,
        )
    return TuvReadiness(
        status=ReadinessStatus.READY.value,
        score=95,
        summary=summary,
        actions=unique_actions or [ACTION_ALL_DOCUMENTED],
    )
