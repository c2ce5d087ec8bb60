"""Legality status decision procedure.

Merges the user-declared TÜV status, attached evidence, the matched
reference's approval type and all violations into one LegalityStatus.

Decision order (first applicable wins):
1. GREEN_REGISTERED                         -> FULLY_LEGAL
2. RED_RACING                               -> ILLEGAL
3. EINTRAGUNG / EINZELABNAHME evidence      -> FULLY_LEGAL
4. no matched reference, or type NONE       -> UNKNOWN
5. TEILEGUTACHTEN                           -> REGISTRATION_REQUIRED
6. EINZELABNAHME_21 / EINTRAGUNGSPFLICHTIG  -> INSPECTION_REQUIRED
7. ABE / ABG / ECE / EBE                    -> FULLY_LEGAL with a document of
                                               that exact type, else UNKNOWN
8. anything else                            -> UNKNOWN

Any critical violation then forces ILLEGAL, whatever the steps above
returned. Paperwork does not outweigh a measured clearance or noise value.
"""

from typing import Iterable, Optional, Sequence

from buildpass.core.enums import (
    DOCUMENT_BACKED_APPROVALS,
    STRONG_EVIDENCE_TYPES,
    ApprovalType,
    EvidenceType,
    LegalityStatus,
    TuvStatus,
)
from buildpass.models.legality import Violation


def has_critical(violations: Iterable[Violation]) -> bool:
    return any(v.is_critical for v in violations)


def status_from_evidence(
    tuv_status: Optional[TuvStatus],
    evidence: Sequence[EvidenceType],
    approval_type: Optional[ApprovalType],
    assume_matching_document: bool = False,
) -> LegalityStatus:
    """Steps 1-8, without the critical-violation override.

    ``assume_matching_document`` is used by the interactive check, which
    describes a part rather than a logged modification: there is no upload
    to inspect, so the catalog approval is taken as the paperwork in hand.
    """
    if tuv_status == TuvStatus.GREEN_REGISTERED:
        return LegalityStatus.FULLY_LEGAL
    if tuv_status == TuvStatus.RED_RACING:
        return LegalityStatus.ILLEGAL

    if any(strong in evidence for strong in STRONG_EVIDENCE_TYPES):
        return LegalityStatus.FULLY_LEGAL

    if approval_type is None or approval_type == ApprovalType.NONE:
        return LegalityStatus.UNKNOWN
    if approval_type == ApprovalType.TEILEGUTACHTEN:
        return LegalityStatus.REGISTRATION_REQUIRED
    if approval_type in (ApprovalType.EINZELABNAHME_21, ApprovalType.EINTRAGUNGSPFLICHTIG):
        return LegalityStatus.INSPECTION_REQUIRED
    if approval_type in DOCUMENT_BACKED_APPROVALS:
        # Catalog says the approval exists; the user must still hold it
        if assume_matching_document or EvidenceType(approval_type.value) in evidence:
            return LegalityStatus.FULLY_LEGAL
        return LegalityStatus.UNKNOWN
    return LegalityStatus.UNKNOWN


def resolve_status(
    tuv_status: Optional[TuvStatus],
    evidence: Sequence[EvidenceType],
    approval_type: Optional[ApprovalType],
    violations: Iterable[Violation],
    assume_matching_document: bool = False,
) -> LegalityStatus:
    """Final status including the absolute critical-violation override."""
    if has_critical(violations):
        return LegalityStatus.ILLEGAL
    return status_from_evidence(
        tuv_status, evidence, approval_type, assume_matching_document
    )
