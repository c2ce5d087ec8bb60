"""Attach legal citations to violations by rule id."""

from typing import Sequence

from buildpass.models.legality import Violation
from buildpass.services.lookup import best_effort
from buildpass.services.reference_data import ReferenceData


def attach_legal_references(
    violations: Sequence[Violation], reference_data: ReferenceData
) -> list[Violation]:
    """Return copies of ``violations`` with citations where the framework has any.

    A failed lookup leaves that violation without citations.
    """
    out: list[Violation] = []
    for violation in violations:
        refs = best_effort(
            "legal_references",
            lambda rule_id=violation.rule_id: reference_data.legal_references_for(rule_id),
            [],
        ).value
        out.append(
            violation.model_copy(update={"legal_references": refs}) if refs else violation
        )
    return out
