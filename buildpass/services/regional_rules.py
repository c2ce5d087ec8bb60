"""Federal-state rule overlay for the legality check."""

from datetime import date
from typing import Iterable, Optional

from buildpass.core.enums import Category, Severity
from buildpass.models.legality import RegionalRule, Violation
from buildpass.services.reference_data import ReferenceData


def _is_expired(rule: RegionalRule, today: date) -> bool:
    return rule.valid_until is not None and rule.valid_until < today


def rules_for_state(
    reference_data: ReferenceData,
    state_id: Optional[str],
    categories: Optional[Iterable[str]] = None,
    today: Optional[date] = None,
) -> list[RegionalRule]:
    """
    Rules of one state, optionally narrowed to categories.

    No categories means every category. Expired rules are skipped and rules
    are deduplicated by id, first occurrence wins.
    """
    state = (state_id or "").strip().upper()
    if not state:
        return []
    today = today or date.today()
    wanted = {c.strip().lower() for c in categories or [] if c and c.strip()}

    seen: set[str] = set()
    out: list[RegionalRule] = []
    for rule in reference_data.regional_rules:
        if rule.state_id.upper() != state or rule.id in seen:
            continue
        if wanted and not wanted & {c.lower() for c in rule.affected_categories}:
            continue
        if _is_expired(rule, today):
            continue
        seen.add(rule.id)
        out.append(rule)
    return out


def applicable_rules(
    reference_data: ReferenceData,
    state_id: Optional[str],
    category: Optional[Category],
    today: Optional[date] = None,
) -> list[RegionalRule]:
    """Rules for a modification. Unknown state or category yields none."""
    if category is None or not (state_id or "").strip():
        return []
    return rules_for_state(reference_data, state_id, [category.value], today)


def to_violations(rules: Iterable[RegionalRule]) -> list[Violation]:
    """Critical rules escalate to ``regional_<id>`` violations."""
    return [
        Violation(
            rule_id=f"regional_{rule.id}",
            severity=Severity.CRITICAL,
            message_de=rule.warning_text,
            message_en=rule.warning_text_en,
        )
        for rule in rules
        if rule.severity == Severity.CRITICAL
    ]


def to_warnings(rules: Iterable[RegionalRule]) -> list[str]:
    """Every matched rule, whatever its severity, as a display string."""
    return [rule.warning_text for rule in rules]
