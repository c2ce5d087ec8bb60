"""Critical parameter checks: user-declared values vs. reference thresholds."""

from typing import Iterable

from buildpass.core.enums import TRACK_WIDTH_CHANGE_LIMIT_MM, Severity
from buildpass.models.legality import Violation
from buildpass.models.modification import UserParameters
from buildpass.models.reference import CriticalParameters


def _fmt(value: float) -> str:
    """Render a number without a trailing .0 for whole values."""
    return str(int(value)) if float(value).is_integer() else str(value)


def _mm(value: float) -> int:
    # Half-up rounding, matching how millimetre values are shown in the UI
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def check_min_clearance(
    params: UserParameters, critical: CriticalParameters | None
) -> Violation | None:
    clearance = params.clearance_loaded
    minimum = critical.min_clearance_loaded if critical else None
    if clearance is None or minimum is None or clearance >= minimum:
        return None
    return Violation(
        rule_id="min_clearance",
        severity=Severity.CRITICAL,
        message_de=f"Bodenfreiheit {_mm(clearance)}mm < {_mm(minimum)}mm (beladen)",
        message_en=f"Ground clearance {_mm(clearance)}mm < {_mm(minimum)}mm (loaded)",
    )


def check_track_width(params: UserParameters) -> Violation | None:
    """Per-axle track change above the policy limit. No reference threshold involved."""
    change = params.track_width_change
    if change is None or abs(change) <= TRACK_WIDTH_CHANGE_LIMIT_MM:
        return None
    shown = f"{'+' if change > 0 else ''}{_mm(change)}"
    limit = TRACK_WIDTH_CHANGE_LIMIT_MM
    return Violation(
        rule_id="track_width",
        severity=Severity.WARNING,
        message_de=(
            f"Spurveraenderung {shown}mm > {limit}mm je Achse: "
            "Eintragung kann erforderlich sein"
        ),
        message_en=(
            f"Track change {shown}mm > {limit}mm per axle: "
            "registration may be required"
        ),
    )


def check_et_range(
    params: UserParameters, critical: CriticalParameters | None
) -> Violation | None:
    et = params.et
    et_range = critical.et_range if critical else None
    if et is None or et_range is None:
        return None
    low, high = et_range
    if low <= et <= high:
        return None
    return Violation(
        rule_id="et_range",
        severity=Severity.WARNING,
        message_de=f"ET {_fmt(et)} ausserhalb Referenz ({_fmt(low)}-{_fmt(high)})",
        message_en=f"ET {_fmt(et)} outside reference ({_fmt(low)}-{_fmt(high)})",
    )


def check_noise(
    params: UserParameters, critical: CriticalParameters | None
) -> Violation | None:
    noise = params.noise_level_db
    maximum = critical.max_noise_level if critical else None
    if noise is None or maximum is None or noise <= maximum:
        return None
    return Violation(
        rule_id="noise",
        severity=Severity.CRITICAL,
        message_de=f"Geraeusch {_fmt(noise)} dB > {_fmt(maximum)} dB (Referenz)",
        message_en=f"Noise {_fmt(noise)} dB > {_fmt(maximum)} dB (reference)",
    )


def validate_parameters(
    params: UserParameters | None,
    critical: CriticalParameters | None,
) -> list[Violation]:
    """
    Compare user parameters against a matched entry's critical thresholds.

    A rule fires only when both the user value and its threshold are present.
    Output order is fixed: min_clearance, track_width, et_range, noise.

    Returns:
        List of violations (possibly empty)
    """
    if params is None or params.is_empty():
        return []

    checks = (
        check_min_clearance(params, critical),
        check_track_width(params),
        check_et_range(params, critical),
        check_noise(params, critical),
    )
    return [v for v in checks if v is not None]


RULE_ORDER = ("min_clearance", "track_width", "et_range", "noise")


def validate_against_references(
    params: UserParameters | None,
    thresholds: Iterable[CriticalParameters | None],
) -> list[Violation]:
    """
    Validate against several threshold sets, most specific first.

    A database overlay row and a static catalog entry can both describe the
    part with different limits. Each rule is reported at most once: the first
    threshold set that trips it wins. Output order matches validate_parameters.
    """
    sets = [c for c in thresholds if c is not None and not c.is_empty()] or [None]
    by_rule: dict[str, Violation] = {}
    for critical in sets:
        for violation in validate_parameters(params, critical):
            by_rule.setdefault(violation.rule_id, violation)
    return [by_rule[rule] for rule in RULE_ORDER if rule in by_rule]
