"""Turn flat reference rows (CSV exports, verified approval lists) into ReferenceEntry objects.

Rows are plain dicts so the same path serves pandas ``iterrows()`` output and
JSON records. Upserts are keyed on the entry fingerprint, so re-importing an
unchanged file is a no-op on the database side.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from buildpass.core.enums import ApprovalType, Category
from buildpass.db.repository import LegalityRepository
from buildpass.models.reference import CriticalParameters, ReferenceEntry
from buildpass.utils.converters import optional_str, parse_number

_MM = re.compile(r"(\d{1,4})\s*mm", re.IGNORECASE)
_DB = re.compile(r"(\d{2,3})\s*dB", re.IGNORECASE)

RESTRICTION_SEPARATOR = ";"
_TRUE_STRINGS = {"1", "true", "yes", "ja", "y"}


@dataclass
class ImportReport:
    entries: list[ReferenceEntry] = field(default_factory=list)
    skipped: int = 0
    upserted: int = 0


def _mm_from_restrictions(restrictions: list[str], label: str) -> Optional[float]:
    for text in restrictions:
        if label.lower() not in text.lower():
            continue
        match = _MM.search(text)
        if match:
            return float(match.group(1))
    return None


def _db_from_restrictions(restrictions: list[str]) -> Optional[float]:
    for text in restrictions:
        match = _DB.search(text)
        if match:
            return float(match.group(1))
    return None


def _split_restrictions(value: Any) -> list[str]:
    if isinstance(value, list):
        items = value
    else:
        items = str(value or "").split(RESTRICTION_SEPARATOR)
    return [str(r).strip() for r in items if str(r).strip()]


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUE_STRINGS


def critical_parameters_from_row(
    row: Mapping[str, Any], category: Category, restrictions: list[str]
) -> Optional[CriticalParameters]:
    """Explicit threshold columns win; otherwise thresholds stated in restriction text.

    "Mindestbodenfreiheit 100 mm" gives the loaded clearance. Brakes read the
    wheel clearance ("Radfreigang") and exhausts read a dB limit.
    """
    min_clearance = parse_number(row.get("min_clearance_loaded"))
    if min_clearance is None:
        min_clearance = _mm_from_restrictions(restrictions, "mindestbodenfreiheit")

    min_wheel_clearance = parse_number(row.get("min_wheel_clearance"))
    if min_wheel_clearance is None and category == Category.BRAKES:
        min_wheel_clearance = _mm_from_restrictions(restrictions, "radfreigang")

    max_noise = parse_number(row.get("max_noise_level"))
    if max_noise is None and category == Category.EXHAUST:
        max_noise = _db_from_restrictions(restrictions)

    params = CriticalParameters(
        min_clearance_loaded=min_clearance,
        et_range=[row.get("et_min"), row.get("et_max")],
        max_noise_level=max_noise,
        min_wheel_clearance=min_wheel_clearance,
    )
    return None if params.is_empty() else params


def row_to_entry(row: Mapping[str, Any]) -> Optional[ReferenceEntry]:
    """Build an entry from a flat row, or None if a required column is missing.

    Required: brand, part name (``part_name`` or ``model``), a known category
    and a known approval type.
    """
    brand = optional_str(row.get("brand"))
    part_name = optional_str(row.get("part_name")) or optional_str(row.get("model"))
    raw_category = (optional_str(row.get("category")) or "").lower()
    raw_approval = (optional_str(row.get("approval_type")) or "").upper()

    if not brand or not part_name:
        return None
    try:
        category = Category(raw_category)
        approval_type = ApprovalType(raw_approval)
    except ValueError:
        return None

    restrictions = _split_restrictions(row.get("restrictions"))
    entry = ReferenceEntry(
        brand=brand,
        part_name=part_name,
        category=category,
        subcategory=row.get("subcategory"),
        approval_type=approval_type,
        approval_number=row.get("approval_number"),
        source_id=optional_str(row.get("source_id")) or "manufacturer",
        source_url=row.get("source_url"),
        vehicle_compatibility=row.get("vehicle_compatibility"),
        restrictions=restrictions,
        critical_parameters=critical_parameters_from_row(row, category, restrictions),
        valid_from=row.get("valid_from"),
        valid_until=row.get("valid_until"),
        is_synthetic=_as_bool(row.get("is_synthetic")),
        notes_de=row.get("notes_de"),
        notes_en=row.get("notes_en"),
    )
    return entry.model_copy(update={"fingerprint": entry.identity})


def parse_rows(rows: Iterable[Mapping[str, Any]]) -> ImportReport:
    """Parse rows, deduplicating by fingerprint (last row wins)."""
    report = ImportReport()
    by_fingerprint: dict[str, ReferenceEntry] = {}
    for row in rows:
        entry = row_to_entry(row)
        if entry is None:
            report.skipped += 1
            continue
        by_fingerprint[entry.identity] = entry
    report.entries = list(by_fingerprint.values())
    return report


def import_rows(
    rows: Iterable[Mapping[str, Any]],
    repo: LegalityRepository,
    batch_size: int = 500,
) -> ImportReport:
    """Parse and upsert rows into the reference overlay."""
    report = parse_rows(rows)
    report.upserted = repo.upsert_reference_entries(report.entries, batch_size=batch_size)
    return report
