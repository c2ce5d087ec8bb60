"""Read-only reference dictionaries: legality catalog, regional rules, legal framework.

Loaded once at startup from the bundled JSON documents (produced by the
reference build tooling) and injected into the engine. Instances are never
mutated after construction, so one instance is shared across requests
without locking.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import ValidationError

from buildpass.core.exceptions import ReferenceDataError
from buildpass.models.legality import LegalReference, RegionalRule
from buildpass.models.reference import CriticalParameters, ReferenceEntry

logger = logging.getLogger(__name__)

CATALOG_FILE = "tuning_legality_de.json"
REGIONAL_RULES_FILE = "germany_regional_rules.json"
LEGAL_FRAMEWORK_FILE = "german_legal_framework.json"

# regional_<id> violations share one citation set
REGIONAL_RULE_KEY = "regional"


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _catalog_item_to_entry(
    item: dict[str, Any], category_id: str, subcategory_id: str
) -> ReferenceEntry:
    # No database id: snapshots link reference ids of overlay rows only
    params = item.get("parameters")
    critical = (
        CriticalParameters.model_validate(params) if isinstance(params, dict) else None
    )
    if critical is not None and critical.is_empty():
        critical = None
    return ReferenceEntry(
        brand=str(item.get("brand") or "").strip(),
        part_name=str(item.get("model") or item.get("partName") or "").strip(),
        category=category_id,
        subcategory=subcategory_id,
        approval_type=item.get("approvalType"),
        approval_number=item.get("approvalNumber"),
        source_id=str(item.get("sourceId") or "manufacturer"),
        source_url=item.get("sourceUrl"),
        vehicle_compatibility=item.get("vehicleCompatibility"),
        restrictions=item.get("restrictions"),
        critical_parameters=critical,
        valid_from=item.get("validFrom"),
        valid_until=item.get("validUntil"),
        is_synthetic=bool(item.get("isSynthetic", False)),
        notes_de=item.get("notesDe"),
        notes_en=item.get("notesEn"),
    )


@dataclass(frozen=True)
class ReferenceData:
    """Immutable, process-wide reference repository."""

    entries: tuple[ReferenceEntry, ...]
    regional_rules: tuple[RegionalRule, ...]
    categories: tuple[dict[str, Any], ...] = ()
    catalog_version: str | None = None
    _laws: Mapping[str, dict[str, Any]] = field(default_factory=dict, repr=False)
    _refs_by_rule: Mapping[str, tuple[dict[str, Any], ...]] = field(
        default_factory=dict, repr=False
    )

    @classmethod
    def from_documents(
        cls,
        catalog: dict[str, Any],
        regional_rules: dict[str, Any],
        legal_framework: dict[str, Any],
    ) -> "ReferenceData":
        """Build from already-parsed JSON documents."""
        entries: list[ReferenceEntry] = []
        outline: list[dict[str, Any]] = []
        skipped = 0

        for cat in _as_list(catalog.get("categories")):
            cat_id = str(cat.get("id") or "").strip()
            subs_outline = []
            for sub in _as_list(cat.get("subcategories")):
                sub_id = str(sub.get("id") or "").strip()
                subs_outline.append(
                    {
                        "id": sub_id,
                        "name": sub.get("name"),
                        "nameDe": sub.get("nameDe"),
                        "approvalTypes": _as_list(sub.get("approvalTypes")),
                        "criticalParameters": _as_list(sub.get("criticalParameters")),
                    }
                )
                for item in _as_list(sub.get("items")):
                    if not isinstance(item, dict):
                        skipped += 1
                        continue
                    try:
                        entry = _catalog_item_to_entry(item, cat_id, sub_id)
                    except ValidationError:
                        skipped += 1
                        continue
                    if not entry.brand or not entry.part_name:
                        skipped += 1
                        continue
                    entries.append(entry)
            outline.append(
                {
                    "id": cat_id,
                    "name": cat.get("name"),
                    "nameDe": cat.get("nameDe"),
                    "subcategories": subs_outline,
                }
            )

        rules: list[RegionalRule] = []
        for raw in _as_list(regional_rules.get("rules")):
            try:
                rules.append(RegionalRule.model_validate(raw))
            except ValidationError:
                skipped += 1

        laws = {
            str(law["id"]): law
            for law in _as_list(legal_framework.get("laws"))
            if isinstance(law, dict) and isinstance(law.get("id"), str)
        }
        refs_by_rule: dict[str, tuple[dict[str, Any], ...]] = {}
        for rule in _as_list(legal_framework.get("ruleIdReferences")):
            if not isinstance(rule, dict) or not isinstance(rule.get("ruleId"), str):
                continue
            refs = tuple(
                r
                for r in _as_list(rule.get("refs"))
                if isinstance(r, dict)
                and isinstance(r.get("lawId"), str)
                and isinstance(r.get("section"), str)
            )
            refs_by_rule[rule["ruleId"]] = refs

        if skipped:
            logger.warning("Skipped %d malformed reference records", skipped)

        return cls(
            entries=tuple(entries),
            regional_rules=tuple(rules),
            categories=tuple(outline),
            catalog_version=catalog.get("version"),
            _laws=MappingProxyType(laws),
            _refs_by_rule=MappingProxyType(refs_by_rule),
        )

    @classmethod
    def load(cls, directory: Path) -> "ReferenceData":
        """Load the three bundled documents from ``directory``."""
        docs = []
        for name in (CATALOG_FILE, REGIONAL_RULES_FILE, LEGAL_FRAMEWORK_FILE):
            path = Path(directory) / name
            try:
                with open(path, encoding="utf-8") as f:
                    docs.append(json.load(f))
            except (OSError, ValueError) as e:
                raise ReferenceDataError(f"Cannot load {path}: {e}") from e
        data = cls.from_documents(*docs)
        logger.info(
            "Reference data loaded: %d catalog entries, %d regional rules (catalog %s)",
            len(data.entries),
            len(data.regional_rules),
            data.catalog_version,
        )
        return data

    def legal_references_for(self, rule_id: str) -> list[LegalReference]:
        """Resolve the legal citations attached to a violation rule id."""
        key = (rule_id or "").strip()
        if not key:
            return []
        if key.startswith("regional_"):
            key = REGIONAL_RULE_KEY

        out: list[LegalReference] = []
        for ref in self._refs_by_rule.get(key, ()):
            law = self._laws.get(ref["lawId"])
            if not law:
                continue
            out.append(
                LegalReference(
                    law_id=law["id"],
                    law_name_de=law.get("nameDe", ""),
                    law_name_en=law.get("nameEn", ""),
                    law_url=law.get("url", ""),
                    section=ref["section"],
                    notes_de=ref.get("notesDe"),
                    notes_en=ref.get("notesEn"),
                )
            )
        return out
