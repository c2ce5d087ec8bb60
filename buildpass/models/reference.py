import hashlib
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from buildpass.core.enums import ApprovalType, Category
from buildpass.utils.converters import optional_str, parse_number
from buildpass.utils.text import normalize_text


class CriticalParameters(BaseModel):
    """Structured numeric thresholds of a reference entry. Every field is optional."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    min_clearance_loaded: Optional[float] = None
    et_range: Optional[tuple[float, float]] = None
    max_noise_level: Optional[float] = None
    min_wheel_clearance: Optional[float] = None

    @field_validator(
        "min_clearance_loaded", "max_noise_level", "min_wheel_clearance", mode="before"
    )
    @classmethod
    def parse_threshold(cls, v: Any) -> Optional[float]:
        return parse_number(v)

    @field_validator("et_range", mode="before")
    @classmethod
    def parse_et_range(cls, v: Any) -> Optional[tuple[float, float]]:
        if not isinstance(v, (list, tuple)) or len(v) < 2:
            return None
        low, high = parse_number(v[0]), parse_number(v[1])
        if low is None or high is None:
            return None
        return (low, high)

    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None for name in type(self).model_fields
        )


def reference_fingerprint(
    category: Optional[str],
    subcategory: Optional[str],
    brand: str,
    part_name: str,
    approval_type: str,
    approval_number: Optional[str],
    source_id: str,
    source_url: Optional[str],
) -> str:
    """Stable identity of a reference entry, used as the upsert key for imports."""
    parts = [
        category or "",
        subcategory or "",
        brand,
        part_name,
        approval_type,
        approval_number or "",
        source_id,
        source_url or "",
    ]
    canonical = "|".join(normalize_text(p) for p in parts)
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()
    return f"ref:{digest[:24]}"


class ReferenceEntry(BaseModel):
    """A known legal/technical record for a part or approval."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    brand: str
    part_name: str
    category: Optional[Category] = None
    subcategory: Optional[str] = None
    approval_type: ApprovalType = ApprovalType.NONE
    approval_number: Optional[str] = None
    source_id: str = "manufacturer"
    source_url: Optional[str] = None
    vehicle_compatibility: Optional[str] = None
    restrictions: list[str] = Field(default_factory=list)
    critical_parameters: Optional[CriticalParameters] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    is_synthetic: bool = False
    updated_at: Optional[datetime] = None
    notes_de: Optional[str] = None
    notes_en: Optional[str] = None
    fingerprint: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def parse_category(cls, v: Any) -> Optional[Category]:
        if v is None or v == "":
            return None
        try:
            return Category(str(v).strip().lower())
        except ValueError:
            return Category.OTHER

    @field_validator("approval_type", mode="before")
    @classmethod
    def parse_approval_type(cls, v: Any) -> ApprovalType:
        return ApprovalType.from_string(v if isinstance(v, str) else None)

    @field_validator(
        "subcategory",
        "approval_number",
        "source_url",
        "vehicle_compatibility",
        "notes_de",
        "notes_en",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        return optional_str(v)

    @field_validator("restrictions", mode="before")
    @classmethod
    def parse_restrictions(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [str(r).strip() for r in v if r is not None and str(r).strip()]

    @field_validator("valid_from", "valid_until", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> Optional[date]:
        if v is None or isinstance(v, date):
            return v
        raw = str(v).strip()
        if not raw:
            return None
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            return None

    @property
    def identity(self) -> str:
        """Stored fingerprint, or the computed one for entries that never had one."""
        if self.fingerprint:
            return self.fingerprint
        return reference_fingerprint(
            self.category.value if self.category else None,
            self.subcategory,
            self.brand,
            self.part_name,
            self.approval_type.value,
            self.approval_number,
            self.source_id,
            self.source_url,
        )

    @property
    def label(self) -> str:
        base = f"{self.brand} {self.part_name}"
        if self.approval_number:
            return f"{base} · {self.approval_number}"
        return base

    @property
    def value(self) -> str:
        return f"{self.brand} {self.part_name}"


class CatalogMatch(BaseModel):
    """A ranked matcher result."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    label: str
    value: str
    item: ReferenceEntry

    @classmethod
    def of(cls, entry: ReferenceEntry) -> "CatalogMatch":
        return cls(label=entry.label, value=entry.value, item=entry)
