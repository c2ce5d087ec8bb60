from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from buildpass.core.enums import LegalityStatus, Severity
from buildpass.models.reference import CatalogMatch, ReferenceEntry


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LegalReference(_CamelModel):
    law_id: str
    law_name_de: str
    law_name_en: str
    law_url: str
    section: str
    notes_de: Optional[str] = None
    notes_en: Optional[str] = None


class Violation(_CamelModel):
    """A finding produced during assessment. Never persisted."""

    rule_id: str
    severity: Severity
    message_de: str
    message_en: str
    legal_references: Optional[list[LegalReference]] = None

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL


class RegionalRule(_CamelModel):
    id: str
    state_id: str
    name_de: str
    description_de: str
    name_en: Optional[str] = None
    description_en: Optional[str] = None
    affected_categories: list[str] = Field(default_factory=list)
    severity: Severity = Severity.INFO
    source_url: Optional[str] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None

    @property
    def warning_text(self) -> str:
        return f"[{self.state_id}] {self.name_de}: {self.description_de}"

    @property
    def warning_text_en(self) -> str:
        name = self.name_en or self.name_de
        description = self.description_en or self.description_de
        return f"[{self.state_id}] {name}: {description}"


class Disclaimer(_CamelModel):
    title: str
    body: str


DISCLAIMER = Disclaimer(
    title="Hinweis zur StVZO",
    body=(
        "Die Legalitaetspruefung liefert unverbindliche technische Hinweise und ersetzt "
        "nicht die Pruefung durch eine Prueforganisation (TUEV/DEKRA/GTUE). Im Zweifel "
        "Originaldokumente verwenden und Ruecksprache halten."
    ),
)


class CommunityProof(_CamelModel):
    id: str
    approval_type: Optional[str] = None
    approval_number: Optional[str] = None
    inspection_org: Optional[str] = None
    inspection_date: Optional[str] = None
    notes: Optional[str] = None
    has_documents: bool = False
    created_at: Optional[str] = None


class LegalityCheckQuery(_CamelModel):
    brand: str
    part_name: str
    category: Optional[str] = None
    approval_number: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[str] = None
    state_id: Optional[str] = None


class LegalityCheckResponse(_CamelModel):
    query: LegalityCheckQuery
    best_match: Optional[CatalogMatch] = None
    suggestions: list[CatalogMatch] = Field(default_factory=list)
    db_matches: list[ReferenceEntry] = Field(default_factory=list)
    community_proofs: list[CommunityProof] = Field(default_factory=list)
    approval_type: str
    legality_status: LegalityStatus
    violations: list[Violation] = Field(default_factory=list)
    user_parameters: Optional[dict[str, float]] = None
    next_steps: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    disclaimer: Disclaimer = DISCLAIMER


class RegionalRulesResponse(_CamelModel):
    state_id: Optional[str] = None
    count: int
    critical_count: int
    warnings: list[str] = Field(default_factory=list)
    rules: list[RegionalRule] = Field(default_factory=list)


class ReadinessSummary(_CamelModel):
    total_mods: int = 0
    green: int = 0
    yellow: int = 0
    red: int = 0
    with_approvals: int = 0
    missing_approvals: int = 0


class TuvReadiness(_CamelModel):
    status: str
    score: int
    summary: ReadinessSummary
    actions: list[str] = Field(default_factory=list)


class RecomputeResponse(_CamelModel):
    modification_id: str
    snapshot: dict[str, Any]
    listings_updated: int
    failed_listing_ids: list[str] = Field(default_factory=list)
