from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from buildpass.core.enums import EvidenceType, LegalityStatus, TuvStatus
from buildpass.utils.converters import optional_str, parse_json_object, parse_number


class Document(BaseModel):
    """An attached document (photo, PDF) with its declared type."""

    type: Optional[str] = None
    document_number: Optional[str] = None

    @property
    def evidence_type(self) -> Optional[EvidenceType]:
        return EvidenceType.from_string(self.type)


class ApprovalDocument(BaseModel):
    """Structured approval evidence attached to a modification."""

    approval_type: Optional[str] = None
    approval_number: Optional[str] = None
    issuing_authority: Optional[str] = None
    issue_date: Optional[str] = None
    valid_until: Optional[str] = None

    @property
    def evidence_type(self) -> Optional[EvidenceType]:
        return EvidenceType.from_string(self.approval_type)


class UserParameters(BaseModel):
    """User-declared technical parameters. Unparseable values are absent."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    clearance_loaded: Optional[float] = None
    track_width_change: Optional[float] = None
    et: Optional[float] = None
    noise_level_db: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def parse_value(cls, v: Any) -> Optional[float]:
        return parse_number(v)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | str | None) -> "UserParameters":
        """Build from a JSON blob or a mapping with camelCase or snake_case keys."""
        obj = parse_json_object(data) if isinstance(data, str) else data
        if not obj:
            return cls()
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            values[name] = obj.get(to_camel(name), obj.get(name))
        return cls(**values)

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)

    def to_public(self) -> dict[str, float]:
        """CamelCase mapping of the values that are present."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ModificationRecord(BaseModel):
    """Everything the snapshot is a function of, loaded in one place."""

    id: str
    part_name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    tuv_status: Optional[TuvStatus] = None
    user_parameters: UserParameters = Field(default_factory=UserParameters)
    documents: list[Document] = Field(default_factory=list)
    approval_documents: list[ApprovalDocument] = Field(default_factory=list)
    log_entry_id: Optional[str] = None
    state_id: Optional[str] = None

    @field_validator("tuv_status", mode="before")
    @classmethod
    def parse_tuv_status(cls, v: Any) -> Optional[TuvStatus]:
        if isinstance(v, TuvStatus):
            return v
        return TuvStatus.from_string(v if isinstance(v, str) else None)

    @field_validator("brand", "category", "log_entry_id", "state_id", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        return optional_str(v)

    def evidence_types(self) -> list[EvidenceType]:
        """Evidence types attached as documents or approvals, first-seen order."""
        seen: list[EvidenceType] = []
        for item in [*self.documents, *self.approval_documents]:
            evidence = item.evidence_type
            if evidence is not None and evidence not in seen:
                seen.append(evidence)
        return seen

    def has_evidence(self, evidence: EvidenceType) -> bool:
        return evidence in self.evidence_types()


class LegalitySnapshot(BaseModel):
    """The cached legality verdict stored on a modification."""

    legality_status: LegalityStatus
    legality_approval_type: Optional[str] = None
    legality_approval_number: Optional[str] = None
    legality_source_id: Optional[str] = None
    legality_source_url: Optional[str] = None
    legality_notes: Optional[str] = None
    legality_reference_id: Optional[str] = None
    legality_last_checked_at: datetime

    def to_row(self) -> dict[str, Any]:
        """Column mapping for the modifications table."""
        return self.model_dump(mode="json")


class ListingLegalityMirror(BaseModel):
    """Denormalized copy of a snapshot stored on marketplace listings."""

    legality_status: LegalityStatus
    legality_approval_type: Optional[str] = None
    legality_approval_number: Optional[str] = None
    legality_source_id: Optional[str] = None
    legality_source_url: Optional[str] = None
    legality_notes: Optional[str] = None
    legality_last_checked_at: datetime
    is_fully_legal: bool
    requires_registration: bool
    requires_inspection: bool

    @classmethod
    def from_snapshot(cls, snapshot: LegalitySnapshot) -> "ListingLegalityMirror":
        status = snapshot.legality_status
        return cls(
            legality_status=status,
            legality_approval_type=snapshot.legality_approval_type,
            legality_approval_number=snapshot.legality_approval_number,
            legality_source_id=snapshot.legality_source_id,
            legality_source_url=snapshot.legality_source_url,
            legality_notes=snapshot.legality_notes,
            legality_last_checked_at=snapshot.legality_last_checked_at,
            is_fully_legal=status == LegalityStatus.FULLY_LEGAL,
            requires_registration=status == LegalityStatus.REGISTRATION_REQUIRED,
            requires_inspection=status == LegalityStatus.INSPECTION_REQUIRED,
        )

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
