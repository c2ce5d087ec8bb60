"""Enums for legality-related constants."""

from enum import Enum


class Category(str, Enum):
    """Reference catalog categories."""

    WHEELS = "wheels"
    SUSPENSION = "suspension"
    EXHAUST = "exhaust"
    BRAKES = "brakes"
    AERO = "aero"
    LIGHTING = "lighting"
    ECU = "ecu"
    INTERIOR = "interior"
    SAFETY = "safety"
    OTHER = "other"

    @classmethod
    def from_string(cls, value: str | None) -> "Category | None":
        """Map a modification category (any case) to a catalog category.

        ``OTHER`` and unknown values return None so that no category filter
        is applied downstream.
        """
        if not value:
            return None
        mappings = {
            "AERO": cls.AERO,
            "BRAKES": cls.BRAKES,
            "WHEELS": cls.WHEELS,
            "SUSPENSION": cls.SUSPENSION,
            "EXHAUST": cls.EXHAUST,
            "LIGHTING": cls.LIGHTING,
            "ECU": cls.ECU,
            "ENGINE": cls.ECU,
            "INTERIOR": cls.INTERIOR,
            "SAFETY": cls.SAFETY,
        }
        return mappings.get(value.strip().upper())


class ApprovalType(str, Enum):
    """Approval regimes a reference entry can carry."""

    NONE = "NONE"
    ABE = "ABE"
    ABG = "ABG"
    EBE = "EBE"
    TEILEGUTACHTEN = "TEILEGUTACHTEN"
    EINZELABNAHME_21 = "EINZELABNAHME_21"
    ECE = "ECE"
    EINTRAGUNGSPFLICHTIG = "EINTRAGUNGSPFLICHTIG"

    @classmethod
    def from_string(cls, value: str | None) -> "ApprovalType":
        """Convert string to enum, returning NONE if invalid."""
        if not value:
            return cls.NONE
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.NONE


class EvidenceType(str, Enum):
    """Document types a user can attach as proof."""

    ABE = "ABE"
    ABG = "ABG"
    EBE = "EBE"
    ECE = "ECE"
    TEILEGUTACHTEN = "TEILEGUTACHTEN"
    EINZELABNAHME = "EINZELABNAHME"
    EINTRAGUNG = "EINTRAGUNG"

    @classmethod
    def from_string(cls, value: str | None) -> "EvidenceType | None":
        """Convert string to enum, returning None for non-evidence types."""
        if not value:
            return None
        raw = value.strip().upper()
        if raw == "EINZELABNAHME_21":
            return cls.EINZELABNAHME
        try:
            return cls(raw)
        except ValueError:
            return None


class TuvStatus(str, Enum):
    """User-declared inspection status of a modification."""

    GREEN_REGISTERED = "GREEN_REGISTERED"
    YELLOW_ABE = "YELLOW_ABE"
    RED_RACING = "RED_RACING"

    @classmethod
    def from_string(cls, value: str | None) -> "TuvStatus | None":
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class LegalityStatus(str, Enum):
    """Resolved legality classification."""

    UNKNOWN = "UNKNOWN"
    FULLY_LEGAL = "FULLY_LEGAL"
    REGISTRATION_REQUIRED = "REGISTRATION_REQUIRED"
    INSPECTION_REQUIRED = "INSPECTION_REQUIRED"
    ILLEGAL = "ILLEGAL"


class Severity(str, Enum):
    """Violation severity."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def from_string(cls, value: str | None) -> "Severity":
        if not value:
            return cls.INFO
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.INFO


class SourceId(str, Enum):
    """Provenance of a reference entry."""

    MANUFACTURER = "manufacturer"
    KBA = "kba"
    CANDIDATE = "candidate"
    COMMUNITY = "community"


# Approval types a matched reference can only prove with a matching document
DOCUMENT_BACKED_APPROVALS = frozenset(
    {ApprovalType.ABE, ApprovalType.ABG, ApprovalType.ECE, ApprovalType.EBE}
)

# Evidence that settles legality on its own
STRONG_EVIDENCE_TYPES = (EvidenceType.EINTRAGUNG, EvidenceType.EINZELABNAHME)

# Track width change per axle that may require registration (mm)
TRACK_WIDTH_CHANGE_LIMIT_MM = 20

# Catalog matcher result limits
DEFAULT_MATCH_LIMIT = 10
MAX_MATCH_LIMIT = 25
