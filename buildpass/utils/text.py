"""Centralized text normalization for catalog matching and approval numbers.

This module is the single source of truth for:
- Search normalization (case-folding, diacritics, whitespace)
- KBA approval number normalization ("43234" / "KBA43234" -> "KBA 43234")
"""

import re
import unicodedata

_KBA_DIGITS_ONLY = re.compile(r"^\d{3,8}$")
_KBA_PREFIXED = re.compile(r"^KBA\d{3,8}$", re.IGNORECASE)


def normalize_text(value: str | None) -> str:
    """Normalize text for matching.

    Case-folds, strips diacritics (ä -> a, é -> e), maps ß to ss and
    collapses runs of whitespace to a single space.

    Examples:
        >>> normalize_text("  Bilstein  B14 ")
        'bilstein b14'
        >>> normalize_text("Größe")
        'grosse'
    """
    if not value:
        return ""
    folded = str(value).replace("ß", "ss").casefold()
    decomposed = unicodedata.normalize("NFD", folded)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.split())


def normalize_approval_number(value: str | None) -> str | None:
    """Normalize a user-supplied approval number.

    Digit-only input (3-8 digits) and "KBA<digits>" are rewritten to the
    canonical "KBA <digits>" form. Anything else keeps its text with
    whitespace collapsed. Blank input returns None.

    Examples:
        >>> normalize_approval_number("43234")
        'KBA 43234'
        >>> normalize_approval_number("kba43234")
        'KBA 43234'
        >>> normalize_approval_number("E1  10R-04")
        'E1 10R-04'
    """
    raw = (value or "").strip()
    if not raw:
        return None
    compact = re.sub(r"\s+", "", raw)
    if _KBA_DIGITS_ONLY.match(compact):
        return f"KBA {compact}"
    if _KBA_PREFIXED.match(compact):
        return f"KBA {compact[3:]}"
    return " ".join(raw.split())


def approval_number_digits(value: str | None) -> str | None:
    """Extract only the digits of an approval number, or None if there are none."""
    digits = re.sub(r"[^0-9]", "", value or "")
    return digits or None
