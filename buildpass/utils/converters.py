"""Type conversion utilities for safely handling data from query strings/JSON/database.

This module is the single source of truth for safe type conversion.
All other modules should import from here instead of defining their own.
"""

import json
import math
from typing import Any


def parse_number(val: Any) -> float | None:
    """Parse a number permissively, returning None when absent or invalid.

    Accepts ints, floats and numeric strings. Booleans, NaN, infinities,
    blank strings and anything unparseable are treated as absent, never as 0.

    Examples:
        >>> parse_number("3.5")
        3.5
        >>> parse_number(" 90 ")
        90.0
        >>> parse_number("abc") is None
        True
        >>> parse_number(True) is None
        True
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        num = float(val)
    elif isinstance(val, str):
        raw = val.strip()
        if not raw:
            return None
        try:
            num = float(raw)
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def safe_float(val: Any, default: float = 0.0) -> float:
    """Safely convert a value to float, falling back to ``default``."""
    num = parse_number(val)
    return default if num is None else num


def safe_int(val: Any, default: int = 0) -> int:
    """Safely convert a value to int.

    Examples:
        >>> safe_int("42")
        42
        >>> safe_int(3.7)
        3
        >>> safe_int(None)
        0
    """
    num = parse_number(val)
    return default if num is None else int(num)


def parse_json_object(val: Any) -> dict[str, Any] | None:
    """Parse a JSON object from a string or pass a dict through.

    Returns None for blank input, invalid JSON, or JSON that is not an object.
    """
    if isinstance(val, dict):
        return val
    if not isinstance(val, str) or not val.strip():
        return None
    try:
        parsed = json.loads(val)
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def optional_str(val: Any) -> str | None:
    """Return a stripped string, or None for blank/missing values."""
    if val is None:
        return None
    s = str(val).strip()
    return s or None
