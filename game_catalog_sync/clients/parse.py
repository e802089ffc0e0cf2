from __future__ import annotations

from datetime import date
from typing import Any


def as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def as_int(value: object) -> int | None:
    """
    Strict numeric conversion.

    - Accepts: int, integral float
    - Rejects: bool, strings (even if numeric)
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    return None


def as_float(value: object) -> float | None:
    """
    Strict numeric conversion.

    - Accepts: int, float
    - Rejects: bool, strings (even if numeric)
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def parse_iso_date(value: object) -> date | None:
    """Parse 'YYYY-MM-DD' (RAWG release dates); anything else yields None."""
    s = as_str(value)
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def normalize_str_list(values: object) -> list[str]:
    """
    Normalize a list-ish value into a de-duped list of non-empty strings.

    Accepts only real lists; returns [] for anything else.
    """
    if not isinstance(values, list):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        s = as_str(v)
        if not s:
            continue
        k = s.casefold()
        if k in seen:
            continue
        seen.add(k)
        out.append(s)
    return out


def get_list_of_dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def names_of(value: Any, *, nested: str | None = None) -> list[str]:
    """
    Pull `name` out of a RAWG list of objects.

    RAWG nests some names one level down, e.g. platforms are `[{"platform": {"name": ...}}]`.
    """
    out: list[str] = []
    for item in get_list_of_dicts(value):
        obj = item.get(nested) if nested else item
        if isinstance(obj, dict):
            out.append(as_str(obj.get("name")))
    return normalize_str_list(out)
