"""Field name and record locator helpers."""

from __future__ import annotations

import re

_NON_NAME_RE = re.compile(r"[^A-Za-z0-9_]")
_DIGITS_RE = re.compile(r"[0-9]+")


def sanitize_field_name(value: str | None) -> str:
    if not isinstance(value, str):
        return ""
    name = _NON_NAME_RE.sub("", value.strip())
    # names never start with a digit
    return name.lstrip("0123456789")


def is_canonical_field_name(value: str | None) -> bool:
    return bool(value) and sanitize_field_name(value) == value


def is_digits(value) -> bool:
    return isinstance(value, str) and _DIGITS_RE.fullmatch(value) is not None


def split_field_list(value: str | None) -> list[str]:
    """Split a comma list into sanitized, de-duplicated field names."""
    if not value:
        return []
    names: list[str] = []
    for part in value.split(","):
        name = sanitize_field_name(part)
        if name and name not in names:
            names.append(name)
    return names
