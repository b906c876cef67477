"""Decide which field types can be edited inline."""

from __future__ import annotations

from typing import Any, Iterable

from field_types import FieldType, LanguageValue, type_lineage

DEFAULT_INLINE_TYPES = (
    "text",
    "page_title",
    "textarea",
    "text_lang",
    "textarea_lang",
    "integer",
    "float",
)


def parse_inline_types(value: str | None) -> tuple[str, ...]:
    if not value or not value.strip():
        return DEFAULT_INLINE_TYPES
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _is_scalar_like(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, (str, int, float, bool, LanguageValue))


def supports_inline(field_type: FieldType, allow_types: Iterable[str] = DEFAULT_INLINE_TYPES) -> bool:
    allowed = set(allow_types)
    if field_type.name in allowed:
        return True
    ancestors = type_lineage(field_type)[1:]
    if not any(name in allowed for name in ancestors):
        return False
    # derived types qualify only while their blank value stays scalar
    try:
        blank = field_type.blank()
    except Exception:
        return False
    return _is_scalar_like(blank)


def resolve_capabilities(
    field_type: FieldType,
    config: dict | None = None,
    allow_types: Iterable[str] = DEFAULT_INLINE_TYPES,
) -> frozenset:
    config = config or {}
    caps: set[str] = set()
    if supports_inline(field_type, allow_types):
        caps.add("inline")
    if field_type.block:
        caps.add("block")
    if field_type.multilang:
        caps.add("multilang")
    if config.get("content_type") == "html" or config.get("widget") == "rich":
        caps.add("rich")
    return frozenset(caps)
