"""Field type tags, field descriptors and language-aware values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict


class LanguageValue:
    """Per-language string values keyed by language id."""

    def __init__(self, values: dict | None = None, default_language: int | None = None) -> None:
        self.default_language = default_language
        self._values: Dict[int, str] = {}
        for key, val in (values or {}).items():
            self._values[int(key)] = "" if val is None else str(val)

    def get(self, language_id: int | None = None) -> str:
        if language_id is not None and self._values.get(int(language_id)):
            return self._values[int(language_id)]
        if self.default_language is not None:
            return self._values.get(self.default_language, "")
        return ""

    def set(self, language_id: int | None, value: Any) -> None:
        key = self.default_language if language_id is None else int(language_id)
        if key is None:
            key = 0
        self._values[key] = "" if value is None else str(value)

    def languages(self) -> list[int]:
        return sorted(self._values.keys())

    def to_dict(self) -> dict:
        return {str(key): val for key, val in sorted(self._values.items())}

    def copy(self) -> "LanguageValue":
        return LanguageValue(dict(self._values), self.default_language)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LanguageValue):
            return NotImplemented
        return self._values == other._values

    def __str__(self) -> str:
        return self.get()

    def __repr__(self) -> str:
        return f"LanguageValue({self._values!r})"


@dataclass(frozen=True)
class FieldType:
    name: str
    base: str | None = None
    block: bool = False
    multilang: bool = False
    blank: Callable[[], Any] = str
    widget: str = "text"


def _blank_language_value() -> LanguageValue:
    return LanguageValue()


FIELD_TYPES: Dict[str, FieldType] = {}


def register_field_type(field_type: FieldType) -> FieldType:
    FIELD_TYPES[field_type.name] = field_type
    return field_type


for _ft in (
    FieldType("text"),
    FieldType("page_title", base="text"),
    FieldType("email", base="text", widget="email"),
    FieldType("url", base="text", widget="url"),
    FieldType("tags", base="text", blank=list, widget="tags"),
    FieldType("text_lang", base="text", multilang=True, blank=_blank_language_value),
    FieldType("textarea", block=True, widget="textarea"),
    FieldType("textarea_lang", base="textarea", block=True, multilang=True, blank=_blank_language_value, widget="textarea"),
    FieldType("integer", blank=lambda: None, widget="integer"),
    FieldType("float", blank=lambda: None, widget="float"),
    FieldType("datetime", blank=lambda: None, widget="datetime"),
    FieldType("checkbox", blank=lambda: 0, widget="checkbox"),
    FieldType("options", blank=list, widget="select"),
    FieldType("image", blank=list, widget="external"),
    FieldType("repeater", blank=list, widget="external"),
):
    register_field_type(_ft)


def get_field_type(name: str) -> FieldType:
    if name not in FIELD_TYPES:
        raise KeyError(f"Unknown field type: {name}")
    return FIELD_TYPES[name]


def type_lineage(field_type: FieldType) -> list[str]:
    """Names from the type itself up through its base chain."""
    names = [field_type.name]
    base = field_type.base
    while base and base not in names:
        names.append(base)
        parent = FIELD_TYPES.get(base)
        base = parent.base if parent else None
    return names


@dataclass
class FieldDescriptor:
    id: int
    name: str
    type: FieldType
    label: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    flags: frozenset = frozenset()
    capabilities: frozenset = frozenset()

    @property
    def inline(self) -> bool:
        return "inline" in self.capabilities

    @property
    def block(self) -> bool:
        return "block" in self.capabilities

    @property
    def rich(self) -> bool:
        return "rich" in self.capabilities

    @property
    def multilang(self) -> bool:
        return "multilang" in self.capabilities

    @property
    def widget_name(self) -> str:
        return self.config.get("widget") or ("rich" if self.rich else self.type.widget)

    def has_flag(self, *names: str) -> bool:
        return any(name in self.flags for name in names)
