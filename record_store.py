"""In-memory record store with change tracking and formatted accessors."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from markupsafe import escape

from field_support import DEFAULT_INLINE_TYPES, resolve_capabilities
from field_types import FieldDescriptor, LanguageValue, get_field_type
from frontedit.errors import PersistenceError
from frontedit.names import is_canonical_field_name, is_digits

_logger = logging.getLogger("frontedit.store")

_LOCKED_FLAGS = ("locked", "system")


@dataclass
class RecordSaveError(PersistenceError):
    pass


def normalize_path(path: str | None) -> str:
    path = (path or "").strip()
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    if not path.endswith("/"):
        path = path + "/"
    return path


def _text_filters(field: FieldDescriptor) -> list[str]:
    filters = field.config.get("filters")
    if isinstance(filters, list):
        return filters
    if field.rich:
        return []
    if field.block:
        return ["entities", "nl2br"]
    return ["entities"]


def format_value(field: FieldDescriptor, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(escape(item)) for item in value if item is not None)
    text = str(value)
    for name in _text_filters(field):
        if name == "entities":
            text = str(escape(text))
        elif name == "nl2br":
            text = text.replace("\r\n", "\n").replace("\n", "<br>")
    return text


class Record:
    def __init__(
        self,
        store,
        record_id: int,
        template: str,
        data: dict,
        path: str | None = None,
        owner_id: int | None = None,
        owner_field: str | None = None,
        locked: bool = False,
    ) -> None:
        self._store = store
        self.id = int(record_id)
        self.template = template
        self.path = normalize_path(path) if path else None
        self.owner_id = int(owner_id) if owner_id is not None else None
        self.owner_field = owner_field
        self.locked = bool(locked)
        self._data: Dict[str, Any] = data
        self._tracking = False
        self._changes: List[str] = []

    def __repr__(self) -> str:
        return f"Record(id={self.id}, template={self.template!r})"

    @property
    def is_derived(self) -> bool:
        return self.owner_id is not None

    @property
    def edit_roles(self) -> list[str] | None:
        template = self._store.template(self.template) or {}
        return template.get("edit_roles") or None

    def fields(self) -> list[FieldDescriptor]:
        return self._store.template_fields(self.template)

    def field(self, name: str) -> FieldDescriptor | None:
        for fd in self.fields():
            if fd.name == name:
                return fd
        return None

    def editable(self, field_name: str | None = None) -> bool:
        if self.locked:
            return False
        if field_name is None:
            return True
        fd = self.field(field_name)
        if fd is None:
            return False
        return not fd.has_flag(*_LOCKED_FLAGS)

    def get(self, name: str) -> Any:
        return self._data.get(name)

    def set(self, name: str, value: Any) -> None:
        previous = self._data.get(name)
        self._data[name] = value
        if previous != value:
            self.mark_changed(name)

    def get_unformatted(self, name: str, language_id: int | None = None) -> Any:
        value = self._data.get(name)
        if isinstance(value, LanguageValue):
            return value.get(language_id)
        return value

    def get_formatted(self, name: str, language_id: int | None = None) -> str:
        fd = self.field(name)
        value = self.get_unformatted(name, language_id)
        if fd is None:
            return "" if value is None else str(escape(value))
        return format_value(fd, value)

    def track_changes(self, on: bool = True) -> None:
        self._tracking = on
        self._changes = []

    def mark_changed(self, name: str) -> None:
        if self._tracking and name not in self._changes:
            self._changes.append(name)

    def reset_changes(self) -> None:
        self._changes = []

    def get_changes(self) -> list[str]:
        return list(self._changes)

    def is_changed(self) -> bool:
        return bool(self._changes)

    def to_data(self) -> dict:
        data = {}
        for key, value in self._data.items():
            if isinstance(value, LanguageValue):
                data[key] = value.to_dict()
            else:
                data[key] = copy.deepcopy(value)
        return data


class MemoryRecordStore:
    def __init__(self, languages: Iterable[int] | None = None, inline_types: Iterable[str] = DEFAULT_INLINE_TYPES) -> None:
        self.languages: list[int] = [int(lang) for lang in (languages or [])]
        self._inline_types = tuple(inline_types)
        self._fields: Dict[str, FieldDescriptor] = {}
        self._templates: Dict[str, dict] = {}
        self._rows: Dict[int, dict] = {}
        self._paths: Dict[str, int] = {}
        self._next_id = 1

    @property
    def default_language(self) -> int | None:
        return self.languages[0] if self.languages else None

    @property
    def languages_active(self) -> bool:
        return bool(self.languages)

    def add_field(
        self,
        name: str,
        type_name: str,
        field_id: int | None = None,
        label: str = "",
        config: dict | None = None,
        flags: Iterable[str] | None = None,
    ) -> FieldDescriptor:
        if not is_canonical_field_name(name):
            raise ValueError(f"Invalid field name: {name!r}")
        field_type = get_field_type(type_name)
        config = dict(config or {})
        descriptor = FieldDescriptor(
            id=int(field_id) if field_id is not None else len(self._fields) + 1,
            name=name,
            type=field_type,
            label=label or name.replace("_", " ").title(),
            config=config,
            flags=frozenset(flags or ()),
            capabilities=resolve_capabilities(field_type, config, self._inline_types),
        )
        self._fields[name] = descriptor
        return descriptor

    def field(self, name: str) -> FieldDescriptor | None:
        return self._fields.get(name)

    def add_template(self, name: str, fields: Iterable[str], edit_roles: Iterable[str] | None = None, markup: str = "") -> dict:
        fields = list(fields)
        missing = [f for f in fields if f not in self._fields]
        if missing:
            raise KeyError(f"Unknown fields for template {name}: {missing}")
        template = {
            "name": name,
            "fields": list(fields),
            "edit_roles": list(edit_roles) if edit_roles else [],
            "markup": markup or "",
        }
        self._templates[name] = template
        return template

    def template(self, name: str) -> dict | None:
        return self._templates.get(name)

    def template_fields(self, name: str) -> list[FieldDescriptor]:
        template = self._templates.get(name) or {}
        return [self._fields[f] for f in template.get("fields", []) if f in self._fields]

    def _blank_data(self, template: str, data: dict | None) -> dict:
        values: Dict[str, Any] = {}
        data = data or {}
        for fd in self.template_fields(template):
            raw = data.get(fd.name)
            if fd.multilang:
                lang_value = LanguageValue(default_language=self.default_language)
                if isinstance(raw, dict):
                    lang_value = LanguageValue(raw, self.default_language)
                elif raw is not None:
                    lang_value.set(None, raw)
                values[fd.name] = lang_value
            elif raw is None:
                values[fd.name] = fd.type.blank()
            else:
                values[fd.name] = copy.deepcopy(raw)
        return values

    def create(
        self,
        template: str,
        path: str | None = None,
        data: dict | None = None,
        record_id: int | None = None,
        owner_id: int | None = None,
        owner_field: str | None = None,
        locked: bool = False,
    ) -> Record:
        if template not in self._templates:
            raise KeyError(f"Unknown template: {template}")
        if record_id is None:
            record_id = self._next_id
        record_id = int(record_id)
        self._next_id = max(self._next_id, record_id + 1)
        row = {
            "id": record_id,
            "template": template,
            "path": normalize_path(path) if path else None,
            "owner_id": owner_id,
            "owner_field": owner_field,
            "locked": locked,
            "data": self._blank_data(template, data),
        }
        self._rows[record_id] = row
        if row["path"]:
            self._paths[row["path"]] = record_id
        if owner_id is not None and owner_field:
            owner = self._rows.get(int(owner_id))
            if owner is not None:
                items = owner["data"].setdefault(owner_field, [])
                if record_id not in items:
                    items.append(record_id)
        return self._instance(row)

    def _instance(self, row: dict) -> Record:
        data = {}
        for key, value in row["data"].items():
            data[key] = value.copy() if isinstance(value, LanguageValue) else copy.deepcopy(value)
        return Record(
            self,
            row["id"],
            row["template"],
            data,
            path=row.get("path"),
            owner_id=row.get("owner_id"),
            owner_field=row.get("owner_field"),
            locked=row.get("locked", False),
        )

    def get(self, locator: Any) -> Record | None:
        """Load a fresh record instance by integer id or path."""
        row = None
        if isinstance(locator, int) and not isinstance(locator, bool):
            row = self._rows.get(locator)
        elif isinstance(locator, str) and locator.strip():
            value = locator.strip()
            if is_digits(value):
                row = self._rows.get(int(value))
            else:
                record_id = self._paths.get(normalize_path(value))
                row = self._rows.get(record_id) if record_id is not None else None
        if row is None:
            return None
        return self._instance(row)

    def children(self, owner_id: int, owner_field: str) -> list[Record]:
        owner = self._rows.get(int(owner_id))
        if owner is None:
            return []
        items = owner["data"].get(owner_field) or []
        return [self._instance(self._rows[i]) for i in items if i in self._rows]

    def save(self, record: Record) -> None:
        row = self._rows.get(record.id)
        if row is None:
            raise RecordSaveError(message=f"Record {record.id} does not exist", record_id=record.id)
        if row.get("locked"):
            raise RecordSaveError(message=f"Record {record.id} is locked", record_id=record.id)
        changes = record.get_changes()
        for name in changes:
            value = record.get(name)
            row["data"][name] = value.copy() if isinstance(value, LanguageValue) else copy.deepcopy(value)
        _logger.info("record_saved id=%s fields=%s", record.id, ",".join(changes))
        record.reset_changes()
