"""Batched save of inline field edits.

A batch maps ``"<recordId>__<fieldName>"`` keys to raw client values. Keys are
validated, grouped by record, decoded through the widget layer and applied;
every record with tracked changes is then saved on its own so one failing
record does not block the others.

Status codes: 0 error, 1 success, 2 partial success, 3 no changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping

from editability import Actor, can_edit_field
from field_types import FieldDescriptor, LanguageValue, type_lineage
from frontedit.errors import FieldValidationError, PermissionDenied, SecurityError
from frontedit.names import is_canonical_field_name, is_digits
from frontedit.text_normalize import breaks_to_newlines, decode_plain_text
from widgets import get_input_control

_logger = logging.getLogger("frontedit.save")

STATUS_ERROR = 0
STATUS_SUCCESS = 1
STATUS_PARTIAL = 2
STATUS_NO_CHANGES = 3

KEY_SEPARATOR = "__"
CSRF_FAILED_MESSAGE = "Failed CSRF check"

_PLAIN_TEXT_TYPES = {"text", "textarea"}


@dataclass
class BatchEntry:
    key: str
    record_id: int
    field_name: str
    value: Any


@dataclass
class SaveOutcome:
    status: int | None = None
    errors: List[str] = field(default_factory=list)
    changes: List[str] = field(default_factory=list)
    formatted: Dict[str, Any] = field(default_factory=dict)
    unformatted: Dict[str, Any] = field(default_factory=dict)

    @property
    def error(self) -> str:
        return "\n".join(self.errors)

    def to_dict(self) -> dict:
        return {
            "status": STATUS_ERROR if self.status is None else self.status,
            "error": self.error,
            "changes": ",".join(self.changes),
            "formatted": dict(self.formatted),
            "unformatted": dict(self.unformatted),
        }


def parse_batch(fields: Mapping[str, Any] | None) -> list[BatchEntry]:
    entries: list[BatchEntry] = []
    for key, value in (fields or {}).items():
        if not isinstance(key, str) or KEY_SEPARATOR not in key:
            _logger.debug("save_key_rejected key=%r", key)
            continue
        record_part, field_name = key.split(KEY_SEPARATOR, 1)
        if not is_digits(record_part) or not is_canonical_field_name(field_name):
            _logger.debug("save_key_rejected key=%r", key)
            continue
        entries.append(BatchEntry(key=key, record_id=int(record_part), field_name=field_name, value=value))
    return entries


def is_plain_text(fd: FieldDescriptor) -> bool:
    return not fd.rich and any(name in _PLAIN_TEXT_TYPES for name in type_lineage(fd.type))


class SavePipeline:
    def __init__(
        self,
        store,
        actor: Actor,
        page=None,
        language_id: int | None = None,
        languages_active: bool | None = None,
        inline_only: bool = True,
    ) -> None:
        self.store = store
        self.actor = actor
        self.page = page
        if languages_active is None:
            languages_active = bool(getattr(store, "languages_active", False))
        self.languages_active = languages_active
        if language_id is None and languages_active:
            language_id = getattr(store, "default_language", None)
        self.language_id = language_id
        self.inline_only = inline_only

    def run(self, fields: Mapping[str, Any] | None, csrf_check: Callable[[], None] | None = None) -> SaveOutcome:
        outcome = SaveOutcome()
        if csrf_check is not None:
            try:
                csrf_check()
            except SecurityError as exc:
                _logger.warning("save_csrf_failed actor=%s error=%s", self.actor.id, exc)
                outcome.status = STATUS_ERROR
                outcome.errors.append(CSRF_FAILED_MESSAGE)
                return outcome

        entries = parse_batch(fields)
        records = self._resolve_records(entries)
        entries = [entry for entry in entries if entry.record_id in records]
        for record in records.values():
            record.track_changes()
        pending: Dict[int, List[str]] = {}
        for entry in entries:
            try:
                if self._apply_field(records[entry.record_id], entry, outcome):
                    keys = pending.setdefault(entry.record_id, [])
                    if entry.key not in keys:
                        keys.append(entry.key)
            except FieldValidationError as exc:
                outcome.errors.append(str(exc))
            except PermissionDenied as exc:
                _logger.info("save_field_denied record=%s field=%s actor=%s", entry.record_id, entry.field_name, self.actor.id)
                outcome.errors.append(f"{entry.field_name}: {exc}")
        self._commit(records, pending, outcome)
        self._assemble(entries, outcome)
        _logger.info(
            "save_completed actor=%s records=%s keys=%s status=%s errors=%s",
            self.actor.id,
            len(records),
            len(entries),
            outcome.status,
            len(outcome.errors),
        )
        return outcome

    def _resolve_records(self, entries: list[BatchEntry]) -> Dict[int, Any]:
        records: Dict[int, Any] = {}
        missing: set[int] = set()
        for entry in entries:
            if entry.record_id in records or entry.record_id in missing:
                continue
            if self.page is not None and self.page.id == entry.record_id:
                record = self.page
            else:
                record = self.store.get(entry.record_id)
            if record is None:
                _logger.info("save_record_unresolved id=%s", entry.record_id)
                missing.add(entry.record_id)
                continue
            records[entry.record_id] = record
        return records

    def _saveable(self, record, fd: FieldDescriptor) -> bool:
        if self.inline_only and not fd.inline:
            return False
        return can_edit_field(self.store, record, fd.name, self.actor, session_record=self.page)

    def _apply_field(self, record, entry: BatchEntry, outcome: SaveOutcome) -> bool:
        name = entry.field_name
        fd = record.field(name)
        if fd is None:
            raise FieldValidationError("Field not found", field=name)
        if not self._saveable(record, fd):
            raise PermissionDenied("Not editable")

        plain = is_plain_text(fd)
        raw = entry.value
        if plain and isinstance(raw, str):
            raw = breaks_to_newlines(raw)
        widget = get_input_control(record, fd, self.language_id)
        errors = widget.process_input(raw)
        if errors:
            outcome.errors.extend(str(FieldValidationError(message, field=name)) for message in errors)
            return False
        if not widget.is_changed():
            return False
        value = widget.get_value()
        if plain:
            value = decode_plain_text(value)

        current = record.get(name)
        if fd.multilang and isinstance(current, LanguageValue):
            language_id = self.language_id if self.languages_active else None
            current.set(language_id, value)
            record.mark_changed(name)
        else:
            record.set(name, value)
        return name in record.get_changes()

    def _commit(self, records: Dict[int, Any], pending: Dict[int, List[str]], outcome: SaveOutcome) -> None:
        field_errors = bool(outcome.errors)
        saved_any = False
        failed_any = False
        status: int | None = None
        for index, record in enumerate(records.values()):
            if not record.get_changes():
                if index == 0 and status is None:
                    status = STATUS_NO_CHANGES
                continue
            try:
                self.store.save(record)
            except Exception as exc:
                _logger.warning("save_record_failed id=%s error=%s", record.id, exc)
                outcome.errors.append(f"Error saving record {record.id}: {exc}")
                failed_any = True
                status = STATUS_PARTIAL if saved_any else STATUS_ERROR
                continue
            saved_any = True
            outcome.changes.extend(pending.get(record.id, []))
            status = STATUS_PARTIAL if (field_errors or failed_any) else STATUS_SUCCESS
        if status is None:
            status = STATUS_ERROR if outcome.errors else STATUS_NO_CHANGES
        outcome.status = status

    def _assemble(self, entries: list[BatchEntry], outcome: SaveOutcome) -> None:
        fresh: Dict[int, Any] = {}
        for entry in entries:
            if entry.record_id not in fresh:
                fresh[entry.record_id] = self.store.get(entry.record_id)
            record = fresh[entry.record_id]
            if record is None:
                continue
            outcome.unformatted[entry.key] = record.get_unformatted(entry.field_name, self.language_id)
            outcome.formatted[entry.key] = record.get_formatted(entry.field_name, self.language_id)
