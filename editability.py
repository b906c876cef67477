"""Actor permissions and per-field edit access."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger("frontedit.access")

PERMISSION_EDIT = "page-edit"
PERMISSION_EDIT_FRONT = "page-edit-front"

PERMISSIONS_BY_ROLE = {
    "admin": {"page-view", PERMISSION_EDIT, PERMISSION_EDIT_FRONT},
    "editor": {"page-view", PERMISSION_EDIT, PERMISSION_EDIT_FRONT},
    "author": {"page-view", PERMISSION_EDIT},
    "guest": {"page-view"},
}


@dataclass
class Actor:
    id: str | None = None
    roles: list[str] = field(default_factory=lambda: ["guest"])
    superuser: bool = False
    email: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.id is None

    def has_permission(self, name: str, record: Any = None) -> bool:
        if self.superuser:
            return True
        granted = any(name in PERMISSIONS_BY_ROLE.get(role, set()) for role in self.roles)
        if not granted:
            return False
        restricted = getattr(record, "edit_roles", None) if record is not None else None
        if restricted and name in (PERMISSION_EDIT, PERMISSION_EDIT_FRONT):
            return any(role in restricted for role in self.roles)
        return True


GUEST = Actor()


def _owner_of(store, record, session_record=None):
    if session_record is not None and getattr(session_record, "id", None) == record.owner_id:
        return session_record
    return store.get(record.owner_id)


def can_edit_field(store, record, field_name: str, actor: Actor, session_record=None) -> bool:
    if record is None or not field_name:
        return False
    if record.is_derived:
        owner = _owner_of(store, record, session_record)
        if owner is None:
            return False
        if not actor.has_permission(PERMISSION_EDIT, owner):
            return False
        if not owner.editable(record.owner_field):
            return False
    elif not actor.has_permission(PERMISSION_EDIT, record):
        return False
    if not record.editable(field_name):
        _logger.debug("field_not_editable record=%s field=%s", record.id, field_name)
        return False
    return True


def can_edit_front(record, actor: Actor) -> bool:
    """Whether a render pass for this record may carry edit affordances."""
    if record is None or actor is None:
        return False
    if not actor.has_permission(PERMISSION_EDIT_FRONT, record):
        return False
    if not actor.has_permission(PERMISSION_EDIT, record):
        return False
    return record.editable()
