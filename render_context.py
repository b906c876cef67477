"""Per-render-pass state: editor sequence numbers and modal identifiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable

from editability import Actor
from field_support import DEFAULT_INLINE_TYPES
from frontedit.marker_syntax import DEFAULT_ATTR, DEFAULT_TAG

MODAL_ID_PREFIX = "fe-edit-modal"


class ModalIdRegistry:
    """Issues collision-free modal ids within one render pass."""

    def __init__(self, prefix: str = MODAL_ID_PREFIX) -> None:
        self._prefix = prefix
        self._issued: Dict[str, int] = {}

    def key(self, record_id: Any, field_ids: Iterable[Any]) -> str:
        parts = [str(record_id)] + [str(fid) for fid in field_ids]
        return "-".join([self._prefix] + parts)

    def issue(self, record_id: Any, field_ids: Iterable[Any]) -> str:
        base = self.key(record_id, field_ids)
        count = self._issued.get(base)
        if count is None:
            self._issued[base] = 0
            return base
        count += 1
        self._issued[base] = count
        return f"{base}_{count}"

    def reset(self) -> None:
        self._issued = {}

    def __len__(self) -> int:
        return sum(count + 1 for count in self._issued.values())


@dataclass
class EditorConfig:
    tag_name: str = DEFAULT_TAG
    attr_name: str = DEFAULT_ATTR
    edit_url: str = "/edit/modal"
    save_url: str = "/edit/save"
    inline_types: tuple = DEFAULT_INLINE_TYPES
    modal_buttons: str = "button[type=submit]"
    modal_autoclose: str = "save"
    modal_close: str = "confirm"


@dataclass
class RenderContext:
    store: Any
    page: Any = None
    actor: Actor = field(default_factory=Actor)
    config: EditorConfig = field(default_factory=EditorConfig)
    language_id: int | None = None
    languages_active: bool = False
    sequence: int = 0
    modals: ModalIdRegistry = field(default_factory=ModalIdRegistry)
    editors: int = 0

    def begin_pass(self) -> None:
        self.sequence = 0
        self.editors = 0
        self.modals.reset()

    def next_sequence(self) -> int:
        self.sequence += 1
        return self.sequence
