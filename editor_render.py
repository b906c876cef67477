"""Inline and modal editor wrappers."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from jinja2 import Environment
from markupsafe import Markup, escape

from field_types import FieldDescriptor
from render_context import RenderContext
from widgets import get_input_control

_logger = logging.getLogger("frontedit.render")

INLINE_ID_PREFIX = "fe-edit-"
GENERATED_EDITOR_RE = re.compile(r"""\bid=["']?fe-edit-\d+["'\s>]""")

_env = Environment(autoescape=True)

_ATTRS = _env.from_string('{% for key, value in attrs %} {{ key }}="{{ value }}"{% endfor %}')

_INLINE = _env.from_string(
    '<{{ tag }} id="fe-edit-{{ n }}" class="fe-edit fe-edit-{{ widget }}"'
    ' data-name="{{ name }}" data-page="{{ page_id }}"'
    '{% if lang is not none %} data-lang="{{ lang }}"{% endif %}{{ extra }}>'
    '<{{ tag }} class="fe-edit-orig">{{ formatted }}</{{ tag }}>'
    '<{{ tag }} id="fe-editor-{{ n }}" class="fe-edit-copy" contenteditable="true">{{ unformatted }}</{{ tag }}>'
    "</{{ tag }}>"
)

_MODAL = _env.from_string('<div id="{{ modal_id }}" class="fe-edit-modal"{{ attrs }}>{{ markup }}</div>')


def has_generated_editor(markup: str | None) -> bool:
    return bool(markup) and GENERATED_EDITOR_RE.search(markup) is not None


def render_attributes(pairs: Iterable[tuple[str, str]]) -> Markup:
    return Markup(_ATTRS.render(attrs=list(pairs)))


def edit_url(ctx: RenderContext, record, names: Sequence[str]) -> str:
    url = f"{ctx.config.edit_url}?id={record.id}&fields={','.join(names)}&modal=1"
    if ctx.languages_active and ctx.language_id is not None:
        url += f"&language={ctx.language_id}"
    return url


def modal_attributes(ctx: RenderContext, record, names: Sequence[str]) -> list[tuple[str, str]]:
    """Client contract shared by modal wrappers and attribute-marker triggers."""
    return [
        ("data-href", edit_url(ctx, record, names)),
        ("data-fields", ",".join(names)),
        ("data-buttons", ctx.config.modal_buttons),
        ("data-autoclose", ctx.config.modal_autoclose),
        ("data-close", ctx.config.modal_close),
    ]


def _unformatted_markup(field: FieldDescriptor, value) -> Markup:
    text = "" if value is None else str(value)
    if field.rich:
        return Markup(text)
    if field.block:
        return Markup("<br>").join(escape(line) for line in text.replace("\r\n", "\n").split("\n"))
    return escape(text)


def render_inline(ctx: RenderContext, record, field: FieldDescriptor, formatted: str) -> str:
    if has_generated_editor(formatted):
        return formatted
    n = ctx.next_sequence()
    widget = get_input_control(record, field, ctx.language_id)
    extra = render_attributes(widget.render_data().items())
    lang = ctx.language_id if ctx.languages_active else None
    ctx.editors += 1
    _logger.debug("inline_editor n=%s record=%s field=%s", n, record.id, field.name)
    return _INLINE.render(
        tag="div" if field.block else "span",
        n=n,
        widget=widget.name,
        name=field.name,
        page_id=record.id,
        lang=lang,
        extra=extra,
        formatted=Markup(formatted or ""),
        unformatted=_unformatted_markup(field, record.get_unformatted(field.name, ctx.language_id)),
    )


def render_modal(ctx: RenderContext, record, fields: Sequence[FieldDescriptor], markup: str) -> str:
    modal_id = ctx.modals.issue(record.id, [f.id for f in fields])
    names = [f.name for f in fields]
    ctx.editors += 1
    _logger.debug("modal_editor id=%s record=%s fields=%s", modal_id, record.id, ",".join(names))
    return _MODAL.render(
        modal_id=modal_id,
        attrs=render_attributes(modal_attributes(ctx, record, names)),
        markup=Markup(markup or ""),
    )
