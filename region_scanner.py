"""Scan rendered markup for edit markers and replace them with editors.

Pass order is fixed: tag markers first, attribute markers second. Tag markers
are resolved innermost first, so an outer marker that wraps an already
rendered inline editor is unwrapped instead of wrapped again.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List

from editability import can_edit_field
from editor_render import has_generated_editor, modal_attributes, render_attributes, render_inline, render_modal
from field_types import FieldDescriptor
from frontedit.errors import MarkerParseSkip
from frontedit.marker_syntax import MarkerTarget, attr_pattern, parse_attr_marker, parse_tag_marker, tag_pattern
from frontedit.names import is_digits
from region_strip import strip_markers
from render_context import RenderContext

_logger = logging.getLogger("frontedit.scan")

INLINE = "inline"
MODAL = "modal"

_MAX_TAG_PASSES = 50
_ID_ATTR_RE = re.compile(r"""\sid\s*=\s*("[^"]*"|'[^']*'|[^\s>"']+)""", re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(r"""(\sclass\s*=\s*)(?:"([^"]*)"|'([^']*)'|([^\s>"']+))""", re.IGNORECASE)
MODAL_TRIGGER_CLASS = "fe-edit-modal"


@dataclass
class EditableRegion:
    kind: str
    record: object
    fields: List[FieldDescriptor] = field(default_factory=list)
    markup: str = ""


def resolve_record(ctx: RenderContext, locator: str):
    if not locator:
        return ctx.page
    if ctx.page is not None and is_digits(locator) and int(locator) == ctx.page.id:
        return ctx.page
    record = ctx.store.get(int(locator) if is_digits(locator) else locator)
    if record is None:
        _logger.debug("marker_locator_unresolved locator=%s", locator)
        return ctx.page
    return record


def resolve_fields(ctx: RenderContext, record, names: list[str]) -> list[FieldDescriptor]:
    fields: list[FieldDescriptor] = []
    for name in names:
        fd = record.field(name)
        if fd is None:
            continue
        if not can_edit_field(ctx.store, record, name, ctx.actor, session_record=ctx.page):
            continue
        if fd not in fields:
            fields.append(fd)
    return fields


def resolve_region(ctx: RenderContext, target: MarkerTarget, markup: str) -> EditableRegion:
    if not target.names:
        raise MarkerParseSkip("no field names", marker=target.field_list)
    record = resolve_record(ctx, target.locator)
    if record is None:
        raise MarkerParseSkip("no record", marker=target.field_list)
    fields = resolve_fields(ctx, record, target.names)
    if not fields:
        raise MarkerParseSkip("no editable fields", marker=target.field_list)
    if len(fields) == 1 and fields[0].inline:
        return EditableRegion(INLINE, record, fields, markup)
    return EditableRegion(MODAL, record, fields, markup)


def render_region(ctx: RenderContext, region: EditableRegion) -> str:
    if region.kind == INLINE:
        return render_inline(ctx, region.record, region.fields[0], region.markup)
    return render_modal(ctx, region.record, region.fields, region.markup)


def scan_tag_markers(html: str, ctx: RenderContext) -> str:
    pattern = tag_pattern(ctx.config.tag_name)

    def _replace(match: re.Match) -> str:
        attr_text, inner = match.group(1) or "", match.group(2)
        if has_generated_editor(inner):
            return inner
        try:
            region = resolve_region(ctx, parse_tag_marker(attr_text), inner)
        except MarkerParseSkip as exc:
            _logger.debug("tag_marker_skipped attrs=%s reason=%s", attr_text.strip(), exc)
            return inner
        return render_region(ctx, region)

    for _ in range(_MAX_TAG_PASSES):
        updated = pattern.sub(_replace, html)
        if updated == html:
            break
        html = updated
    return html


def _merge_class(attr_text: str) -> tuple[bool, str]:
    match = _CLASS_ATTR_RE.search(attr_text)
    if match is None:
        return False, attr_text
    current = next((g for g in match.group(2, 3, 4) if g is not None), "")
    classes = f"{current} {MODAL_TRIGGER_CLASS}".strip()
    return True, f'{attr_text[: match.start()]}{match.group(1)}"{classes}"{attr_text[match.end():]}'


def _inject_trigger(ctx: RenderContext, region: EditableRegion, tag: str, before: str, after: str) -> str:
    modal_id = ctx.modals.issue(region.record.id, [f.id for f in region.fields])
    ctx.editors += 1
    pairs: list[tuple[str, str]] = []
    if _ID_ATTR_RE.search(before) or _ID_ATTR_RE.search(after):
        pairs.append(("data-id", modal_id))
    else:
        pairs.append(("id", modal_id))
    merged_before, before = _merge_class(before)
    merged_after = False
    if not merged_before:
        merged_after, after = _merge_class(after)
    if not (merged_before or merged_after):
        pairs.append(("class", MODAL_TRIGGER_CLASS))
    pairs.extend(modal_attributes(ctx, region.record, [f.name for f in region.fields]))
    return f"<{tag}{before}{render_attributes(pairs)}{after}>"


def scan_attr_markers(html: str, ctx: RenderContext) -> str:
    pattern = attr_pattern(ctx.config.attr_name)
    matches = list(pattern.finditer(html))
    for match in matches:
        tag, before, value, after = match.group(1), match.group(2), match.group(3), match.group(4)
        target = parse_attr_marker(value)
        try:
            region = resolve_region(ctx, target, match.group(0))
        except MarkerParseSkip as exc:
            _logger.debug("attr_marker_skipped value=%s reason=%s", value, exc)
            replacement = f"<{tag}{before}{after}>"
        else:
            region.kind = MODAL
            replacement = _inject_trigger(ctx, region, tag, before, after)
        html = html.replace(match.group(0), replacement, 1)
    return html


def scan_document(html: str, ctx: RenderContext) -> str:
    if not html:
        return html
    html = scan_tag_markers(html, ctx)
    return scan_attr_markers(html, ctx)


def process_document(html: str, ctx: RenderContext, editing_allowed: bool) -> str:
    """Post-render stage: attach editors when allowed, otherwise strip markers."""
    ctx.begin_pass()
    if not editing_allowed:
        return strip_markers(html, ctx.config.tag_name, ctx.config.attr_name)
    result = scan_document(html, ctx)
    _logger.info(
        "document_scanned page=%s editors=%s modals=%s",
        getattr(ctx.page, "id", None),
        ctx.editors,
        len(ctx.modals),
    )
    return result
