"""Site definition loading and page template context."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from app.template_render import validate_page_template
from frontedit.errors import FrontEditError

_logger = logging.getLogger("frontedit.site")

_HOME_MARKUP = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{{ page.title }}</title></head>
<body>
<header><h1>{{ page.title | edit("title") }}</h1></header>
<p class="lead" edit="headline">{{ page.headline }}</p>
<main class="body">{{ page.body | edit("body") }}</main>
<edit fields="summary,contact_email"><section class="summary">{{ page.summary }}
<a href="mailto:{{ page.contact_email }}">{{ page.contact_email }}</a></section></edit>
<ul class="features">
{% for item in page.features %}<li>
<h2>{{ item.title | edit("title", page=item.id) }}</h2>
<p>{{ item.summary | edit("summary", page=item.id) }}</p>
</li>
{% endfor %}</ul>
</body>
</html>
"""

_BASIC_MARKUP = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{{ page.title }}</title></head>
<body>
<h1>{{ page.title | edit("title") }}</h1>
<div class="body">{{ page.body | edit("body") }}</div>
<footer edit="updated_on">Updated {{ page.updated_on }}</footer>
</body>
</html>
"""

DEFAULT_SITE: dict = {
    "fields": [
        {"name": "title", "type": "page_title", "label": "Title", "config": {"required": True, "maxlength": 200}},
        {"name": "headline", "type": "text"},
        {"name": "summary", "type": "textarea"},
        {"name": "body", "type": "textarea", "config": {"content_type": "html", "settings": {"toolbar": "basic"}}},
        {"name": "contact_email", "type": "email"},
        {"name": "updated_on", "type": "datetime"},
        {"name": "features", "type": "repeater"},
    ],
    "templates": [
        {
            "name": "home",
            "fields": ["title", "headline", "summary", "body", "contact_email", "features"],
            "edit_roles": ["admin", "editor"],
            "markup": _HOME_MARKUP,
        },
        {
            "name": "basic-page",
            "fields": ["title", "body", "updated_on"],
            "markup": _BASIC_MARKUP,
        },
        {"name": "feature", "fields": ["title", "summary"]},
    ],
    "pages": [
        {
            "id": 1,
            "template": "home",
            "path": "/",
            "data": {
                "title": "Welcome",
                "headline": "Edit this page where you read it",
                "summary": "Content blocks are edited in place.\nLonger edits open in a form.",
                "body": "<p>Sign in as an editor to see the <strong>edit controls</strong>.</p>",
                "contact_email": "hello@example.com",
            },
            "items": {
                "features": [
                    {"id": 10, "template": "feature", "data": {"title": "Inline", "summary": "Single fields edit in place."}},
                    {"id": 11, "template": "feature", "data": {"title": "Modal", "summary": "Field groups open a form."}},
                ]
            },
        },
        {
            "id": 2,
            "template": "basic-page",
            "path": "/about/",
            "data": {"title": "About", "body": "<p>About this site.</p>", "updated_on": "2024-01-01"},
        },
    ],
}


@dataclass
class SiteDefinitionError(FrontEditError):
    errors: list | None = None


def load_definition(path: str | None) -> dict:
    if not path:
        return DEFAULT_SITE
    file_path = Path(path)
    try:
        definition = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise SiteDefinitionError(f"Cannot read site definition {path}: {exc}") from exc
    if not isinstance(definition, dict):
        raise SiteDefinitionError(f"Site definition {path} must be a JSON object")
    return definition


def _create_items(store, owner, items: dict) -> int:
    created = 0
    for owner_field, entries in (items or {}).items():
        for entry in entries or []:
            store.create(
                entry["template"],
                data=entry.get("data"),
                record_id=entry.get("id"),
                owner_id=owner.id,
                owner_field=owner_field,
                locked=bool(entry.get("locked")),
            )
            created += 1
    return created


def load_site(store, definition: dict | None = None):
    """Register fields and templates, then create pages and their items."""
    definition = definition or DEFAULT_SITE
    templates = definition.get("templates") or []
    field_names = [fdef["name"] for fdef in definition.get("fields") or []]
    errors: list[dict] = []
    for tpl in templates:
        errors.extend(validate_page_template(tpl["name"], tpl.get("markup"), field_names))
    if errors:
        raise SiteDefinitionError("Invalid page template", errors=errors)

    for fdef in definition.get("fields") or []:
        store.add_field(
            fdef["name"],
            fdef.get("type", "text"),
            field_id=fdef.get("id"),
            label=fdef.get("label", ""),
            config=fdef.get("config"),
            flags=fdef.get("flags"),
        )
    for tpl in templates:
        store.add_template(tpl["name"], tpl.get("fields") or [], edit_roles=tpl.get("edit_roles"), markup=tpl.get("markup", ""))

    if hasattr(store, "ensure_schema"):
        store.ensure_schema()
    pages = 0
    items = 0
    for pdef in definition.get("pages") or []:
        existing = store.get(pdef["id"]) if pdef.get("id") is not None else None
        if existing is not None:
            continue
        page = store.create(
            pdef["template"],
            path=pdef.get("path"),
            data=pdef.get("data"),
            record_id=pdef.get("id"),
            locked=bool(pdef.get("locked")),
        )
        pages += 1
        items += _create_items(store, page, pdef.get("items") or {})
    _logger.info("site_loaded fields=%s templates=%s pages=%s items=%s", len(definition.get("fields") or []), len(templates), pages, items)
    return store


def page_context(store, record, language_id: int | None = None) -> dict[str, Any]:
    """Formatted field values for a page template, with repeater items expanded."""
    values: dict[str, Any] = {"id": record.id, "path": record.path}
    for fd in record.fields():
        if fd.type.name == "repeater":
            values[fd.name] = [
                {"id": child.id, **{cf.name: child.get_formatted(cf.name, language_id) for cf in child.fields()}}
                for child in store.children(record.id, fd.name)
            ]
        else:
            values[fd.name] = record.get_formatted(fd.name, language_id)
    return {"page": values}
