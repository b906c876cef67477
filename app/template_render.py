"""Sandboxed Jinja2 rendering of page templates.

A page template sees one ``page`` mapping (built by ``app.site.page_context``)
and marks editable output with the ``edit`` filter, which wraps the value in a
tag marker for the post-render scan.
"""

from __future__ import annotations

from typing import Any, Iterable

from jinja2 import StrictUndefined, TemplateSyntaxError, Undefined, meta, nodes
from jinja2.sandbox import ImmutableSandboxedEnvironment
from markupsafe import escape

from frontedit.marker_syntax import DEFAULT_TAG

PAGE_VARS = {"page"}

_GLOBALS = {"range": range}

_ALLOWED_FILTERS = {
    "default",
    "lower",
    "upper",
    "title",
    "trim",
    "replace",
    "round",
    "length",
    "int",
    "float",
}

_ALLOWED_TESTS = {
    "defined",
    "undefined",
    "none",
    "equalto",
}


class _LockedSandbox(ImmutableSandboxedEnvironment):
    def is_safe_attribute(self, obj, attr, value) -> bool:
        return False

    def is_safe_callable(self, obj) -> bool:
        return False


def edit_marker(value: Any, field: str, page: Any = None, tag: str = DEFAULT_TAG) -> str:
    """Wrap rendered output in a tag marker: ``{{ page.title | edit("title") }}``."""
    attrs = f' field="{escape(field)}"'
    if page not in (None, ""):
        attrs += f' page="{escape(page)}"'
    inner = "" if value is None else str(value)
    return f"<{tag}{attrs}>{inner}</{tag}>"


def _env(strict: bool, tag: str = DEFAULT_TAG) -> _LockedSandbox:
    env = _LockedSandbox(autoescape=False, undefined=StrictUndefined if strict else Undefined)
    env.globals = dict(_GLOBALS)
    env.filters = {key: val for key, val in env.filters.items() if key in _ALLOWED_FILTERS}
    env.filters["edit"] = lambda value, field, page=None: edit_marker(value, field, page, tag)
    env.tests = {key: val for key, val in env.tests.items() if key in _ALLOWED_TESTS}
    return env


def _page_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _page_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_page_value(val) for val in value]
    return str(value)


def _error(label: str, message: str, lineno: int | None) -> dict:
    return {"message": f"{label}: {message}", "line": lineno or 1}


def validate_page_template(label: str, text: str | None, fields: Iterable[str] | None = None) -> list[dict]:
    """Check a page template before it is registered.

    Reports syntax errors, variables other than ``page``, filters outside the
    sandbox allow-list, and ``edit`` filters whose field name is not a string
    literal or, when ``fields`` is given, not a known field.
    """
    if not text:
        return []
    env = _env(strict=False)
    try:
        parsed = env.parse(text)
    except TemplateSyntaxError as exc:
        return [_error(label, exc.message or "syntax error", exc.lineno)]

    errors: list[dict] = []
    for name in sorted(meta.find_undeclared_variables(parsed) - PAGE_VARS - set(_GLOBALS)):
        errors.append(_error(label, f"unknown variable '{name}'", None))
    known = set(fields) if fields is not None else None
    for node in parsed.find_all(nodes.Filter):
        if node.name not in env.filters:
            errors.append(_error(label, f"filter '{node.name}' is not allowed", node.lineno))
            continue
        if node.name != "edit":
            continue
        first = node.args[0] if node.args else None
        if not isinstance(first, nodes.Const) or not isinstance(first.value, str):
            errors.append(_error(label, "edit filter needs a literal field name", node.lineno))
        elif known is not None and first.value not in known:
            errors.append(_error(label, f"edit filter names unknown field '{first.value}'", node.lineno))
    return errors


def render_template(text: str | None, context: dict[str, Any], strict: bool = True, tag: str = DEFAULT_TAG) -> str:
    env = _env(strict=strict, tag=tag)
    tmpl = env.from_string(text or "")
    return tmpl.render(_page_value(context or {}))
