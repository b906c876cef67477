"""Modal edit form: the page behind a modal trigger's ``data-href``."""

from __future__ import annotations

import re
from typing import Any, Iterable

from jinja2 import Environment

from save_pipeline import KEY_SEPARATOR, STATUS_NO_CHANGES, STATUS_PARTIAL, STATUS_SUCCESS, SaveOutcome
from widgets import enum_values, get_input_control

_FIELD_KEY_RE = re.compile(r"^fields\[([^\]]+)\]$")

_INPUT_TYPES = {
    "email": "email",
    "url": "url",
    "integer": "number",
    "float": "number",
    "datetime": "date",
}

_STATUS_MESSAGES = {
    STATUS_SUCCESS: "Saved",
    STATUS_PARTIAL: "Saved with errors",
    STATUS_NO_CHANGES: "No changes",
}

_env = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)

_FORM = _env.from_string(
    """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Edit {{ record_id }}</title></head>
<body class="fe-edit-form">
{% if message %}<p class="fe-edit-status fe-edit-status-{{ status }}">{{ message }}</p>{% endif %}
{% if errors %}<ul class="fe-edit-errors">{% for error in errors %}<li>{{ error }}</li>{% endfor %}</ul>{% endif %}
<form method="post" action="{{ action }}">
<input type="hidden" name="id" value="{{ record_id }}">
<input type="hidden" name="csrf" value="{{ token }}">
{% if language is not none %}<input type="hidden" name="language" value="{{ language }}">{% endif %}
{% for item in items %}
<p class="fe-edit-field fe-edit-{{ item.widget }}">
<label for="fe-input-{{ item.name }}">{{ item.label }}</label>
{% if item.control == "textarea" %}
<textarea id="fe-input-{{ item.name }}" name="{{ item.key }}" rows="6">{{ item.value }}</textarea>
{% elif item.control == "checkbox" %}
<input type="hidden" name="{{ item.key }}" value="0">
<input id="fe-input-{{ item.name }}" type="checkbox" name="{{ item.key }}" value="1"{% if item.value %} checked{% endif %}>
{% elif item.control == "select" %}
<select id="fe-input-{{ item.name }}" name="{{ item.key }}" multiple>
{% for option in item.options %}<option value="{{ option }}"{% if option in item.selected %} selected{% endif %}>{{ option }}</option>
{% endfor %}</select>
{% elif item.control == "readonly" %}
<span id="fe-input-{{ item.name }}" class="fe-edit-readonly">{{ item.value }}</span>
{% else %}
<input id="fe-input-{{ item.name }}" type="{{ item.control }}" name="{{ item.key }}" value="{{ item.value }}"{% if item.step %} step="{{ item.step }}"{% endif %}>
{% endif %}
</p>
{% endfor %}
<button type="submit">Save</button>
</form>
</body>
</html>
"""
)


def form_key(record_id: int, name: str) -> str:
    return f"fields[{record_id}{KEY_SEPARATOR}{name}]"


def _display_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return value


def _form_item(record, fd, language_id: int | None) -> dict:
    widget = get_input_control(record, fd, language_id)
    value = widget.get_value()
    item = {
        "name": fd.name,
        "label": fd.label,
        "key": form_key(record.id, fd.name),
        "widget": widget.name,
        "value": _display_value(value),
        "step": None,
    }
    if widget.name == "external":
        item["control"] = "readonly"
    elif widget.name == "checkbox":
        item["control"] = "checkbox"
    elif widget.name == "select":
        item["control"] = "select"
        item["options"] = [str(v) for v in enum_values(fd)]
        item["selected"] = [str(v) for v in (value or [])]
    elif fd.block or widget.name == "rich":
        item["control"] = "textarea"
    else:
        item["control"] = _INPUT_TYPES.get(widget.name, "text")
        if widget.name == "float":
            item["step"] = "any"
    return item


def render_edit_form(
    record,
    fields: Iterable,
    token: str,
    action: str,
    language_id: int | None = None,
    outcome: SaveOutcome | None = None,
) -> str:
    status = outcome.status if outcome is not None else None
    return _FORM.render(
        record_id=record.id,
        token=token,
        action=action,
        language=language_id,
        items=[_form_item(record, fd, language_id) for fd in fields],
        status=status,
        message=_STATUS_MESSAGES.get(status, "Not saved" if outcome is not None else ""),
        errors=outcome.errors if outcome is not None else [],
    )


def fields_from_form(form) -> dict:
    """Collect ``fields[KEY]`` entries; repeated keys keep the last value unless a list was posted."""
    fields: dict = {}
    for key in form.keys():
        match = _FIELD_KEY_RE.match(key)
        if match is None or match.group(1) in fields:
            continue
        values = form.getlist(key)
        if len(values) > 1 and not (len(values) == 2 and values[0] == "0"):
            fields[match.group(1)] = [str(v) for v in values]
        else:
            fields[match.group(1)] = values[-1] if values else ""
    return fields
