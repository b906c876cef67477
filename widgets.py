"""Input widgets: type-specific decoding and validation of posted values."""

from __future__ import annotations

import json
import math
import re
from datetime import date, datetime
from typing import Any, Dict, Type

from field_types import FieldDescriptor, LanguageValue
from frontedit.text_normalize import sanitize_html

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL_RE = re.compile(r"^(https?://[^\s/$.?#][^\s]*|/[^\s]*)$", re.IGNORECASE)


def enum_values(field: FieldDescriptor) -> list:
    options = field.config.get("options") or field.config.get("values") or []
    values = []
    for opt in options:
        if isinstance(opt, dict) and "value" in opt:
            values.append(opt["value"])
        else:
            values.append(opt)
    return values


class Widget:
    name = "text"

    def __init__(self, record, field: FieldDescriptor, language_id: int | None = None) -> None:
        self.record = record
        self.field = field
        self.language_id = language_id
        self._value: Any = None
        self._initial: Any = None
        self._changed = False

    def set_value(self, value: Any) -> None:
        self._value = value
        self._initial = value
        self._changed = False

    def get_value(self) -> Any:
        return self._value

    def is_changed(self) -> bool:
        return self._changed

    def render_data(self) -> Dict[str, str]:
        return {}

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        return raw, []

    def process_input(self, raw: Any) -> list[str]:
        value, errors = self.decode(raw)
        if errors:
            return errors
        if self.field.config.get("required") and value in (None, "", []):
            return ["Missing required value"]
        self._value = value
        self._changed = value != self._initial
        return []


class TextWidget(Widget):
    name = "text"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        if raw is None:
            raw = ""
        if not isinstance(raw, (str, int, float)) or isinstance(raw, bool):
            return None, ["Value must be a string"]
        value = str(raw)
        if not self.field.block:
            value = value.replace("\r", "").replace("\n", " ").strip()
        maxlength = self.field.config.get("maxlength")
        if isinstance(maxlength, int) and maxlength > 0 and len(value) > maxlength:
            return None, [f"Value exceeds max length of {maxlength}"]
        pattern = self.field.config.get("pattern")
        if pattern and value and not re.fullmatch(pattern, value):
            return None, ["Value does not match the required pattern"]
        return value, []


class TextareaWidget(TextWidget):
    name = "textarea"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        if isinstance(raw, str):
            raw = raw.replace("\r\n", "\n")
        return super().decode(raw)


class RichTextWidget(TextareaWidget):
    name = "rich"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        value, errors = super().decode(raw)
        if errors:
            return value, errors
        return sanitize_html(value), []

    def render_data(self) -> Dict[str, str]:
        settings = self.field.config.get("settings") or {}
        data = {"data-config": self.field.config.get("config_name") or f"fe_{self.field.name}"}
        if settings:
            data["data-settings"] = json.dumps(settings, sort_keys=True, separators=(",", ":"))
        return data


class EmailWidget(TextWidget):
    name = "email"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        value, errors = super().decode(raw)
        if errors or not value:
            return value, errors
        if not _EMAIL_RE.match(value):
            return None, ["Value must be an email address"]
        return value.lower(), []


class UrlWidget(TextWidget):
    name = "url"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        value, errors = super().decode(raw)
        if errors or not value:
            return value, errors
        if not _URL_RE.match(value):
            return None, ["Value must be an http(s) or site-relative URL"]
        return value, []


class IntegerWidget(Widget):
    name = "integer"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None, []
        if isinstance(raw, bool):
            return None, ["Value must be a number"]
        try:
            value = int(str(raw).strip())
        except ValueError:
            return None, ["Value must be a whole number"]
        return self._check_range(value)

    def _check_range(self, value):
        low = self.field.config.get("min")
        high = self.field.config.get("max")
        if low is not None and value < low:
            return None, [f"Value must be at least {low}"]
        if high is not None and value > high:
            return None, [f"Value must be at most {high}"]
        return value, []

    def render_data(self) -> Dict[str, str]:
        data = {}
        for key in ("min", "max"):
            if self.field.config.get(key) is not None:
                data[f"data-{key}"] = str(self.field.config[key])
        return data


class FloatWidget(IntegerWidget):
    name = "float"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None, []
        if isinstance(raw, bool):
            return None, ["Value must be a number"]
        try:
            value = float(str(raw).strip())
        except ValueError:
            return None, ["Value must be a number"]
        if not math.isfinite(value):
            return None, ["Value must be a finite number"]
        precision = self.field.config.get("precision")
        if isinstance(precision, int):
            value = round(value, precision)
        return self._check_range(value)


class DatetimeWidget(Widget):
    name = "datetime"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None, []
        if not isinstance(raw, str):
            return None, ["Value must be a date string"]
        value = raw.strip()
        try:
            if len(value) == 10:
                date.fromisoformat(value)
            else:
                datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None, ["Value must be YYYY-MM-DD or ISO8601"]
        return value, []


class CheckboxWidget(Widget):
    name = "checkbox"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        if isinstance(raw, str):
            return (1 if raw.strip().lower() in ("1", "true", "on", "yes") else 0), []
        return (1 if raw else 0), []


class SelectWidget(Widget):
    name = "select"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        allowed = enum_values(self.field)
        if raw is None or raw == "":
            return [], []
        values = raw if isinstance(raw, list) else [v for v in str(raw).split(",") if v.strip()]
        cleaned = []
        for val in values:
            match = next((a for a in allowed if str(a) == str(val).strip()), None)
            if match is None:
                return None, [f"Value must be one of {allowed}"]
            cleaned.append(match)
        return cleaned, []


class TagsWidget(Widget):
    name = "tags"

    def decode(self, raw: Any) -> tuple[Any, list[str]]:
        if raw is None or raw == "":
            return [], []
        values = raw if isinstance(raw, list) else str(raw).split(",")
        tags = []
        for val in values:
            tag = str(val).strip()
            if tag and tag not in tags:
                tags.append(tag)
        return tags, []


class ExternalWidget(Widget):
    name = "external"

    def process_input(self, raw: Any) -> list[str]:
        return ["This field can only be edited in the full editor"]


WIDGETS: Dict[str, Type[Widget]] = {
    "text": TextWidget,
    "textarea": TextareaWidget,
    "rich": RichTextWidget,
    "email": EmailWidget,
    "url": UrlWidget,
    "integer": IntegerWidget,
    "float": FloatWidget,
    "datetime": DatetimeWidget,
    "checkbox": CheckboxWidget,
    "select": SelectWidget,
    "tags": TagsWidget,
    "external": ExternalWidget,
}


def get_input_control(record, field: FieldDescriptor, language_id: int | None = None) -> Widget:
    widget_cls = WIDGETS.get(field.widget_name, TextWidget)
    widget = widget_cls(record, field, language_id)
    value = record.get(field.name)
    if isinstance(value, LanguageValue):
        value = value.get(language_id)
    widget.set_value(value)
    return widget
