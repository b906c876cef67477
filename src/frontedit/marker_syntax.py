"""Micro-parsers for the two editable-region marker syntaxes.

Tag form::

    <edit [field|name|fields|names=]LIST [page=ID]>INNER</edit>

Attribute form::

    <TAG ... edit=ID.field1,field2 ...>

LIST may embed a record locator as ``ID.field`` or ``ID:field``. Both
``123.title`` and ``title.123`` address field ``title`` on record 123.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache

from .names import is_digits, split_field_list

DEFAULT_TAG = "edit"
DEFAULT_ATTR = "edit"

_NAME_KEYS = {"field", "name", "fields", "names"}
_PAGE_KEYS = {"page"}

_TOKEN_RE = re.compile(
    r"""([A-Za-z_][\w-]*)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"']+))"""
    r"""|"([^"]*)"|'([^']*)'|([^\s"'=]+)"""
)

_ATTR_VALUE = r"""(?:"[^"]*"|'[^']*'|[^\s>"']+)"""
# an unquoted marker value stops before the slash of a self-closing tag
_MARKER_VALUE = r"""(?:"[^"]*"|'[^']*'|(?:[^\s>"'/]|/(?!>))+)"""


@dataclass
class MarkerTarget:
    names: list[str] = field(default_factory=list)
    locator: str = ""

    @property
    def field_list(self) -> str:
        return ",".join(self.names)


@lru_cache(maxsize=16)
def tag_pattern(tag: str = DEFAULT_TAG) -> re.Pattern:
    """Innermost ``<tag ...>inner</tag>`` pair; inner never opens another marker."""
    name = re.escape(tag)
    return re.compile(
        rf"<{name}(\s[^>]*)?>((?:(?!<{name}[\s>]).)*?)</{name}\s*>",
        re.DOTALL | re.IGNORECASE,
    )


@lru_cache(maxsize=16)
def attr_pattern(attr: str = DEFAULT_ATTR) -> re.Pattern:
    """Opening tag carrying `` attr=value``; groups are tag, before, value, after.

    The markup before and after the marker is matched as whole attribute tokens,
    so text inside another attribute's quoted value is never taken for a marker.
    """
    name = re.escape(attr)
    token = rf"""\s+(?!{name}\s*=)[^\s=<>"'/]+(?:\s*=\s*{_ATTR_VALUE})?"""
    return re.compile(
        rf"""<([A-Za-z][\w:.-]*)((?:{token})*?)\s+{name}\s*=\s*({_MARKER_VALUE})((?:\s+[^\s=<>"'/]+(?:\s*=\s*{_ATTR_VALUE})?)*\s*/?\s*)>""",
        re.IGNORECASE,
    )


def unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def split_locator(value: str) -> tuple[str, str]:
    """Split ``a.b`` / ``a:b`` into ``(names, locator)``.

    The second token is the locator when it is all digits, so the first token
    stays the field list on ambiguous input such as ``123.456``.
    """
    sep = ":" if ":" in value else "."
    if sep not in value:
        return value, ""
    first, second = value.split(sep, 1)
    first, second = first.strip(), second.strip()
    if is_digits(second):
        return first, second
    return second, first


def order_names_and_locator(names: str, locator: str) -> tuple[str, str]:
    if locator and is_digits(names) and not is_digits(locator):
        return locator, names
    return names, locator


def parse_tag_marker(attr_text: str | None) -> MarkerTarget:
    names_raw: list[str] = []
    locator = ""
    for match in _TOKEN_RE.finditer(attr_text or ""):
        key = match.group(1)
        if key is not None:
            value = next((g for g in match.group(2, 3, 4) if g is not None), "")
            key = key.lower()
            if key in _NAME_KEYS:
                names_raw.append(value)
            elif key in _PAGE_KEYS:
                locator = value.strip()
            continue
        value = next((g for g in match.group(5, 6, 7) if g is not None), "")
        if value:
            names_raw.append(value)
    names = ",".join(n.strip() for n in names_raw if n.strip())
    if not locator and (":" in names or "." in names):
        names, locator = split_locator(names)
    else:
        names, locator = order_names_and_locator(names, locator)
    return MarkerTarget(names=split_field_list(names), locator=locator)


def parse_attr_marker(value: str | None) -> MarkerTarget:
    raw = unquote((value or "").strip()).strip()
    names, locator = split_locator(raw)
    return MarkerTarget(names=split_field_list(names), locator=locator)
