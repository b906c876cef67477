"""Normalization of contenteditable payloads.

Plain-text fields get their line-break markup turned into newlines and the rest
of the markup dropped. Rich fields keep an allow-listed subset of HTML.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction, Tag

_BREAK_RE = re.compile(
    r"<br\s*/?>|</p>\s*<p[^>]*>|</div>\s*<div[^>]*>|<div[^>]*>",
    re.IGNORECASE,
)

# removed together with their content
_DROP_TAGS = {
    "script", "style", "iframe", "frame", "frameset", "object", "embed", "applet",
    "svg", "math", "template", "noscript", "form", "input", "button", "select",
    "textarea", "link", "meta", "base", "title", "head",
}

_ALLOWED_TAGS = {
    "p", "br", "hr", "div", "span", "b", "strong", "i", "em", "u", "s", "sub", "sup",
    "a", "img", "ul", "ol", "li", "blockquote", "pre", "code",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "table", "thead", "tbody", "tfoot", "tr", "th", "td",
}

_GLOBAL_ATTRS = {"class", "title"}
_TAG_ATTRS = {
    "a": {"href", "target", "rel"},
    "img": {"src", "alt", "width", "height"},
    "td": {"colspan", "rowspan"},
    "th": {"colspan", "rowspan"},
}
_URL_ATTRS = {"href", "src"}
_URL_SCHEMES = {"http", "https", "mailto", "tel"}
_SPECIAL_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
_CONTROL_RE = re.compile(r"[\x00-\x20\x7f]+")


def breaks_to_newlines(value: str) -> str:
    """Turn the line-break markup a contenteditable produces into ``\\n``."""
    if not isinstance(value, str) or "<" not in value:
        return value
    text = _BREAK_RE.sub("\n", value)
    # a leading <div> opens the first line rather than breaking it
    if text.startswith("\n") and not value.lower().startswith("<br"):
        text = text[1:]
    return text


def _soup(value: str) -> BeautifulSoup:
    return BeautifulSoup(value, "html.parser")


def strip_tags(value: str) -> str:
    soup = _soup(value)
    for tag in soup(("script", "style")):
        tag.decompose()
    return soup.get_text()


def decode_plain_text(value):
    """Drop markup and decode entities; non-strings pass through."""
    if not isinstance(value, str) or ("<" not in value and "&" not in value):
        return value
    return strip_tags(value)


def is_safe_url(value: str) -> bool:
    compact = _CONTROL_RE.sub("", value).lower()
    scheme, sep, _ = compact.partition(":")
    if not sep or any(ch in scheme for ch in "/?#"):
        return True
    return scheme in _URL_SCHEMES


def _clean_attrs(tag: Tag) -> None:
    allowed = _GLOBAL_ATTRS | _TAG_ATTRS.get(tag.name, set())
    for name in list(tag.attrs):
        key = name.lower()
        if key not in allowed:
            del tag.attrs[name]
            continue
        if key in _URL_ATTRS:
            value = tag.attrs[name]
            if isinstance(value, list):
                value = " ".join(value)
            if not is_safe_url(value):
                del tag.attrs[name]


def _clean_children(parent) -> None:
    for child in list(parent.children):
        if isinstance(child, _SPECIAL_STRINGS):
            child.extract()
        elif isinstance(child, Tag):
            name = (child.name or "").lower()
            if name in _DROP_TAGS:
                child.decompose()
            elif name in _ALLOWED_TAGS:
                _clean_attrs(child)
                _clean_children(child)
            else:
                _clean_children(child)
                child.unwrap()


def sanitize_html(value: str) -> str:
    """Keep allow-listed tags and attributes; unknown tags are unwrapped."""
    soup = _soup(value)
    _clean_children(soup)
    return str(soup).strip()
