"""Remove edit markers from markup while keeping the content they wrap."""

from __future__ import annotations

import re

from frontedit.marker_syntax import DEFAULT_ATTR, DEFAULT_TAG, attr_pattern, tag_pattern

_MAX_PASSES = 50


def strip_tag_markers(html: str, tag: str = DEFAULT_TAG) -> str:
    pattern = tag_pattern(tag)
    for _ in range(_MAX_PASSES):
        updated = pattern.sub(lambda m: m.group(2), html)
        if updated == html:
            break
        html = updated
    return html


def strip_attr_markers(html: str, attr: str = DEFAULT_ATTR) -> str:
    def _drop(match: re.Match) -> str:
        return f"<{match.group(1)}{match.group(2)}{match.group(4)}>"

    pattern = attr_pattern(attr)
    # an element may carry the attribute more than once
    for _ in range(_MAX_PASSES):
        updated = pattern.sub(_drop, html)
        if updated == html:
            break
        html = updated
    return html


def strip_markers(html: str, tag: str = DEFAULT_TAG, attr: str = DEFAULT_ATTR) -> str:
    if not html:
        return html
    return strip_attr_markers(strip_tag_markers(html, tag), attr)
