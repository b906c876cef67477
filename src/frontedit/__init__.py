"""Front-end editing kernel utilities."""

from .errors import (
    FieldValidationError,
    FrontEditError,
    MarkerParseSkip,
    PermissionDenied,
    PersistenceError,
    SecurityError,
)
from .marker_syntax import MarkerTarget, parse_attr_marker, parse_tag_marker
from .names import is_canonical_field_name, sanitize_field_name

__all__ = [
    "FieldValidationError",
    "FrontEditError",
    "MarkerParseSkip",
    "MarkerTarget",
    "PermissionDenied",
    "PersistenceError",
    "SecurityError",
    "is_canonical_field_name",
    "parse_attr_marker",
    "parse_tag_marker",
    "sanitize_field_name",
]
