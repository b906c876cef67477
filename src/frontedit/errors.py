"""Error taxonomy for marker processing and edit saving."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class FrontEditError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


@dataclass
class MarkerParseSkip(FrontEditError):
    """A marker that cannot be resolved; its content is kept and no editor is attached."""

    marker: str | None = None


@dataclass
class PermissionDenied(FrontEditError):
    pass


@dataclass
class FieldValidationError(FrontEditError):
    field: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.field}: {self.message}" if self.field else self.message


@dataclass
class PersistenceError(FrontEditError):
    record_id: int | None = None


@dataclass
class SecurityError(FrontEditError):
    pass
