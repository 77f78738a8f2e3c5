"""Typed errors raised by the template substitution engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class SlideFillError(Exception):
    """Base typed exception with stable error code and metadata."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    recoverable = False

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


class ArchiveNotFound(SlideFillError):
    """The template archive does not exist."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code="ARCHIVE_NOT_FOUND", message=message, details=details)


class ArchiveCorrupt(SlideFillError):
    """Input is not a zip package, or is missing structural parts."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code="ARCHIVE_CORRUPT", message=message, details=details)


class ArchiveWriteError(SlideFillError):
    """The output archive could not be serialized or written."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code="ARCHIVE_WRITE_ERROR", message=message, details=details)


class CatalogIncomplete(SlideFillError):
    """The package holds no slide markup parts."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code="CATALOG_INCOMPLETE", message=message, details=details)


class AmbiguousTokenSet(SlideFillError):
    """Placeholder token definitions overlap or are malformed."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code="AMBIGUOUS_TOKEN_SET", message=message, details=details)


class NoMediaCandidate(SlideFillError):
    """No slide references an image that can be replaced.

    Text substitution output is still valid when this is raised.
    """

    recoverable = True

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code="NO_MEDIA_CANDIDATE", message=message, details=details)
