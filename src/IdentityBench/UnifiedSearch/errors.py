"""Exception hierarchy and failure records for unified identity search.

Unified search touches two external collaborators (the full-text search
capability and the customer detail store) and a hand-rolled response parser.
Failures are split by blast radius: problems confined to a single hit or a
single entity are captured as records and never abort the request, while
failures of the search round trip itself surface as exceptions so callers can
map them onto transport status codes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

__all__ = [
    "UnifiedSearchError",
    "ConfigurationError",
    "RequestValidationError",
    "CollaboratorFailure",
    "SearchCollaboratorError",
    "SearchCancelledError",
    "DetailLookupError",
    "ParseFailure",
    "ClassificationMiss",
]


class UnifiedSearchError(RuntimeError):
    """Base exception for unified search failures."""


class ConfigurationError(ValueError):
    """Raised when a configuration payload or file is invalid."""


class RequestValidationError(ValueError):
    """Raised when caller input fails validation before any collaborator call.

    Attributes:
        field: Name of the offending request field, when known.

    Examples:
        >>> error = RequestValidationError("limit must be greater than 0", field="limit")
        >>> error.field
        'limit'
    """

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class CollaboratorFailure(UnifiedSearchError):
    """Raised when an external collaborator cannot fulfil a request."""


class SearchCollaboratorError(CollaboratorFailure):
    """Raised when the search round trip fails; aborts the whole request."""


class SearchCancelledError(CollaboratorFailure):
    """Raised when the request deadline expires before the search call."""


class DetailLookupError(CollaboratorFailure):
    """Raised by detail stores for a single entity; converted into a degraded row."""

    def __init__(self, entity_key: str, message: str = "detail lookup failed") -> None:
        super().__init__(f"{message}: {entity_key}")
        self.entity_key = entity_key


@dataclass(frozen=True)
class ParseFailure:
    """Record describing why one hit-array element was dropped.

    Attributes:
        position: Zero-based index of the element inside the hit array.
        reason: Short machine-friendly reason (``missing_source``,
            ``missing_entity_key``, ``no_payload``).
        fragment: Leading characters of the offending element for diagnostics.
    """

    position: int
    reason: str
    fragment: str = ""


@dataclass(frozen=True)
class ClassificationMiss:
    """Record for a hit whose matched field maps to no category."""

    entity_key: str
    source_collection: str
    matched_field: Optional[str]
