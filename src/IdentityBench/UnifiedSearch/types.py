# === NAVMAP v1 ===
# {
#   "module": "IdentityBench.UnifiedSearch.types",
#   "purpose": "Value types shared by the unified search pipeline",
#   "sections": [
#     {"id": "category", "name": "Category", "anchor": "class-category", "kind": "class"},
#     {"id": "usecase", "name": "UseCase", "anchor": "class-usecase", "kind": "class"},
#     {"id": "hit", "name": "Hit", "anchor": "class-hit", "kind": "class"},
#     {"id": "rankedresult", "name": "RankedResult", "anchor": "class-rankedresult", "kind": "class"},
#     {"id": "customerdetail", "name": "CustomerDetail", "anchor": "class-customerdetail", "kind": "class"},
#     {"id": "compositeresult", "name": "CompositeResult", "anchor": "class-compositeresult", "kind": "class"},
#     {"id": "unifiedsearchrequest", "name": "UnifiedSearchRequest", "anchor": "class-unifiedsearchrequest", "kind": "class"},
#     {"id": "unifiedsearchresponse", "name": "UnifiedSearchResponse", "anchor": "class-unifiedsearchresponse", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Typed payloads exchanged between parser, aggregator, ranker, and service.

Hits are produced once per parse and never mutated afterwards, so they are
frozen. Requests and responses follow the slotted dataclass convention used
for transport-facing payloads.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Mapping, Optional, Sequence, Union

from .errors import RequestValidationError

__all__ = (
    "Category",
    "UseCase",
    "Hit",
    "RankedResult",
    "CustomerDetail",
    "CompositeResult",
    "UnifiedSearchRequest",
    "UnifiedSearchResponse",
)

_USE_CASE_PATTERN = re.compile(r"^uc[-_ ]?([1-7])$", re.IGNORECASE)


class Category(str, Enum):
    """Semantic category of a matched identity field."""

    PHONE = "PHONE"
    SSN_LAST4 = "SSN_LAST4"
    ACCOUNT_NUMBER = "ACCOUNT_NUMBER"
    ACCOUNT_LAST4 = "ACCOUNT_LAST4"
    EMAIL = "EMAIL"
    CITY = "CITY"
    STATE = "STATE"
    ZIP = "ZIP"


class UseCase(Enum):
    """Fixed identity-search use cases and the categories each requires.

    Examples:
        >>> UseCase.from_identifier("uc-1") is UseCase.UC1
        True
        >>> sorted(c.value for c in UseCase.UC3.required)
        ['ACCOUNT_LAST4', 'PHONE']
    """

    UC1 = (1, frozenset({Category.PHONE, Category.SSN_LAST4}))
    UC2 = (2, frozenset({Category.PHONE, Category.SSN_LAST4, Category.ACCOUNT_LAST4}))
    UC3 = (3, frozenset({Category.PHONE, Category.ACCOUNT_LAST4}))
    UC4 = (4, frozenset({Category.ACCOUNT_NUMBER, Category.SSN_LAST4}))
    UC5 = (
        5,
        frozenset(
            {
                Category.CITY,
                Category.STATE,
                Category.ZIP,
                Category.SSN_LAST4,
                Category.ACCOUNT_LAST4,
            }
        ),
    )
    UC6 = (6, frozenset({Category.EMAIL, Category.ACCOUNT_LAST4}))
    UC7 = (7, frozenset({Category.EMAIL, Category.PHONE, Category.ACCOUNT_NUMBER}))

    @property
    def number(self) -> int:
        return self.value[0]

    @property
    def required(self) -> FrozenSet[Category]:
        return self.value[1]

    @classmethod
    def from_identifier(cls, identifier: Union["UseCase", str, int]) -> "UseCase":
        """Resolve a use case from an enum member, ``"UCn"`` string, or integer.

        Args:
            identifier: Caller supplied use-case reference.

        Returns:
            Matching :class:`UseCase` member.

        Raises:
            RequestValidationError: If the identifier does not name one of the
                seven use cases.
        """
        if isinstance(identifier, cls):
            return identifier
        number: Optional[int] = None
        if isinstance(identifier, bool):
            number = None
        elif isinstance(identifier, int):
            number = identifier
        elif isinstance(identifier, str):
            text = identifier.strip()
            match = _USE_CASE_PATTERN.match(text)
            if match:
                number = int(match.group(1))
            elif text.isdigit():
                number = int(text)
        for member in cls:
            if member.number == number:
                return member
        raise RequestValidationError(
            f"Invalid UC case number: {identifier}. Must be 1-7.", field="use_case"
        )


@dataclass(frozen=True)
class Hit:
    """Single "this field of this entity matched" record from a search response.

    Attributes:
        source_collection: Normalised collection label (``identity``, ``phone``...).
        entity_key: Customer number identifying the entity.
        matched_field: Field name resolved from the source precedence table, or
            ``None`` when the source is unknown.
        matched_value: Value of the matched field, empty when absent.
        score: Relevance score reported by the search collaborator.
        fields: Scalar payload fields keyed by lower-cased name.

    Examples:
        >>> hit = Hit("phone", "1001", "phone_number", "555-0100", 92.0)
        >>> hit.score
        92.0
    """

    source_collection: str
    entity_key: str
    matched_field: Optional[str]
    matched_value: str
    score: float
    fields: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class RankedResult:
    """Entity that survived ranking, with its average score."""

    entity_key: str
    average_score: float
    categories: FrozenSet[Category] = frozenset()


@dataclass(frozen=True)
class CustomerDetail:
    """Flat customer detail record returned by the detail store.

    Attributes:
        ecn: Enterprise customer number (same value as the entity key).
        company_id: Owning company identifier.
        entity_type: ``INDIVIDUAL``, ``BUSINESS`` or ``UNKNOWN``.
        name: Display name.
        alternate_name: Optional alias or doing-business-as name.
        tax_id_number: Tax identifier (masked in logs).
        tax_id_type: ``SSN`` or ``EIN``.
        birth_date: ISO formatted date of birth, when known.
        address_line: First address line.
        city_name: City.
        state: State or province code.
        postal_code: Postal code.
        country_code: ISO country code.
        customer_type: Business segment label.
    """

    ecn: str
    company_id: int = 1
    entity_type: str = "UNKNOWN"
    name: str = ""
    alternate_name: Optional[str] = None
    tax_id_number: Optional[str] = None
    tax_id_type: Optional[str] = None
    birth_date: Optional[str] = None
    address_line: Optional[str] = None
    city_name: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country_code: str = "US"
    customer_type: Optional[str] = None

    @classmethod
    def placeholder(cls, entity_key: str) -> "CustomerDetail":
        """Return the minimal record used when no detail is available."""
        return cls(ecn=entity_key, name=f"Customer {entity_key}")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "CustomerDetail":
        """Build a detail record from a loosely typed mapping."""
        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in payload.items() if key in known}
        if "ecn" not in values:
            raise ValueError("customer detail payload requires 'ecn'")
        values["ecn"] = str(values["ecn"])
        if "company_id" in values and values["company_id"] is not None:
            values["company_id"] = int(values["company_id"])
        return cls(**values)

    def as_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass(slots=True)
class CompositeResult:
    """Ranked entity joined with its detail record.

    Attributes:
        entity_key: Customer number.
        average_score: Mean hit score used for ordering.
        ranking_score: ``average_score`` rounded to the nearest integer.
        detail: Detail record, a placeholder when ``degraded`` is true.
        degraded: True when the detail lookup failed or found nothing.
        matched_categories: Categories covered by the entity's hits.
    """

    entity_key: str
    average_score: float
    ranking_score: int
    detail: CustomerDetail
    degraded: bool = False
    matched_categories: FrozenSet[Category] = frozenset()

    def as_dict(self) -> dict[str, Any]:
        return {
            "entity_key": self.entity_key,
            "ranking_score": self.ranking_score,
            "average_score": self.average_score,
            "degraded": self.degraded,
            "matched_categories": sorted(c.value for c in self.matched_categories),
            "detail": self.detail.as_dict(),
        }


@dataclass(slots=True)
class UnifiedSearchRequest:
    """Caller request for a unified multi-criteria search.

    Attributes:
        terms: Raw search terms; blank and ``None`` entries are ignored.
        use_case: Use case whose categories every result must cover. ``None``
            is only valid in best-effort mode.
        limit: Maximum number of ranked results.
        best_effort: Rank by score alone, without category coverage.

    Examples:
        >>> request = UnifiedSearchRequest(terms=["555-0100", "6789"], use_case="UC1", limit=5)
        >>> request.limit
        5
    """

    terms: Sequence[Optional[str]]
    use_case: Optional[Union[UseCase, str, int]] = None
    limit: int = 10
    best_effort: bool = False


@dataclass(slots=True)
class UnifiedSearchResponse:
    """Ordered results plus request diagnostics.

    Attributes:
        results: Composite results in rank order.
        query: Composed fuzzy disjunction sent to the search collaborator.
        total_hits: Number of hits parsed from the response.
        entity_count: Number of distinct entities among the hits.
        parse_failures: Number of hit-array elements that were dropped.
        timings: Stage durations in milliseconds.
    """

    results: list[CompositeResult]
    query: str
    total_hits: int = 0
    entity_count: int = 0
    parse_failures: int = 0
    timings: Mapping[str, float] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "results": [result.as_dict() for result in self.results],
            "query": self.query,
            "total_hits": self.total_hits,
            "entity_count": self.entity_count,
            "parse_failures": self.parse_failures,
            "timings": dict(self.timings),
        }
