"""In-memory stand-ins for the unified search index and the detail store.

Production deployments answer unified searches from a database-side full-text
index spanning four per-use-case views (identity, phone, account, address).
Tests and local runs cannot depend on that database, so this module provides:

- ``CustomerRecord``, the denormalised customer shape used by the sample data
  and JSONL datasets.
- ``InMemoryCustomerIndex``, implementing
  :class:`~IdentityBench.UnifiedSearch.interfaces.SearchCollaborator`. It
  decomposes the ``fuzzy(term) OR ...`` expression, scores every view field
  against every term with :func:`rapidfuzz.fuzz.ratio` and renders the same
  ``$count``/``$hit`` envelope the real index returns. Each hit's ``$data`` is
  projected to the field that matched, so one view row can yield several hits.
- ``InMemoryDetailStore``, implementing
  :class:`~IdentityBench.UnifiedSearch.interfaces.DetailStore`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from ..cancellation import Deadline
from ..errors import DetailLookupError, SearchCancelledError
from ..query import QueryBuilder
from ..types import CustomerDetail

__all__ = (
    "CustomerRecord",
    "InMemoryCustomerIndex",
    "InMemoryDetailStore",
    "load_customers",
    "parse_fuzzy_terms",
    "sample_customers",
)

_SEARCHABLE_FIELDS: Mapping[str, Tuple[str, ...]] = {
    "identity": ("email", "ssn_last4"),
    "phone": ("phone_number",),
    "account": ("account_number", "account_last4"),
    "address": ("city", "state", "zip"),
}
_DESCRIPTIVE_FIELDS: Mapping[str, Tuple[str, ...]] = {
    "identity": ("full_name", "entity_type"),
}


@dataclass(slots=True)
class CustomerRecord:
    """Denormalised customer used to populate the in-memory views.

    Attributes:
        customer_number: Entity key.
        full_name: Display name.
        tax_id_number: Full tax identifier; only its last four digits are indexed.
        phone_numbers: Phone numbers, each indexed as its own phone view row.
        account_numbers: Account numbers, each indexed as its own account view row.
    """

    customer_number: str
    full_name: str
    entity_type: str = "INDIVIDUAL"
    tax_id_number: str = ""
    tax_id_type: str = "SSN"
    email: Optional[str] = None
    phone_numbers: Tuple[str, ...] = ()
    account_numbers: Tuple[str, ...] = ()
    address_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    birth_date: Optional[str] = None
    alternate_name: Optional[str] = None
    customer_type: Optional[str] = None
    company_id: int = 1
    country_code: str = "US"

    @property
    def ssn_last4(self) -> str:
        digits = "".join(ch for ch in self.tax_id_number if ch.isdigit())
        return digits[-4:]

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "CustomerRecord":
        if "customer_number" not in payload:
            raise ValueError("customer record requires 'customer_number'")
        known = set(cls.__dataclass_fields__)
        values = {key: value for key, value in payload.items() if key in known}
        values["customer_number"] = str(values["customer_number"])
        values.setdefault("full_name", f"Customer {values['customer_number']}")
        for name in ("phone_numbers", "account_numbers"):
            if name in values:
                values[name] = tuple(str(item) for item in values[name] or ())
        return cls(**values)

    def view_rows(self) -> List[Tuple[str, Dict[str, str]]]:
        """Return ``(view, row)`` pairs mirroring the four use-case views."""
        key = self.customer_number
        rows: List[Tuple[str, Dict[str, str]]] = [
            (
                "identity",
                {
                    "customer_number": key,
                    "ssn_last4": self.ssn_last4,
                    "full_name": self.full_name,
                    "entity_type": self.entity_type,
                    "email": self.email or "",
                },
            )
        ]
        rows.extend(("phone", {"customer_number": key, "phone_number": p}) for p in self.phone_numbers)
        rows.extend(
            (
                "account",
                {"customer_number": key, "account_number": a, "account_last4": a[-4:]},
            )
            for a in self.account_numbers
        )
        if self.city or self.state or self.zip:
            rows.append(
                (
                    "address",
                    {
                        "customer_number": key,
                        "city": self.city or "",
                        "state": self.state or "",
                        "zip": self.zip or "",
                    },
                )
            )
        return rows

    def to_detail(self) -> CustomerDetail:
        return CustomerDetail(
            ecn=self.customer_number,
            company_id=self.company_id,
            entity_type=self.entity_type,
            name=self.full_name,
            alternate_name=self.alternate_name,
            tax_id_number=self.tax_id_number or None,
            tax_id_type=self.tax_id_type if self.tax_id_number else None,
            birth_date=self.birth_date,
            address_line=self.address_line,
            city_name=self.city,
            state=self.state,
            postal_code=self.zip,
            country_code=self.country_code,
            customer_type=self.customer_type,
        )


def parse_fuzzy_terms(composed_query: str) -> List[str]:
    """Recover the raw terms from a ``fuzzy(a) OR fuzzy(b)`` expression.

    Examples:
        >>> parse_fuzzy_terms("fuzzy(O''Brien) OR fuzzy(1234)")
        ["O'Brien", '1234']
    """
    terms: List[str] = []
    prefix = f"{QueryBuilder.FUNCTION}("
    for predicate in composed_query.split(QueryBuilder.OPERATOR):
        predicate = predicate.strip()
        if predicate.startswith(prefix) and predicate.endswith(")"):
            predicate = predicate[len(prefix) : -1]
        if predicate:
            terms.append(predicate.replace('\\"', '"').replace("''", "'"))
    return terms


class InMemoryCustomerIndex:
    """Fuzzy full-text index over customer views, returning raw envelopes.

    Attributes:
        min_score: Minimum ``fuzz.ratio`` (0-100) for a field to count as a hit.
        collection_prefix: Prefix rendered into ``$source`` labels
            (``v_{prefix}uc_identity``).

    Examples:
        >>> index = InMemoryCustomerIndex(sample_customers())
        >>> '"$hit"' in index.find("fuzzy(555-201-0001)", 10)
        True
    """

    def __init__(
        self,
        customers: Iterable[CustomerRecord] = (),
        *,
        min_score: float = 80.0,
        collection_prefix: str = "",
    ) -> None:
        self.min_score = min_score
        self.collection_prefix = collection_prefix
        self._rows: List[Tuple[str, Dict[str, str]]] = []
        self.calls: List[Tuple[str, int]] = []
        for customer in customers:
            self.add(customer)

    def add(self, customer: CustomerRecord) -> None:
        self._rows.extend(customer.view_rows())

    def _source_label(self, view: str) -> str:
        return f"v_{self.collection_prefix}uc_{view}"

    def search_hits(self, terms: Sequence[str], limit: int) -> List[Dict[str, Any]]:
        """Score every indexed field against ``terms`` and return hit objects."""
        lowered = [term.lower() for term in terms]
        hits: List[Dict[str, Any]] = []
        for view, row in self._rows:
            for field_name in _SEARCHABLE_FIELDS[view]:
                value = row.get(field_name, "")
                if not value or not lowered:
                    continue
                score = max(fuzz.ratio(term, value.lower()) for term in lowered)
                if score < self.min_score:
                    continue
                data = {"CUSTOMER_NUMBER": row["customer_number"], field_name: value}
                for extra in _DESCRIPTIVE_FIELDS.get(view, ()):
                    data[extra] = row.get(extra, "")
                hits.append(
                    {"$source": self._source_label(view), "$data": data, "$score": round(score, 2)}
                )
        hits.sort(key=lambda hit: (-hit["$score"], hit["$data"]["CUSTOMER_NUMBER"]))
        return hits[:limit]

    def find(
        self, composed_query: str, over_fetch_limit: int, *, deadline: Optional[Deadline] = None
    ) -> str:
        if deadline is not None and deadline.expired():
            raise SearchCancelledError("search cancelled before execution")
        self.calls.append((composed_query, over_fetch_limit))
        hits = self.search_hits(parse_fuzzy_terms(composed_query), over_fetch_limit)
        return json.dumps({"$count": len(hits), "$hit": hits})


class InMemoryDetailStore:
    """Detail lookups served from :class:`CustomerRecord` instances."""

    def __init__(self, customers: Iterable[CustomerRecord] = ()) -> None:
        self._details: Dict[str, CustomerDetail] = {
            customer.customer_number: customer.to_detail() for customer in customers
        }
        self.lookups: List[str] = []

    def fetch(
        self, entity_key: str, *, deadline: Optional[Deadline] = None
    ) -> Optional[CustomerDetail]:
        if deadline is not None and deadline.expired():
            raise DetailLookupError(entity_key, "deadline expired")
        self.lookups.append(entity_key)
        return self._details.get(entity_key)


def load_customers(path: Path) -> List[CustomerRecord]:
    """Read customers from a JSON lines file, skipping blank lines.

    Raises:
        ValueError: If a line is not a JSON object or lacks ``customer_number``.
    """
    customers: List[CustomerRecord] = []
    with Path(path).open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_number}: invalid JSON ({exc.msg})") from exc
            if not isinstance(payload, dict):
                raise ValueError(f"{path}:{line_number}: expected a JSON object")
            customers.append(CustomerRecord.from_mapping(payload))
    return customers


def sample_customers() -> List[CustomerRecord]:
    """Small deterministic dataset covering all seven use cases."""
    return [
        CustomerRecord(
            customer_number="1000000001",
            full_name="Jane Doe",
            tax_id_number="123-45-1111",
            email="jane.doe@example.com",
            phone_numbers=("555-201-0001",),
            account_numbers=("4000123412347777",),
            address_line="1 Main St",
            city="Springfield",
            state="IL",
            zip="62701",
            birth_date="1980-04-12",
            customer_type="RETAIL",
        ),
        CustomerRecord(
            customer_number="1000000002",
            full_name="John Smith",
            tax_id_number="987-65-2222",
            email="john.smith@example.com",
            phone_numbers=("555-201-0002", "555-301-0002"),
            account_numbers=("4000987698768888",),
            address_line="22 Oak Ave",
            city="Portland",
            state="OR",
            zip="97201",
            birth_date="1975-09-30",
            customer_type="RETAIL",
        ),
        CustomerRecord(
            customer_number="1000000003",
            full_name="Acme Holdings LLC",
            entity_type="BUSINESS",
            tax_id_number="12-3453333",
            tax_id_type="EIN",
            email="billing@acme.example",
            phone_numbers=("555-401-0003",),
            account_numbers=("4000555544443333",),
            address_line="300 Industrial Rd",
            city="Springfield",
            state="MO",
            zip="65801",
            customer_type="COMMERCIAL",
        ),
        CustomerRecord(
            customer_number="1000000004",
            full_name="Maria O'Brien",
            tax_id_number="555-12-4444",
            email="maria.obrien@example.com",
            phone_numbers=("555-201-0004",),
            account_numbers=("4000111122224444",),
            address_line="9 Elm Ct",
            city="Austin",
            state="TX",
            zip="73301",
            birth_date="1990-01-05",
            customer_type="PRIVATE",
        ),
    ]
