# === NAVMAP v1 ===
# {
#   "module": "IdentityBench.UnifiedSearch.interfaces",
#   "purpose": "Contracts for the search and detail collaborators",
#   "sections": [
#     {"id": "searchcollaborator", "name": "SearchCollaborator", "anchor": "class-searchcollaborator", "kind": "class"},
#     {"id": "detailstore", "name": "DetailStore", "anchor": "class-detailstore", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Formal contracts for the two external collaborators of unified search.

``service.UnifiedSearchService`` never talks to a database directly. It hands a
composed fuzzy query to a ``SearchCollaborator`` and receives the raw response
envelope back, then asks a ``DetailStore`` for one customer record per ranked
entity:

- ``SearchCollaborator`` represents the full-text capability over the unified
  index spanning the identity, phone, account and address views. The
  production integration renders a ``DBMS_SEARCH.FIND`` statement (see
  :func:`IdentityBench.UnifiedSearch.query.build_find_statement`); the dev
  harness uses ``devtools.InMemoryCustomerIndex``. Implementations return the
  ``{"$count": n, "$hit": [...]}`` envelope as text and raise on transport
  failures. Scores are opaque floats; higher means more relevant.
- ``DetailStore`` resolves an entity key into a :class:`CustomerDetail`.
  Returning ``None`` signals an explicit not-found; raising signals a lookup
  failure. Either way the service emits a degraded row rather than dropping
  the entity.

Both calls receive the request :class:`Deadline` so implementations can bound
their own timeouts and observe cancellation.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .cancellation import Deadline
from .types import CustomerDetail

__all__ = ("SearchCollaborator", "DetailStore")


class SearchCollaborator(Protocol):
    """Full-text search capability returning the raw hit envelope.

    Examples:
        >>> from IdentityBench.UnifiedSearch.devtools import InMemoryCustomerIndex
        >>> index: SearchCollaborator = InMemoryCustomerIndex()
        >>> index.find("fuzzy(555-0100)", 10)  # doctest: +SKIP
    """

    def find(
        self, composed_query: str, over_fetch_limit: int, *, deadline: Optional[Deadline] = None
    ) -> str:
        """Execute ``composed_query`` and return the response envelope.

        Args:
            composed_query: Fuzzy disjunction produced by ``QueryBuilder``.
            over_fetch_limit: Maximum number of hits to return.
            deadline: Request time budget and cancellation token.

        Returns:
            Envelope text containing ``$count`` and the ``$hit`` array.

        Raises:
            Exception: Any transport or execution failure.
        """


class DetailStore(Protocol):
    """Lookup of flat customer detail records by entity key."""

    def fetch(
        self, entity_key: str, *, deadline: Optional[Deadline] = None
    ) -> Optional[CustomerDetail]:
        """Return the detail record for ``entity_key`` or ``None`` when absent.

        Args:
            entity_key: Customer number of a ranked entity.
            deadline: Request time budget and cancellation token.

        Returns:
            Matching :class:`CustomerDetail`, or ``None`` when not found.

        Raises:
            Exception: Any lookup failure; the caller degrades the row.
        """
