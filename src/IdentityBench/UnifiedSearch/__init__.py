# === NAVMAP v1 ===
# {
#   "module": "IdentityBench.UnifiedSearch.__init__",
#   "purpose": "Public facade for unified identity search",
#   "sections": []
# }
# === /NAVMAP ===

"""Unified hit aggregation and ranking for multi-criteria identity search.

The package answers questions such as "which customers have this phone number
*and* a tax id ending in 6789?" with a single round trip to a full-text index
that spans the identity, phone, account and address views. The collaborator
returns a flat list of hits, each saying "this field of this customer matched".
The pipeline turns that list into ranked customers:

- :mod:`~IdentityBench.UnifiedSearch.query` composes ``fuzzy(term) OR ...``.
- :mod:`~IdentityBench.UnifiedSearch.parsing` extracts hits from the response
  envelope with a tolerant bracket-depth scanner.
- :mod:`~IdentityBench.UnifiedSearch.classification` maps each hit onto a
  :class:`Category` (PHONE, SSN_LAST4, ACCOUNT_NUMBER, ...).
- :mod:`~IdentityBench.UnifiedSearch.aggregation` groups hits per customer.
- :mod:`~IdentityBench.UnifiedSearch.ranking` keeps customers covering a
  use case's required categories and orders them by average score.
- :mod:`~IdentityBench.UnifiedSearch.service` orchestrates the above and joins
  results with customer details, degrading rows whose lookup fails.

Collaborators are described in :mod:`~IdentityBench.UnifiedSearch.interfaces`;
in-memory implementations live in :mod:`~IdentityBench.UnifiedSearch.devtools`.
"""

from __future__ import annotations

__all__ = (
    "AggregationResult",
    "CancellationToken",
    "Category",
    "ClassificationTable",
    "CompositeResult",
    "CustomerDetail",
    "Deadline",
    "DetailLookupError",
    "DetailStore",
    "FieldCategoryClassifier",
    "Hit",
    "HitGroup",
    "HitParseOutcome",
    "Observability",
    "QueryBuilder",
    "RankedResult",
    "RequestValidationError",
    "ResponseHitParser",
    "SearchCancelledError",
    "SearchCollaborator",
    "SearchCollaboratorError",
    "UnifiedSearchAPI",
    "UnifiedSearchConfig",
    "UnifiedSearchConfigManager",
    "UnifiedSearchError",
    "UnifiedSearchRequest",
    "UnifiedSearchResponse",
    "UnifiedSearchService",
    "UseCase",
    "best_effort_rank",
    "build_find_statement",
    "group_by_entity",
    "strict_coverage_rank",
)

# --- Re-exports ---

from .aggregation import AggregationResult, HitGroup, group_by_entity
from .api import UnifiedSearchAPI
from .cancellation import CancellationToken, Deadline
from .classification import ClassificationTable, FieldCategoryClassifier
from .config import UnifiedSearchConfig, UnifiedSearchConfigManager
from .errors import (
    DetailLookupError,
    RequestValidationError,
    SearchCancelledError,
    SearchCollaboratorError,
    UnifiedSearchError,
)
from .interfaces import DetailStore, SearchCollaborator
from .observability import Observability
from .parsing import HitParseOutcome, ResponseHitParser
from .query import QueryBuilder, build_find_statement
from .ranking import best_effort_rank, strict_coverage_rank
from .service import UnifiedSearchService
from .types import (
    Category,
    CompositeResult,
    CustomerDetail,
    Hit,
    RankedResult,
    UnifiedSearchRequest,
    UnifiedSearchResponse,
    UseCase,
)
