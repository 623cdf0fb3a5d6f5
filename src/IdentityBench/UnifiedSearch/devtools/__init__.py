"""Developer tooling for running unified search without a database.

Re-exports the in-memory customer index and detail store so tests, the CLI and
notebooks can exercise :class:`~IdentityBench.UnifiedSearch.service.UnifiedSearchService`
end to end through the production collaborator interfaces.
"""

from .customer_index import (
    CustomerRecord,
    InMemoryCustomerIndex,
    InMemoryDetailStore,
    load_customers,
    parse_fuzzy_terms,
    sample_customers,
)

__all__ = (
    "CustomerRecord",
    "InMemoryCustomerIndex",
    "InMemoryDetailStore",
    "load_customers",
    "parse_fuzzy_terms",
    "sample_customers",
)
