# === NAVMAP v1 ===
# {
#   "module": "IdentityBench.UnifiedSearch.service",
#   "purpose": "Unified search orchestration over search and detail collaborators",
#   "sections": [
#     {"id": "unifiedsearchservice", "name": "UnifiedSearchService", "anchor": "class-unifiedsearchservice", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Orchestrate a unified multi-criteria identity search.

One request walks a fixed pipeline:

1. validate the caller's terms, use case and limit;
2. compose a fuzzy disjunction with :class:`QueryBuilder`;
3. ask the search collaborator for ``limit * overfetch_factor`` hits;
4. extract hits with :class:`ResponseHitParser`;
5. classify and group them per entity with :func:`group_by_entity`;
6. rank with :func:`strict_coverage_rank` (or :func:`best_effort_rank`);
7. enrich each ranked entity through the detail store.

Failures of the search round trip abort the request with
:class:`SearchCollaboratorError`. Everything narrower degrades instead: a bad
hit is dropped, an unclassified hit is kept without a category, and a failed
or empty detail lookup yields a placeholder row flagged ``degraded``.
"""

from __future__ import annotations

import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .aggregation import group_by_entity
from .cancellation import Deadline
from .classification import ClassificationTable, FieldCategoryClassifier
from .config import UnifiedSearchConfig, UnifiedSearchConfigManager
from .errors import (
    RequestValidationError,
    SearchCancelledError,
    SearchCollaboratorError,
)
from .interfaces import DetailStore, SearchCollaborator
from .observability import Observability
from .parsing import ResponseHitParser
from .query import QueryBuilder
from .ranking import best_effort_rank, strict_coverage_rank
from .types import (
    CompositeResult,
    CustomerDetail,
    RankedResult,
    UnifiedSearchRequest,
    UnifiedSearchResponse,
    UseCase,
)

# --- Globals ---

__all__ = ("UnifiedSearchService", "RequestValidationError")


# --- Private Helpers ---


def _require_text(value: Optional[str], label: str, field: str) -> str:
    if value is None:
        raise RequestValidationError(f"{label} cannot be null", field=field)
    if not str(value).strip():
        raise RequestValidationError(f"{label} cannot be empty", field=field)
    return str(value).strip()


def _require_last4(value: Optional[str], label: str, field: str) -> str:
    text = _require_text(value, label, field)
    if len(text) != 4 or not text.isdigit():
        raise RequestValidationError(f"{label} must be exactly 4 digits", field=field)
    return text


def _ranking_score(average: float) -> int:
    """Round half-up to an integer; non-finite averages score 0."""
    if not math.isfinite(average):
        return 0
    return int(math.floor(average + 0.5))


# --- Public Classes ---


class UnifiedSearchService:
    """Run unified searches against a search collaborator and a detail store.

    Attributes:
        _config_manager: Source of the current :class:`UnifiedSearchConfig`.
        _search: Search collaborator returning raw response envelopes.
        _details: Detail store used for enrichment.
        _observability: Metrics and tracing facade.
        _executor: Thread pool for detail lookups, ``None`` when sequential.

    Examples:
        >>> from IdentityBench.UnifiedSearch.devtools import (  # doctest: +SKIP
        ...     InMemoryCustomerIndex, InMemoryDetailStore, sample_customers)
        >>> customers = sample_customers()  # doctest: +SKIP
        >>> service = UnifiedSearchService(  # doctest: +SKIP
        ...     search_collaborator=InMemoryCustomerIndex(customers),
        ...     detail_store=InMemoryDetailStore(customers),
        ... )
        >>> service.search_uc1("555-201-0001", "1111", limit=5).results  # doctest: +SKIP
    """

    def __init__(
        self,
        *,
        search_collaborator: SearchCollaborator,
        detail_store: DetailStore,
        config_manager: Optional[UnifiedSearchConfigManager] = None,
        observability: Optional[Observability] = None,
    ) -> None:
        self._config_manager = config_manager or UnifiedSearchConfigManager.from_config(
            UnifiedSearchConfig()
        )
        config = self._config_manager.get()
        self._search = search_collaborator
        self._details = detail_store
        self._observability = observability or Observability()
        workers = config.retrieval.detail_max_workers
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="unified-detail")
            if workers and workers > 1
            else None
        )
        self._closed = False

    def close(self) -> None:
        """Release the detail lookup thread pool, if any."""
        if self._closed:
            return
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "UnifiedSearchService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def observability(self) -> Observability:
        return self._observability

    @property
    def config(self) -> UnifiedSearchConfig:
        """Current configuration snapshot."""
        return self._config_manager.get()

    # --- Entry points ---

    def search(
        self, request: UnifiedSearchRequest, *, deadline: Optional[Deadline] = None
    ) -> UnifiedSearchResponse:
        """Execute a unified search request.

        Args:
            request: Terms, use case, limit and ranking mode.
            deadline: Optional time budget shared with both collaborators. When
                omitted, one is derived from ``retrieval.search_timeout_seconds``.

        Returns:
            :class:`UnifiedSearchResponse` with results in rank order. An empty
            result list is a valid outcome.

        Raises:
            RequestValidationError: If the request is malformed; no collaborator
                is called in that case.
            SearchCancelledError: If the deadline expired before the search call.
            SearchCollaboratorError: If the search round trip fails.
        """
        terms, use_case, limit = self._validate(request)
        return self._execute(terms, use_case, limit, request.best_effort, deadline)

    def search_best_effort(
        self,
        terms: Sequence[Optional[str]],
        limit: int,
        *,
        deadline: Optional[Deadline] = None,
    ) -> UnifiedSearchResponse:
        """Rank every matching entity by score, without category coverage."""
        request = UnifiedSearchRequest(terms=terms, limit=limit, best_effort=True)
        return self.search(request, deadline=deadline)

    def search_use_case(
        self,
        use_case: Union[UseCase, str, int],
        terms: Sequence[Optional[str]],
        limit: int,
        *,
        deadline: Optional[Deadline] = None,
    ) -> UnifiedSearchResponse:
        request = UnifiedSearchRequest(terms=terms, use_case=use_case, limit=limit)
        return self.search(request, deadline=deadline)

    def search_uc1(self, phone: str, ssn_last4: str, limit: int) -> UnifiedSearchResponse:
        """Phone number plus the last four digits of the tax id."""
        terms = [
            _require_text(phone, "Phone number", "phone"),
            _require_last4(ssn_last4, "SSN last 4", "ssn_last4"),
        ]
        return self.search_use_case(UseCase.UC1, terms, limit)

    def search_uc2(
        self, phone: str, ssn_last4: str, account_last4: str, limit: int
    ) -> UnifiedSearchResponse:
        """Phone number, tax id suffix and account suffix."""
        terms = [
            _require_text(phone, "Phone number", "phone"),
            _require_last4(ssn_last4, "SSN last 4", "ssn_last4"),
            _require_last4(account_last4, "Account last 4", "account_last4"),
        ]
        return self.search_use_case(UseCase.UC2, terms, limit)

    def search_uc3(self, phone: str, account_last4: str, limit: int) -> UnifiedSearchResponse:
        """Phone number plus account suffix."""
        terms = [
            _require_text(phone, "Phone number", "phone"),
            _require_last4(account_last4, "Account last 4", "account_last4"),
        ]
        return self.search_use_case(UseCase.UC3, terms, limit)

    def search_uc4(
        self, account_number: str, ssn_last4: str, limit: int
    ) -> UnifiedSearchResponse:
        """Full account number plus tax id suffix."""
        terms = [
            _require_text(account_number, "Account number", "account_number"),
            _require_last4(ssn_last4, "SSN last 4", "ssn_last4"),
        ]
        return self.search_use_case(UseCase.UC4, terms, limit)

    def search_uc5(
        self,
        city: str,
        state: str,
        zip_code: str,
        ssn_last4: str,
        account_last4: str,
        limit: int,
    ) -> UnifiedSearchResponse:
        """City, state and zip plus tax id and account suffixes."""
        terms = [
            _require_text(city, "City", "city"),
            _require_text(state, "State", "state"),
            _require_text(zip_code, "ZIP", "zip"),
            _require_last4(ssn_last4, "SSN last 4", "ssn_last4"),
            _require_last4(account_last4, "Account last 4", "account_last4"),
        ]
        return self.search_use_case(UseCase.UC5, terms, limit)

    def search_uc6(self, email: str, account_last4: str, limit: int) -> UnifiedSearchResponse:
        """Email address plus account suffix."""
        terms = [
            _require_text(email, "Email", "email"),
            _require_last4(account_last4, "Account last 4", "account_last4"),
        ]
        return self.search_use_case(UseCase.UC6, terms, limit)

    def search_uc7(
        self, email: str, phone: str, account_number: str, limit: int
    ) -> UnifiedSearchResponse:
        """Email address, phone number and full account number."""
        terms = [
            _require_text(email, "Email", "email"),
            _require_text(phone, "Phone number", "phone"),
            _require_text(account_number, "Account number", "account_number"),
        ]
        return self.search_use_case(UseCase.UC7, terms, limit)

    # --- Pipeline ---

    def _validate(
        self, request: UnifiedSearchRequest
    ) -> Tuple[List[str], Optional[UseCase], int]:
        raw_terms = request.terms
        if raw_terms is None or isinstance(raw_terms, (str, bytes)):
            raise RequestValidationError("terms must be a list of strings", field="terms")
        raw_terms = list(raw_terms)
        for term in raw_terms:
            if term is not None and not isinstance(term, str):
                raise RequestValidationError("terms must be a list of strings", field="terms")
        terms = QueryBuilder.usable_terms(raw_terms)
        if not terms:
            raise RequestValidationError(
                "at least one non-blank search term is required", field="terms"
            )
        limit = request.limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise RequestValidationError("limit must be greater than 0", field="limit")
        use_case: Optional[UseCase] = None
        if request.use_case is not None:
            use_case = UseCase.from_identifier(request.use_case)
        elif not request.best_effort:
            raise RequestValidationError(
                "use_case is required unless best_effort is set", field="use_case"
            )
        return terms, use_case, limit

    def _components(
        self, config: UnifiedSearchConfig
    ) -> Tuple[FieldCategoryClassifier, ResponseHitParser]:
        classifier = FieldCategoryClassifier(ClassificationTable.from_config(config.classification))
        return classifier, ResponseHitParser(config.parsing, classifier)

    def _execute(
        self,
        terms: List[str],
        use_case: Optional[UseCase],
        limit: int,
        best_effort: bool,
        deadline: Optional[Deadline],
    ) -> UnifiedSearchResponse:
        config = self._config_manager.get()
        classifier, parser = self._components(config)
        deadline = deadline or Deadline(config.retrieval.search_timeout_seconds)
        mode = "best_effort" if best_effort else "strict"
        label = use_case.name if use_case is not None else "none"
        metrics = self._observability.metrics
        logger = self._observability.logger
        timings: Dict[str, float] = {}

        metrics.increment("unified_search_requests", mode=mode, use_case=label)
        with self._observability.trace("unified_search", mode=mode, use_case=label):
            query = QueryBuilder.build(terms)
            over_fetch = limit * config.ranking.overfetch_factor

            if deadline.expired():
                metrics.increment("unified_search_cancelled", use_case=label)
                raise SearchCancelledError("deadline expired before the search call")

            start = time.perf_counter()
            try:
                raw = self._search.find(query, over_fetch, deadline=deadline)
            except SearchCancelledError:
                metrics.increment("unified_search_cancelled", use_case=label)
                raise
            except Exception as exc:
                metrics.increment("unified_search_failures", use_case=label)
                logger.exception(
                    "unified-search-collaborator-failed",
                    extra={
                        "event": {
                            "use_case": label,
                            "mode": mode,
                            "over_fetch_limit": over_fetch,
                            "error": str(exc),
                        }
                    },
                )
                raise SearchCollaboratorError(f"search collaborator failed: {exc}") from exc
            timings["search_ms"] = (time.perf_counter() - start) * 1000

            start = time.perf_counter()
            outcomes = parser.parse_outcomes(raw)
            hits = [outcome.hit for outcome in outcomes if outcome.hit is not None]
            parse_failures = len(outcomes) - len(hits)
            if parse_failures:
                metrics.increment("unified_parse_failures", parse_failures, use_case=label)
            grouped = group_by_entity(hits, classifier)
            if grouped.misses:
                metrics.increment(
                    "unified_classification_misses", len(grouped.misses), use_case=label
                )
            if best_effort or use_case is None:
                ranked = best_effort_rank(grouped.groups, limit)
            else:
                ranked = strict_coverage_rank(grouped.groups, use_case.required, limit)
            timings["rank_ms"] = (time.perf_counter() - start) * 1000

            start = time.perf_counter()
            results = self._enrich(ranked, deadline, config, label)
            timings["detail_ms"] = (time.perf_counter() - start) * 1000

        logger.info(
            "unified-search-complete",
            extra={
                "event": {
                    "use_case": label,
                    "mode": mode,
                    "hits": len(hits),
                    "entities": len(grouped.groups),
                    "results": len(results),
                    "degraded": sum(1 for result in results if result.degraded),
                    "parse_failures": parse_failures,
                }
            },
        )
        return UnifiedSearchResponse(
            results=results,
            query=query,
            total_hits=len(hits),
            entity_count=len(grouped.groups),
            parse_failures=parse_failures,
            timings=timings,
        )

    def _enrich(
        self,
        ranked: List[RankedResult],
        deadline: Deadline,
        config: UnifiedSearchConfig,
        label: str,
    ) -> List[CompositeResult]:
        timeout = config.retrieval.detail_timeout_seconds
        if self._executor is None or len(ranked) <= 1:
            results = [self._lookup(result, deadline, timeout, label) for result in ranked]
        else:
            slots: List[Optional[CompositeResult]] = [None] * len(ranked)
            futures = {
                self._executor.submit(self._lookup, result, deadline, timeout, label): position
                for position, result in enumerate(ranked)
            }
            for future in as_completed(futures):
                slots[futures[future]] = future.result()
            results = [slot for slot in slots if slot is not None]
        degraded = sum(1 for result in results if result.degraded)
        if degraded:
            self._observability.metrics.increment(
                "unified_detail_degraded", degraded, use_case=label
            )
        return results

    def _lookup(
        self,
        ranked: RankedResult,
        deadline: Deadline,
        timeout: Optional[float],
        label: str,
    ) -> CompositeResult:
        detail: Optional[CustomerDetail] = None
        reason: Optional[str] = None
        if deadline.expired():
            reason = "deadline_expired"
        else:
            call_deadline = Deadline(deadline.bounded(timeout), token=deadline.token)
            try:
                detail = self._details.fetch(ranked.entity_key, deadline=call_deadline)
            except Exception as exc:
                reason = "lookup_failed"
                self._observability.logger.warning(
                    "unified-detail-lookup-failed",
                    extra={
                        "event": {
                            "entity_key": ranked.entity_key,
                            "use_case": label,
                            "error": str(exc),
                        }
                    },
                )
            else:
                if detail is None:
                    reason = "not_found"
        if detail is None:
            self._observability.logger.debug(
                "unified-detail-degraded",
                extra={"event": {"entity_key": ranked.entity_key, "reason": reason}},
            )
        return CompositeResult(
            entity_key=ranked.entity_key,
            average_score=ranked.average_score,
            ranking_score=_ranking_score(ranked.average_score),
            detail=detail if detail is not None else CustomerDetail.placeholder(ranked.entity_key),
            degraded=detail is None,
            matched_categories=ranked.categories,
        )
