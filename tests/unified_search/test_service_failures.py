"""Tests covering collaborator failure handling in the unified search service."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

import pytest

from IdentityBench.UnifiedSearch.cancellation import CancellationToken, Deadline
from IdentityBench.UnifiedSearch.errors import (
    DetailLookupError,
    SearchCancelledError,
    SearchCollaboratorError,
)
from IdentityBench.UnifiedSearch.service import UnifiedSearchService
from IdentityBench.UnifiedSearch.types import CustomerDetail, UnifiedSearchRequest
from tests.unified_search.envelopes import envelope, hit_json


class _StubMetrics:
    def __init__(self) -> None:
        self.increments: List[tuple] = []

    def increment(self, name: str, amount: float = 1.0, **labels: str) -> None:
        self.increments.append((name, amount, labels))

    def observe(self, *args: object, **kwargs: object) -> None:
        return None


class _StubLogger:
    def __init__(self) -> None:
        self.exceptions: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []

    def debug(self, *args: object, **kwargs: object) -> None:
        return None

    def info(self, *args: object, **kwargs: object) -> None:
        return None

    def warning(self, *args: object, **kwargs: object) -> None:
        self.warnings.append({"args": args, "kwargs": kwargs})

    def exception(self, *args: object, **kwargs: object) -> None:
        self.exceptions.append({"args": args, "kwargs": kwargs})


class _StubObservability:
    def __init__(self) -> None:
        self.metrics = _StubMetrics()
        self.logger = _StubLogger()

    @contextmanager
    def trace(self, *_: object, **__: object) -> Iterator[None]:
        yield


class _FailingSearch:
    def __init__(self) -> None:
        self.calls = 0

    def find(self, composed_query: str, over_fetch_limit: int, *, deadline=None) -> str:
        self.calls += 1
        raise ConnectionError("listener refused connection")


class _StaticSearch:
    def __init__(self, raw: str) -> None:
        self.raw = raw
        self.calls = 0

    def find(self, composed_query: str, over_fetch_limit: int, *, deadline=None) -> str:
        self.calls += 1
        return self.raw


class _FlakyDetails:
    """Detail store failing for selected keys."""

    def __init__(self, failing: set[str]) -> None:
        self._failing = failing

    def fetch(self, entity_key: str, *, deadline=None) -> CustomerDetail:
        if entity_key in self._failing:
            raise DetailLookupError(entity_key)
        return CustomerDetail(ecn=entity_key, name=f"Name {entity_key}")


def _request() -> UnifiedSearchRequest:
    return UnifiedSearchRequest(terms=["555-0100", "6789"], use_case="UC1", limit=10)


def _two_entity_envelope() -> str:
    return envelope(
        hit_json("phone", "C1", 90, phone_number="555-0100"),
        hit_json("identity", "C1", 90, ssn_last4="6789"),
        hit_json("phone", "C2", 80, phone_number="555-0100"),
        hit_json("identity", "C2", 80, ssn_last4="6789"),
    )


def test_search_collaborator_failure_is_logged_and_wrapped():
    observability = _StubObservability()
    service = UnifiedSearchService(
        search_collaborator=_FailingSearch(),
        detail_store=_FlakyDetails(set()),
        observability=observability,
    )

    with pytest.raises(SearchCollaboratorError) as excinfo:
        service.search(_request())

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert observability.logger.exceptions, "expected the failure to be logged"
    event = observability.logger.exceptions[0]["kwargs"]["extra"]["event"]
    assert event["use_case"] == "UC1"
    assert event["over_fetch_limit"] == 100
    assert "listener refused connection" in event["error"]
    names = [name for name, _, _ in observability.metrics.increments]
    assert "unified_search_failures" in names


def test_detail_failure_degrades_only_that_row():
    observability = _StubObservability()
    service = UnifiedSearchService(
        search_collaborator=_StaticSearch(_two_entity_envelope()),
        detail_store=_FlakyDetails({"C1"}),
        observability=observability,
    )

    results = service.search(_request()).results

    assert [(r.entity_key, r.degraded) for r in results] == [("C1", True), ("C2", False)]
    assert results[0].detail.name == "Customer C1"
    assert results[1].detail.name == "Name C2"
    warning = observability.logger.warnings[0]["kwargs"]["extra"]["event"]
    assert warning["entity_key"] == "C1"
    assert ("unified_detail_degraded", 1, {"use_case": "UC1"}) in observability.metrics.increments


def test_cancelled_request_never_calls_search():
    search = _StaticSearch(_two_entity_envelope())
    service = UnifiedSearchService(
        search_collaborator=search,
        detail_store=_FlakyDetails(set()),
        observability=_StubObservability(),
    )
    token = CancellationToken()
    token.cancel()

    with pytest.raises(SearchCancelledError):
        service.search(_request(), deadline=Deadline(None, token=token))

    assert search.calls == 0


def test_collaborator_cancellation_is_not_rewrapped():
    class _CancellingSearch:
        def find(self, composed_query, over_fetch_limit, *, deadline=None):
            raise SearchCancelledError("statement cancelled")

    service = UnifiedSearchService(
        search_collaborator=_CancellingSearch(),
        detail_store=_FlakyDetails(set()),
        observability=_StubObservability(),
    )
    with pytest.raises(SearchCancelledError, match="statement cancelled"):
        service.search(_request())


def test_detail_deadline_is_bounded_by_configured_timeout():
    from IdentityBench.UnifiedSearch.config import (
        RetrievalConfig,
        UnifiedSearchConfig,
        UnifiedSearchConfigManager,
    )

    seen: List[Deadline] = []

    class _RecordingDetails:
        def fetch(self, entity_key, *, deadline=None):
            seen.append(deadline)
            return None

    config = UnifiedSearchConfig(retrieval=RetrievalConfig(detail_timeout_seconds=0.25))
    service = UnifiedSearchService(
        search_collaborator=_StaticSearch(_two_entity_envelope()),
        detail_store=_RecordingDetails(),
        config_manager=UnifiedSearchConfigManager.from_config(config),
        observability=_StubObservability(),
    )
    service.search(_request())

    assert len(seen) == 2
    assert all(0.0 < d.remaining() <= 0.25 for d in seen)


def test_overflowing_score_does_not_abort_the_batch():
    raw = envelope(
        '{"$source":"phone","$score":1e999,'
        '"$data":{"CUSTOMER_NUMBER":"C1","phone_number":"555-0100"}}',
        hit_json("identity", "C1", 90, ssn_last4="6789"),
    )
    service = UnifiedSearchService(
        search_collaborator=_StaticSearch(raw),
        detail_store=_FlakyDetails(set()),
        observability=_StubObservability(),
    )

    [result] = service.search(_request()).results

    assert result.entity_key == "C1"
    assert result.average_score == 45.0
    assert result.ranking_score == 45
    assert not result.degraded


@pytest.mark.parametrize("average", [float("inf"), float("-inf"), float("nan")])
def test_ranking_score_of_non_finite_average_is_zero(average):
    from IdentityBench.UnifiedSearch.service import _ranking_score

    assert _ranking_score(average) == 0
    assert _ranking_score(84.5) == 85
