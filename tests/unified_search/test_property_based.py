"""Property-based checks for parsing, aggregation and ranking invariants."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from IdentityBench.UnifiedSearch.aggregation import HitGroup, group_by_entity
from IdentityBench.UnifiedSearch.classification import FieldCategoryClassifier
from IdentityBench.UnifiedSearch.parsing import ResponseHitParser
from IdentityBench.UnifiedSearch.query import QueryBuilder
from IdentityBench.UnifiedSearch.ranking import best_effort_rank, strict_coverage_rank
from IdentityBench.UnifiedSearch.types import Category, Hit, UseCase
from tests.unified_search.envelopes import envelope, hit_json

_CLASSIFIER = FieldCategoryClassifier()
_FIELD_FOR = {
    Category.PHONE: ("phone", "phone_number"),
    Category.SSN_LAST4: ("identity", "ssn_last4"),
    Category.ACCOUNT_NUMBER: ("account", "account_number"),
    Category.ACCOUNT_LAST4: ("account", "account_last4"),
    Category.EMAIL: ("identity", "email"),
    Category.CITY: ("address", "city"),
    Category.STATE: ("address", "state"),
    Category.ZIP: ("address", "zip"),
}

entity_keys = st.sampled_from(["C1", "C2", "C3", "C4", "C5"])
scores = st.floats(min_value=0, max_value=100, allow_nan=False, allow_infinity=False)
hits = st.builds(
    lambda key, category, score: Hit(
        _FIELD_FOR[category][0], key, _FIELD_FOR[category][1], "v", score
    ),
    entity_keys,
    st.sampled_from(list(Category)),
    scores,
)
safe_text = st.text(
    alphabet=st.characters(blacklist_characters='"\\', blacklist_categories=("Cs",)),
    max_size=12,
)


@settings(max_examples=75, deadline=None)
@given(st.lists(hits, max_size=40), st.sampled_from(list(UseCase)), st.integers(1, 10))
def test_strict_results_always_cover_required_categories(hit_list, use_case, limit):
    groups = group_by_entity(hit_list, _CLASSIFIER).groups
    results = strict_coverage_rank(groups, use_case.required, limit)

    assert len(results) <= limit
    for result in results:
        assert groups[result.entity_key].categories >= use_case.required
    averages = [result.average_score for result in results]
    assert averages == sorted(averages, reverse=True)


@settings(max_examples=75, deadline=None)
@given(st.lists(hits, max_size=40), st.integers(1, 10))
def test_strict_results_are_a_subset_of_best_effort_universe(hit_list, limit):
    groups = group_by_entity(hit_list, _CLASSIFIER).groups
    everyone = {result.entity_key for result in best_effort_rank(groups, len(groups) or 1)}
    for use_case in UseCase:
        strict = {r.entity_key for r in strict_coverage_rank(groups, use_case.required, limit)}
        assert strict <= everyone


@settings(max_examples=75, deadline=None)
@given(st.lists(hits, min_size=1, max_size=30))
def test_adding_hits_never_removes_categories_and_average_tracks_total(hit_list):
    group = HitGroup("C1")
    seen = set()
    for hit in hit_list:
        category = _CLASSIFIER.classify_hit(hit)
        group.add_hit(hit, category)
        seen.add(category)
        assert group.categories == seen
        assert abs(group.average_score - group.total_score / group.hit_count) < 1e-9


@settings(max_examples=50, deadline=None)
@given(st.lists(st.tuples(entity_keys, st.sampled_from(list(Category)), st.integers(0, 100)), max_size=15))
def test_parsing_same_blob_twice_is_identical(rows):
    rendered = []
    for key, category, score in rows:
        source, field = _FIELD_FOR[category]
        rendered.append(hit_json(f"v_uc_{source}", key, score, **{field: "x"}))
    raw = envelope(*rendered)
    parser = ResponseHitParser()

    first = parser.parse(raw)
    assert first == parser.parse(raw)
    assert [hit.entity_key for hit in first] == [key for key, _, _ in rows]


@settings(max_examples=50, deadline=None)
@given(st.text(max_size=200))
def test_parser_never_raises_on_arbitrary_text(raw):
    assert isinstance(ResponseHitParser().parse(raw), list)
    assert isinstance(ResponseHitParser().parse('{"$hit":[' + raw), list)


@settings(max_examples=50, deadline=None)
@given(st.lists(st.one_of(st.none(), safe_text), max_size=8))
def test_query_builder_keeps_one_predicate_per_usable_term(terms):
    query = QueryBuilder.build(terms)
    usable = [t for t in terms if t is not None and t.strip()]
    if not usable:
        assert query == ""
    else:
        assert query.count("fuzzy(") >= len(usable)
        assert query.startswith("fuzzy(")
