"""Tests for the tolerant response hit parser."""

from __future__ import annotations

import pytest

from IdentityBench.UnifiedSearch.config import ParsingConfig
from IdentityBench.UnifiedSearch.parsing import (
    ResponseHitParser,
    scan_object_members,
    split_hit_objects,
)
from tests.unified_search.envelopes import envelope, hit_json


@pytest.fixture
def parser() -> ResponseHitParser:
    return ResponseHitParser()


def test_parse_extracts_hits_in_response_order(parser):
    raw = envelope(
        hit_json("v_uc_phone", "C1", 90, phone_number="555-0100"),
        hit_json("v_uc_identity", "C1", 80, ssn_last4="6789"),
        hit_json("v_uc_phone", "C2", 95, phone_number="555-0199"),
    )

    hits = parser.parse(raw)

    assert [(h.entity_key, h.source_collection, h.matched_field, h.score) for h in hits] == [
        ("C1", "phone", "phone_number", 90.0),
        ("C1", "identity", "ssn_last4", 80.0),
        ("C2", "phone", "phone_number", 95.0),
    ]
    assert hits[0].matched_value == "555-0100"


def test_truncated_envelope_returns_empty_list(parser):
    raw = '{"$count":2,"$hit":[{"$source":"phone","$data":{"CUSTOMER_NUMBER":"C1"},"$score":9'
    assert parser.parse(raw) == []


def test_missing_closing_bracket_after_complete_objects_returns_empty_list(parser):
    raw = '{"$hit":[' + hit_json("phone", "C1", 90, phone_number="555")
    assert parser.parse(raw) == []


@pytest.mark.parametrize(
    "raw",
    [None, "", "not json at all", '{"$count":0}', '{"$hit": "oops"}', '{"$hit": []}'],
)
def test_degenerate_inputs_yield_no_hits(parser, raw):
    assert parser.parse(raw) == []


def test_malformed_element_does_not_spoil_the_batch(parser):
    raw = envelope(
        hit_json("phone", "C1", 90, phone_number="555"),
        '{"$data":{"CUSTOMER_NUMBER":"C9"},"$score":50}',
        hit_json("phone", "", 70, phone_number="555"),
        '{"$source":"identity","$score":40}',
        hit_json("identity", "C2", 60, ssn_last4="1234"),
    )

    outcomes = parser.parse_outcomes(raw)

    assert [outcome.ok for outcome in outcomes] == [True, False, False, False, True]
    reasons = [outcome.failure.reason for outcome in outcomes if outcome.failure]
    assert reasons == ["missing_source", "missing_entity_key", "no_payload"]
    assert [hit.entity_key for hit in parser.parse(raw)] == ["C1", "C2"]


def test_missing_or_unparseable_score_defaults_to_zero(parser):
    raw = envelope(
        hit_json("phone", "C1", None, phone_number="555"),
        '{"$source":"phone","$score":"high","$data":{"CUSTOMER_NUMBER":"C2"}}',
    )
    assert [hit.score for hit in parser.parse(raw)] == [0.0, 0.0]


def test_lower_case_entity_key_is_accepted(parser):
    raw = '{"$hit":[{"$source":"phone","$data":{"customer_number":"C7","phone_number":"1"},"$score":3.5}]}'
    [hit] = parser.parse(raw)
    assert hit.entity_key == "C7"
    assert hit.score == 3.5


def test_numeric_entity_key_is_accepted(parser):
    raw = '{"$hit":[{"$source":"phone","$data":{"CUSTOMER_NUMBER":1000000001},"$score":1}]}'
    assert parser.parse(raw)[0].entity_key == "1000000001"


def test_braces_inside_strings_do_not_confuse_depth_tracking(parser):
    raw = envelope(
        hit_json("identity", "C1", 88, email="we{ird}@x.com", full_name="A ] B"),
        hit_json("phone", "C2", 77, phone_number="555"),
    )
    hits = parser.parse(raw)
    assert [hit.entity_key for hit in hits] == ["C1", "C2"]
    assert hits[0].matched_value == "we{ird}@x.com"


def test_escaped_quotes_inside_strings_are_skipped(parser):
    raw = '{"$hit":[{"$source":"identity","$data":{"CUSTOMER_NUMBER":"C1","full_name":"say \\"hi\\" }"},"$score":5}]}'
    [hit] = parser.parse(raw)
    assert hit.entity_key == "C1"
    assert hit.fields["full_name"] == 'say \\"hi\\" }'


def test_nested_arrays_inside_payload_are_ignored(parser):
    raw = '{"$hit":[{"$source":"account","$data":{"CUSTOMER_NUMBER":"C1","tags":[1,{"a":"]"}],"account_last4":"4444"},"$score":61}]}'
    [hit] = parser.parse(raw)
    assert hit.matched_field == "account_last4"
    assert hit.matched_value == "4444"


def test_unknown_source_keeps_hit_without_matched_field(parser):
    raw = envelope(hit_json("loyalty", "C1", 10, tier="gold"))
    [hit] = parser.parse(raw)
    assert hit.matched_field is None
    assert hit.matched_value == ""


def test_parsing_is_idempotent(parser):
    raw = envelope(
        hit_json("phone", "C1", 90, phone_number="555"),
        hit_json("identity", "C1", 80, email="a@b.c"),
    )
    assert parser.parse(raw) == parser.parse(raw)


def test_advertised_count_is_read_from_envelope(parser):
    raw = envelope(hit_json("phone", "C1", 90, phone_number="555"), count=42)
    assert parser.advertised_count(raw) == 42
    assert parser.advertised_count('{"$hit":[]}') is None


def test_custom_markers_are_honoured():
    config = ParsingConfig(
        hit_array_key="hits", source_key="src", score_key="s", payload_key="doc",
        entity_key_fields=("ecn",),
    )
    parser = ResponseHitParser(config)
    raw = '{"hits":[{"src":"phone","s":12,"doc":{"ecn":"E1","phone_number":"5"}}]}'
    [hit] = parser.parse(raw)
    assert (hit.entity_key, hit.score) == ("E1", 12.0)


def test_split_hit_objects_reports_unterminated_array():
    raw = '[{"a":1},{"b":2}'
    assert split_hit_objects(raw, 0) is None
    assert split_hit_objects(raw + "]", 0) == ['{"a":1}', '{"b":2}']


def test_scan_object_members_separates_scalars_and_containers():
    scalars, containers = scan_object_members('{"a": "x", "b": -2.5, "c": {"d": 1}, "e": null, "f": [1]}')
    assert scalars == {"a": "x", "b": "-2.5"}
    assert containers == {"c": '{"d": 1}', "f": "[1]"}


@pytest.mark.parametrize("literal", ["1e999", "-1e999"])
def test_overflowing_score_defaults_to_zero(parser, literal):
    raw = envelope(
        '{"$source":"phone","$score":' + literal
        + ',"$data":{"CUSTOMER_NUMBER":"C1","phone_number":"555"}}',
        hit_json("identity", "C1", 90, ssn_last4="6789"),
    )
    assert [hit.score for hit in parser.parse(raw)] == [0.0, 90.0]


def test_case_variant_fields_prefer_the_populated_value(parser):
    raw = envelope(hit_json("identity", "C1", 90, EMAIL="", email="pat@kim.example"))
    [hit] = parser.parse(raw)
    assert hit.matched_field == "email"
    assert hit.matched_value == "pat@kim.example"
    assert hit.fields["email"] == "pat@kim.example"
