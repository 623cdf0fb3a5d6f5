"""Tests for JSON log formatting and identity masking."""

from __future__ import annotations

import json
import logging

from IdentityBench.UnifiedSearch.logging_utils import (
    JSONFormatter,
    mask_event,
    mask_identity_value,
    setup_logging,
)


def test_mask_identity_value_keeps_short_tail():
    assert mask_identity_value("4000123412347777") == "************7777"
    assert mask_identity_value("1234") == "****"
    assert mask_identity_value("jane.doe@example.com") == "ja***@example.com"
    assert mask_identity_value(None) is None


def test_mask_event_masks_nested_sensitive_keys():
    event = {
        "use_case": "UC1",
        "terms": ["555-201-0001", "1111"],
        "detail": {"tax_id_number": "123-45-6789", "name": "Jane"},
    }
    masked = mask_event(event)
    assert masked["use_case"] == "UC1"
    assert masked["terms"] == ["********0001", "****"]
    assert masked["detail"] == {"tax_id_number": "*******6789", "name": "Jane"}


def test_json_formatter_renders_event_payload():
    record = logging.LogRecord("IdentityBench.UnifiedSearch", logging.INFO, __file__, 1,
                               "unified-trace", None, None)
    record.event = {"span": "unified_search", "email": "jane@example.com"}
    payload = json.loads(JSONFormatter().format(record))
    assert payload["message"] == "unified-trace"
    assert payload["level"] == "INFO"
    assert payload["event"]["span"] == "unified_search"
    assert payload["event"]["email"] == "ja***@example.com"


def test_setup_logging_is_idempotent_and_writes_jsonl(tmp_path):
    log_file = tmp_path / "logs" / "search.jsonl"
    logger = setup_logging(level="DEBUG", log_file=log_file)
    logger = setup_logging(level="DEBUG", log_file=log_file)
    managed = [h for h in logger.handlers if getattr(h, "_identitybench_managed", False)]
    assert len(managed) == 2

    logger.info("unified-search-complete", extra={"event": {"results": 1}})
    for handler in managed:
        handler.flush()
    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert json.loads(line)["event"] == {"results": 1}

    for handler in managed:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
