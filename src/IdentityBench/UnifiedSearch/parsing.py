# === NAVMAP v1 ===
# {
#   "module": "IdentityBench.UnifiedSearch.parsing",
#   "purpose": "Tolerant hit extraction from search response envelopes",
#   "sections": [
#     {"id": "hitparseoutcome", "name": "HitParseOutcome", "anchor": "class-hitparseoutcome", "kind": "class"},
#     {"id": "split-hit-objects", "name": "split_hit_objects", "anchor": "function-split-hit-objects", "kind": "function"},
#     {"id": "responsehitparser", "name": "ResponseHitParser", "anchor": "class-responsehitparser", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Extract hits from the search collaborator's response envelope.

The collaborator answers with a blob shaped like::

    {"$count": 2, "$hit": [
        {"$source": "v_bench_uc_phone", "$score": 91,
         "$data": {"CUSTOMER_NUMBER": "1000000001", "phone_number": "555-0100"}},
        ...
    ]}

The parser deliberately avoids a general JSON decoder. It finds the hit array
marker, walks the array with a single brace depth counter (ignoring braces
inside string literals) and slices out each top-level object. Every object is
then parsed on its own into a :class:`HitParseOutcome`, so one malformed element
never spoils the rest of the batch. A truncated envelope whose hit array never
closes yields no hits at all, and the parser never raises on bad input.

String values are taken verbatim between quotes; escape sequences are skipped
over when locating the closing quote but are not decoded.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

from .classification import FieldCategoryClassifier
from .config import ParsingConfig
from .errors import ParseFailure
from .types import Hit

# --- Globals ---

__all__ = (
    "HitParseOutcome",
    "ResponseHitParser",
    "split_hit_objects",
    "scan_object_members",
)

logger = logging.getLogger("IdentityBench.UnifiedSearch")

_NUMBER_CHARS = frozenset("0123456789.-+eE")
_WHITESPACE = frozenset(" \t\r\n")


# --- Private Helpers ---


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in _WHITESPACE:
        index += 1
    return index


def _string_end(text: str, start: int) -> int:
    """Index of the quote closing the string opened at ``start``, or ``-1``."""
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == '"':
            return index
        index += 1
    return -1


def _container_end(text: str, start: int) -> int:
    """Index of the bracket closing the object or array opened at ``start``, or ``-1``."""
    depth = 0
    index = start
    while index < len(text):
        char = text[index]
        if char == '"':
            index = _string_end(text, index)
            if index < 0:
                return -1
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


# --- Public Functions ---


def split_hit_objects(raw: str, array_start: int) -> Optional[List[str]]:
    """Slice the top-level objects out of an array opened at ``array_start``.

    Args:
        raw: Complete response text.
        array_start: Index of the ``[`` opening the hit array.

    Returns:
        Object substrings in array order, or ``None`` when the array is never
        closed (truncated input).
    """
    depth = 0
    object_start = -1
    objects: List[str] = []
    index = array_start + 1
    while index < len(raw):
        char = raw[index]
        if char == '"':
            index = _string_end(raw, index)
            if index < 0:
                return None
        elif char == "{":
            depth += 1
            if depth == 1:
                object_start = index
        elif char == "}":
            if depth > 0:
                depth -= 1
                if depth == 0:
                    objects.append(raw[object_start : index + 1])
        elif char == "]" and depth == 0:
            return objects
        index += 1
    return None


def scan_object_members(text: str) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Collect the direct members of a single object.

    Args:
        text: Object text starting with ``{``.

    Returns:
        Tuple ``(scalars, containers)``: quoted strings and numeric literals keyed
        by member name, and the raw text of nested objects or arrays. Scanning
        stops silently at the first malformed member.

    Examples:
        >>> scalars, nested = scan_object_members('{"a": "x", "b": 2, "c": {"d": 1}}')
        >>> scalars
        {'a': 'x', 'b': '2'}
        >>> nested
        {'c': '{"d": 1}'}
    """
    scalars: Dict[str, str] = {}
    containers: Dict[str, str] = {}
    if not text.startswith("{"):
        return scalars, containers
    index = 1
    while index < len(text):
        index = _skip_whitespace(text, index)
        if index < len(text) and text[index] == ",":
            index = _skip_whitespace(text, index + 1)
        if index >= len(text) or text[index] != '"':
            break
        key_end = _string_end(text, index)
        if key_end < 0:
            break
        key = text[index + 1 : key_end]
        index = _skip_whitespace(text, key_end + 1)
        if index >= len(text) or text[index] != ":":
            break
        index = _skip_whitespace(text, index + 1)
        if index >= len(text):
            break
        char = text[index]
        if char == '"':
            value_end = _string_end(text, index)
            if value_end < 0:
                break
            scalars[key] = text[index + 1 : value_end]
            index = value_end + 1
        elif char in "{[":
            value_end = _container_end(text, index)
            if value_end < 0:
                break
            containers[key] = text[index : value_end + 1]
            index = value_end + 1
        else:
            value_end = index
            while value_end < len(text) and text[value_end] not in ",}" and text[
                value_end
            ] not in _WHITESPACE:
                value_end += 1
            literal = text[index:value_end]
            if literal and all(ch in _NUMBER_CHARS for ch in literal):
                scalars[key] = literal
            index = value_end
    return scalars, containers


# --- Public Classes ---


@dataclass(frozen=True)
class HitParseOutcome:
    """Result of parsing one hit-array element: exactly one of ``hit``/``failure``."""

    position: int
    hit: Optional[Hit] = None
    failure: Optional[ParseFailure] = None

    @property
    def ok(self) -> bool:
        return self.hit is not None


class ResponseHitParser:
    """Tolerant extractor turning a response blob into :class:`Hit` records.

    Attributes:
        _config: Envelope markers and entity key spellings.
        _classifier: Classifier used to normalise sources and pick the matched field.

    Examples:
        >>> parser = ResponseHitParser()
        >>> blob = ('{"$count":1,"$hit":[{"$source":"phone","$score":90,'
        ...         '"$data":{"CUSTOMER_NUMBER":"C1","phone_number":"555"}}]}')
        >>> [(h.entity_key, h.matched_field, h.score) for h in parser.parse(blob)]
        [('C1', 'phone_number', 90.0)]
        >>> parser.parse('{"$hit":[{"$source":"phone"')
        []
    """

    def __init__(
        self,
        config: Optional[ParsingConfig] = None,
        classifier: Optional[FieldCategoryClassifier] = None,
    ) -> None:
        self._config = config or ParsingConfig()
        self._classifier = classifier or FieldCategoryClassifier()

    def parse(self, raw: Optional[str]) -> List[Hit]:
        """Return the successfully parsed hits, in response order.

        Args:
            raw: Response text; ``None`` or empty input yields no hits.

        Returns:
            List of hits. Malformed elements are dropped and logged.
        """
        return [outcome.hit for outcome in self.parse_outcomes(raw) if outcome.hit is not None]

    def parse_outcomes(self, raw: Optional[str]) -> List[HitParseOutcome]:
        """Parse every element of the hit array into a success or failure outcome."""
        if not raw:
            return []
        array_start = self._locate_hit_array(raw)
        if array_start < 0:
            return []
        objects = split_hit_objects(raw, array_start)
        if objects is None:
            logger.warning(
                "unified-parse-truncated",
                extra={"event": {"reason": "unterminated_hit_array", "length": len(raw)}},
            )
            return []
        outcomes = [self._parse_object(position, text) for position, text in enumerate(objects)]
        for outcome in outcomes:
            if outcome.failure is not None:
                logger.debug(
                    "unified-parse-skip",
                    extra={
                        "event": {
                            "position": outcome.failure.position,
                            "reason": outcome.failure.reason,
                        }
                    },
                )
        return outcomes

    def advertised_count(self, raw: Optional[str]) -> Optional[int]:
        """Return the envelope's advertised hit count, when present and numeric."""
        if not raw:
            return None
        start = raw.find("{")
        if start < 0:
            return None
        scalars, _ = scan_object_members(raw[start:])
        value = scalars.get(self._config.count_key)
        try:
            return int(float(value)) if value is not None else None
        except ValueError:
            return None

    def _locate_hit_array(self, raw: str) -> int:
        marker = f'"{self._config.hit_array_key}"'
        search_from = 0
        while True:
            position = raw.find(marker, search_from)
            if position < 0:
                return -1
            index = _skip_whitespace(raw, position + len(marker))
            if index < len(raw) and raw[index] == ":":
                index = _skip_whitespace(raw, index + 1)
                if index < len(raw) and raw[index] == "[":
                    return index
                return -1
            search_from = position + len(marker)

    def _parse_object(self, position: int, text: str) -> HitParseOutcome:
        config = self._config
        scalars, containers = scan_object_members(text)
        source = scalars.get(config.source_key, "").strip()
        if not source:
            return self._failure(position, "missing_source", text)

        payload_text = containers.get(config.payload_key)
        payload: Dict[str, str] = {}
        if payload_text is not None:
            payload, _ = scan_object_members(payload_text)

        entity_key = ""
        for key_field in config.entity_key_fields:
            candidate = payload.get(key_field, "").strip()
            if candidate:
                entity_key = candidate
                break
        if not entity_key:
            reason = "no_payload" if payload_text is None else "missing_entity_key"
            return self._failure(position, reason, text)

        fields: Dict[str, str] = {}
        # Case variants collapse to one key; the first non-blank value wins.
        for name, value in payload.items():
            lowered = name.lower()
            if not fields.get(lowered, "").strip():
                fields[lowered] = value

        label = self._classifier.normalize_source(source)
        matched_field = self._classifier.resolve_field(label, fields)
        matched_value = fields.get(matched_field, "") if matched_field else ""
        hit = Hit(
            source_collection=label,
            entity_key=entity_key,
            matched_field=matched_field,
            matched_value=matched_value,
            score=self._coerce_score(scalars.get(config.score_key)),
            fields=MappingProxyType(fields),
        )
        return HitParseOutcome(position=position, hit=hit)

    def _failure(self, position: int, reason: str, text: str) -> HitParseOutcome:
        fragment = text[: self._config.fragment_chars]
        return HitParseOutcome(
            position=position, failure=ParseFailure(position, reason, fragment)
        )

    @staticmethod
    def _coerce_score(value: Optional[str]) -> float:
        if value is None:
            return 0.0
        try:
            score = float(value)
        except ValueError:
            return 0.0
        return score if math.isfinite(score) else 0.0
