"""Map matched search fields onto semantic identity categories.

A hit only tells us which collection matched and what the document payload
looked like. The classifier turns that into a single ``matched_field`` through
a per-source precedence list, then into a :class:`Category`. The tables are
immutable and shared by reference, so one classifier instance can be reused
across threads and requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from .config import ClassificationConfig
from .types import Category, Hit

# --- Globals ---

__all__ = (
    "SourceRule",
    "ClassificationTable",
    "FieldCategoryClassifier",
    "DEFAULT_FIELD_CATEGORIES",
    "DEFAULT_SOURCE_RULES",
)


@dataclass(frozen=True)
class SourceRule:
    """Field precedence for one collection.

    Attributes:
        source: Normalised collection label.
        candidates: Field names checked in order; the first populated one wins.
        fallback: Field reported when no candidate is populated.
    """

    source: str
    candidates: Tuple[str, ...]
    fallback: str


DEFAULT_SOURCE_RULES: Tuple[SourceRule, ...] = (
    SourceRule("phone", ("phone_number",), "phone_number"),
    SourceRule("identity", ("email", "ssn_last4"), "ssn_last4"),
    SourceRule("account", ("account_number", "account_last4"), "account_last4"),
    SourceRule("address", ("city", "state", "zip"), "city"),
)

DEFAULT_FIELD_CATEGORIES: Mapping[str, Category] = MappingProxyType(
    {
        "phone_number": Category.PHONE,
        "ssn_last4": Category.SSN_LAST4,
        "account_number": Category.ACCOUNT_NUMBER,
        "account_last4": Category.ACCOUNT_LAST4,
        "email": Category.EMAIL,
        "city": Category.CITY,
        "state": Category.STATE,
        "zip": Category.ZIP,
    }
)


# --- Public Classes ---


class ClassificationTable:
    """Read-only lookup tables consulted by :class:`FieldCategoryClassifier`.

    Attributes:
        rules: Mapping of normalised source label to :class:`SourceRule`.
        field_categories: Mapping of lower-cased field name to category.
        prefixes: Source-label prefixes stripped during normalisation, longest first.
    """

    __slots__ = ("rules", "field_categories", "prefixes")

    def __init__(
        self,
        rules: Iterable[SourceRule] = DEFAULT_SOURCE_RULES,
        field_categories: Mapping[str, Category] = DEFAULT_FIELD_CATEGORIES,
        prefixes: Sequence[str] = (),
    ) -> None:
        self.rules: Mapping[str, SourceRule] = MappingProxyType(
            {rule.source.lower(): rule for rule in rules}
        )
        self.field_categories: Mapping[str, Category] = MappingProxyType(
            {name.lower(): category for name, category in field_categories.items()}
        )
        cleaned = {prefix.lower() for prefix in prefixes if prefix}
        self.prefixes: Tuple[str, ...] = tuple(sorted(cleaned, key=len, reverse=True))

    @classmethod
    def from_config(cls, config: ClassificationConfig) -> "ClassificationTable":
        """Build a table honouring collection prefixes and precedence overrides."""
        rules = {rule.source: rule for rule in DEFAULT_SOURCE_RULES}
        for source, candidates in config.precedence_overrides.items():
            names = tuple(candidates)
            if not names:
                continue
            rules[source] = SourceRule(source, names, names[0])
        prefixes = [config.view_prefix]
        if config.collection_prefix:
            prefixes.append(config.collection_prefix)
        return cls(rules.values(), DEFAULT_FIELD_CATEGORIES, prefixes)


class FieldCategoryClassifier:
    """Pure classifier from ``(source, payload)`` to matched field and category.

    Examples:
        >>> classifier = FieldCategoryClassifier()
        >>> classifier.classify("identity", {"email": "a@b.com", "ssn_last4": "6789"})
        ('email', <Category.EMAIL: 'EMAIL'>)
        >>> classifier.classify("identity", {"ssn_last4": "6789"})
        ('ssn_last4', <Category.SSN_LAST4: 'SSN_LAST4'>)
    """

    def __init__(self, table: Optional[ClassificationTable] = None) -> None:
        self._table = table or ClassificationTable.from_config(ClassificationConfig())

    @property
    def table(self) -> ClassificationTable:
        return self._table

    def normalize_source(self, source: str) -> str:
        """Lower-case a collection label and strip one known prefix."""
        label = (source or "").strip().lower()
        for prefix in self._table.prefixes:
            if label.startswith(prefix) and len(label) > len(prefix):
                return label[len(prefix) :]
        return label

    def resolve_field(self, source: str, fields: Mapping[str, str]) -> Optional[str]:
        """Return the matched field for a hit, or ``None`` for unknown sources.

        Args:
            source: Collection label as reported by the search collaborator.
            fields: Payload scalars keyed by lower-cased field name.

        Returns:
            Field name chosen by the source precedence list.
        """
        rule = self._table.rules.get(self.normalize_source(source))
        if rule is None:
            return None
        for candidate in rule.candidates:
            value = fields.get(candidate)
            if value is not None and str(value).strip():
                return candidate
        return rule.fallback

    def category_for_field(self, field_name: Optional[str]) -> Optional[Category]:
        """Map a field name to its category; case-insensitive, ``None`` when unknown."""
        if not field_name:
            return None
        return self._table.field_categories.get(field_name.lower())

    def classify(
        self, source: str, fields: Mapping[str, str]
    ) -> Tuple[Optional[str], Optional[Category]]:
        """Resolve both the matched field and its category in one call."""
        field_name = self.resolve_field(source, fields)
        return field_name, self.category_for_field(field_name)

    def classify_hit(self, hit: Hit) -> Optional[Category]:
        """Category of an already parsed hit."""
        return self.category_for_field(hit.matched_field)

    def rules(self) -> Iterator[Tuple[str, str, Optional[Category]]]:
        """Yield ``(source, field, category)`` triples in precedence order."""
        for source, rule in self._table.rules.items():
            for candidate in rule.candidates:
                yield source, candidate, self.category_for_field(candidate)
