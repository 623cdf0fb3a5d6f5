"""Group classified hits by entity and expose per-entity score statistics."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Set

import numpy as np

from .classification import FieldCategoryClassifier
from .errors import ClassificationMiss
from .types import Category, Hit

__all__ = ("HitGroup", "AggregationResult", "group_by_entity")

logger = logging.getLogger("IdentityBench.UnifiedSearch")


class HitGroup:
    """Mutable accumulator of every hit that refers to one entity.

    The category set is maintained incrementally by :meth:`add_hit`; score
    statistics are recomputed from the hit list whenever they are read.

    Attributes:
        entity_key: Customer number shared by all hits in the group.
        hits: Hits in arrival order.

    Examples:
        >>> group = HitGroup("C1")
        >>> group.add_hit(Hit("phone", "C1", "phone_number", "555", 90.0), Category.PHONE)
        >>> group.add_hit(Hit("identity", "C1", "ssn_last4", "6789", 80.0), Category.SSN_LAST4)
        >>> group.average_score
        85.0
        >>> group.has_all_categories({Category.PHONE, Category.SSN_LAST4})
        True
    """

    __slots__ = ("entity_key", "hits", "_categories")

    def __init__(self, entity_key: str) -> None:
        self.entity_key = entity_key
        self.hits: List[Hit] = []
        self._categories: Set[Category] = set()

    def add_hit(self, hit: Hit, category: Optional[Category]) -> None:
        """Append ``hit`` and record ``category`` when it is known."""
        self.hits.append(hit)
        if category is not None:
            self._categories.add(category)

    @property
    def categories(self) -> FrozenSet[Category]:
        return frozenset(self._categories)

    def _scores(self) -> np.ndarray:
        return np.fromiter((hit.score for hit in self.hits), dtype=float, count=len(self.hits))

    @property
    def hit_count(self) -> int:
        return len(self.hits)

    @property
    def category_count(self) -> int:
        return len(self._categories)

    @property
    def total_score(self) -> float:
        if not self.hits:
            return 0.0
        return float(self._scores().sum())

    @property
    def average_score(self) -> float:
        if not self.hits:
            return 0.0
        return float(self._scores().mean())

    @property
    def max_score(self) -> float:
        if not self.hits:
            return 0.0
        return float(self._scores().max())

    @property
    def min_score(self) -> float:
        if not self.hits:
            return 0.0
        return float(self._scores().min())

    def has_all_categories(self, required: Iterable[Category]) -> bool:
        """True when the group's categories are a superset of ``required``."""
        return self._categories.issuperset(required)

    def __repr__(self) -> str:
        categories = ",".join(sorted(category.value for category in self._categories))
        return (
            f"HitGroup(entity_key={self.entity_key!r}, hits={len(self.hits)}, "
            f"categories=[{categories}], average={self.average_score:.2f})"
        )


class AggregationResult(NamedTuple):
    """Insertion-ordered groups plus the hits that matched no category."""

    groups: Dict[str, HitGroup]
    misses: List[ClassificationMiss]


def group_by_entity(
    hits: Iterable[Hit], classifier: Optional[FieldCategoryClassifier] = None
) -> AggregationResult:
    """Group hits by entity key in a single pass.

    Args:
        hits: Parsed hits in response order.
        classifier: Classifier mapping each hit's matched field to a category.

    Returns:
        :class:`AggregationResult` holding insertion-ordered groups and the
        classification misses. Unclassified hits stay in their group and still
        count towards its score statistics, but add no category.
    """
    classifier = classifier or FieldCategoryClassifier()
    groups: Dict[str, HitGroup] = {}
    misses: List[ClassificationMiss] = []
    for hit in hits:
        category = classifier.classify_hit(hit)
        if category is None:
            misses.append(ClassificationMiss(hit.entity_key, hit.source_collection, hit.matched_field))
            logger.debug(
                "unified-classification-miss",
                extra={
                    "event": {
                        "entity_key": hit.entity_key,
                        "source": hit.source_collection,
                        "field": hit.matched_field,
                    }
                },
            )
        group = groups.get(hit.entity_key)
        if group is None:
            group = HitGroup(hit.entity_key)
            groups[hit.entity_key] = group
        group.add_hit(hit, category)
    return AggregationResult(groups, misses)
