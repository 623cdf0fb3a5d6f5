"""Coverage filtering and score ordering over aggregated entity groups.

Two ranking policies are exposed as independent pure functions:

- :func:`strict_coverage_rank` keeps only entities whose hits cover every
  required category, then orders them by average score.
- :func:`best_effort_rank` orders every entity by average score regardless of
  coverage, for callers that prefer partial matches over an empty page.

Both break score ties by entity key (ascending) so results are deterministic
for a given response, whatever order the groups were built in.
"""

from __future__ import annotations

from typing import AbstractSet, Iterable, List, Mapping, Union

from .aggregation import HitGroup
from .types import Category, RankedResult

# --- Globals ---

__all__ = ("strict_coverage_rank", "best_effort_rank", "rank_key")

GroupCollection = Union[Mapping[str, HitGroup], Iterable[HitGroup]]


# --- Private Helpers ---


def _as_groups(groups: GroupCollection) -> List[HitGroup]:
    if isinstance(groups, Mapping):
        return list(groups.values())
    return list(groups)


def _check_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValueError("limit must be greater than 0")


def _to_results(groups: Iterable[HitGroup], limit: int) -> List[RankedResult]:
    ordered = sorted(groups, key=rank_key)[:limit]
    return [
        RankedResult(
            entity_key=group.entity_key,
            average_score=group.average_score,
            categories=group.categories,
        )
        for group in ordered
    ]


# --- Public Functions ---


def rank_key(group: HitGroup) -> tuple[float, str]:
    """Sort key placing higher averages first, then lower entity keys."""
    return (-group.average_score, group.entity_key)


def strict_coverage_rank(
    groups: GroupCollection, required: AbstractSet[Category], limit: int
) -> List[RankedResult]:
    """Rank entities that satisfy every required category.

    Args:
        groups: Entity groups, either keyed by entity or as a plain iterable.
        required: Categories every returned entity must cover.
        limit: Maximum number of results.

    Returns:
        At most ``limit`` results ordered by descending average score.

    Raises:
        ValueError: If ``limit`` is not a positive integer.

    Examples:
        >>> from IdentityBench.UnifiedSearch.types import Hit
        >>> group = HitGroup("C2")
        >>> group.add_hit(Hit("phone", "C2", "phone_number", "555", 95.0), Category.PHONE)
        >>> strict_coverage_rank([group], {Category.PHONE, Category.SSN_LAST4}, 10)
        []
    """
    _check_limit(limit)
    eligible = [group for group in _as_groups(groups) if group.has_all_categories(required)]
    return _to_results(eligible, limit)


def best_effort_rank(groups: GroupCollection, limit: int) -> List[RankedResult]:
    """Rank every entity by average score, ignoring category coverage.

    Args:
        groups: Entity groups, either keyed by entity or as a plain iterable.
        limit: Maximum number of results.

    Returns:
        At most ``limit`` results ordered by descending average score.

    Raises:
        ValueError: If ``limit`` is not a positive integer.
    """
    _check_limit(limit)
    return _to_results(_as_groups(groups), limit)
