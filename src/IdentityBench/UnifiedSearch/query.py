"""Compose the fuzzy disjunction sent to the unified search index."""

from __future__ import annotations

from typing import Iterable, List, Optional

__all__ = ("QueryBuilder", "build_find_statement")


class QueryBuilder:
    """Build ``fuzzy(term) OR fuzzy(term) ...`` expressions from raw terms.

    ``None`` and blank terms are dropped, surviving terms keep their original
    order, and each one is escaped before it is wrapped. Single quotes are
    doubled so the expression can sit inside a SQL string literal; double
    quotes are backslash escaped so it can sit inside a JSON string.

    Examples:
        >>> QueryBuilder.build(["O'Brien", "1234"])
        "fuzzy(O''Brien) OR fuzzy(1234)"
        >>> QueryBuilder.build([None, "  "])
        ''
    """

    FUNCTION = "fuzzy"
    OPERATOR = " OR "

    @staticmethod
    def escape(term: str) -> str:
        return term.replace("'", "''").replace('"', '\\"')

    @classmethod
    def usable_terms(cls, terms: Iterable[Optional[str]]) -> List[str]:
        """Return the non-blank terms, stripped, in their original order."""
        return [term.strip() for term in terms if term is not None and term.strip()]

    @classmethod
    def build(cls, terms: Iterable[Optional[str]]) -> str:
        predicates = [f"{cls.FUNCTION}({cls.escape(term)})" for term in cls.usable_terms(terms)]
        return cls.OPERATOR.join(predicates)


def build_find_statement(index_name: str, composed_query: str, over_fetch_limit: int) -> str:
    """Render the ``DBMS_SEARCH.FIND`` statement for a composed query.

    Args:
        index_name: Unified search index, e.g. ``idx_bench_uc_unified``.
        composed_query: Output of :meth:`QueryBuilder.build` (already escaped).
        over_fetch_limit: Maximum number of hits requested from the index.

    Returns:
        SQL text returning the ``$count``/``$hit`` envelope as a single value.

    Raises:
        ValueError: If the query is empty or the limit is not positive.
    """
    if not composed_query:
        raise ValueError("composed query must not be empty")
    if over_fetch_limit <= 0:
        raise ValueError("over_fetch_limit must be greater than 0")
    return (
        f"SELECT DBMS_SEARCH.FIND('{index_name}', JSON('"
        f'{{"$query":"{composed_query}","$search":{{"limit":{over_fetch_limit}}}}}'
        "')) AS result FROM dual"
    )
