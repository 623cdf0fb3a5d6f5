"""Builders for search response envelopes used across the unified search tests."""

from __future__ import annotations

from typing import Optional, Union


def hit_json(source: str, key: str, score: Optional[Union[float, int]], **fields: str) -> str:
    """Render one hit object the way the search index does."""
    data = {"CUSTOMER_NUMBER": key, **fields}
    members = ",".join(f'"{name}":"{value}"' for name, value in data.items())
    score_part = "" if score is None else f',"$score":{score}'
    return f'{{"$source":"{source}","$data":{{{members}}}{score_part}}}'


def envelope(*hits: str, count: Optional[int] = None) -> str:
    """Wrap pre-rendered hit objects in a ``$count``/``$hit`` envelope."""
    advertised = len(hits) if count is None else count
    return f'{{"$count":{advertised},"$hit":[{",".join(hits)}]}}'
