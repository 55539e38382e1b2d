"""
"Did you mean" helpers for unknown variables and values.

Matching is a case-insensitive substring test: a candidate matches when the
user's token appears inside the candidate's code (or, for variables, inside
its label).  Candidates are returned in table order.
"""
from __future__ import annotations

from typing import Iterable

from scb_query.catalog.metadata import DimensionDefinition, TableMetadata


def _contains(haystack: str, needle: str) -> bool:
    return needle.lower() in haystack.lower()


def similar_variables(query: str, metadata: TableMetadata) -> list[str]:
    """Dimension codes whose code or label contains *query*."""
    return [
        d.code for d in metadata.dimensions
        if _contains(d.code, query) or _contains(d.label, query)
    ]


def similar_values(query: str, dimension: DimensionDefinition, limit: int = 3) -> list[str]:
    """Up to *limit* value codes of *dimension* that contain *query*."""
    matches = [c for c in dimension.value_codes if _contains(c, query)]
    return matches[:limit]


def match_dimensions(name: str, dimensions: Iterable[DimensionDefinition]) -> list[DimensionDefinition]:
    """Dimensions whose code equals *name* (any case) or whose label contains it."""
    lowered = name.lower()
    return [d for d in dimensions if d.code.lower() == lowered or _contains(d.label, name)]
