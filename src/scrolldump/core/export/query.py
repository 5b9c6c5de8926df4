"""
Query construction for sliced scroll workers.

Every worker gets its own query document. With more than one worker the
query carries a slice clause and the engine assigns each slice a
disjoint part of the result set.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

import orjson

from scrolldump.core.config.models import DEFAULT_PAGE_SIZE
from scrolldump.core.errors import QueryError


MATCH_ALL: Mapping[str, Any] = MappingProxyType({"match_all": {}})

# Index order sort, the cheapest order for scrolling
DOC_ORDER_SORT = "_doc"


@dataclass(frozen=True)
class SliceSpec:
    """Partition coordinate of one worker."""

    id: int
    max: int

    def to_dict(self) -> dict[str, int]:
        return {"id": self.id, "max": self.max}


@dataclass(frozen=True)
class Query:
    """Initial query document of one scroll session."""

    filter: Mapping[str, Any]
    size: int
    slice: SliceSpec | None = None

    def to_dict(self) -> dict[str, Any]:
        """Build a fresh request body."""
        body: dict[str, Any] = {
            "query": copy.deepcopy(dict(self.filter)),
            "size": self.size,
            "sort": [DOC_ORDER_SORT],
        }
        if self.slice is not None:
            body["slice"] = self.slice.to_dict()
        return body


def parse_filter(filter_json: str | None) -> Mapping[str, Any]:
    """Parse a user supplied filter, defaulting to match_all.

    Raises:
        QueryError: If the filter is not a JSON object
    """
    if filter_json is None:
        return MATCH_ALL

    try:
        parsed = orjson.loads(filter_json)
    except orjson.JSONDecodeError as e:
        raise QueryError(f"Query filter is not valid JSON: {e}", cause=e) from e

    if not isinstance(parsed, dict):
        raise QueryError(
            f"Query filter must be a JSON object, got {type(parsed).__name__}"
        )

    return MappingProxyType(parsed)


def build_query(
    filter_json: str | None,
    size: int | None,
    worker_id: int,
    worker_count: int,
) -> Query:
    """Build the initial query for one worker.

    Args:
        filter_json: Query filter as JSON text (None: match_all)
        size: Page size (None: 100)
        worker_id: This worker's slice id, in [0, worker_count)
        worker_count: Total number of workers

    Returns:
        Immutable Query

    Raises:
        QueryError: If any argument is invalid
    """
    if size is None:
        size = DEFAULT_PAGE_SIZE
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise QueryError(f"Page size must be a non-negative integer, got {size!r}")

    if worker_count < 1:
        raise QueryError(f"Worker count must be at least 1, got {worker_count}")
    if not 0 <= worker_id < worker_count:
        raise QueryError(f"Worker id {worker_id} is outside [0, {worker_count})")

    query_filter = parse_filter(filter_json)

    slice_spec = SliceSpec(id=worker_id, max=worker_count) if worker_count > 1 else None

    return Query(filter=query_filter, size=size, slice=slice_spec)
