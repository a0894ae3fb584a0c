from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from fastapi import Query

from .core.tzcalendar import MAX_INSTANT_MS, MIN_INSTANT_MS


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    offset: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: The limit used for pagination.
        offset: The offset used for pagination.

    Returns:
        Dict with keys: items, total, limit, offset.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "total": int(total),
        "limit": int(max(limit, 0)),
        "offset": int(max(offset, 0)),
    }


# PUBLIC_INTERFACE
def get_now_ms(
    now_ms: Optional[int] = Query(
        None,
        ge=MIN_INSTANT_MS,
        le=MAX_INSTANT_MS,
        description="Reference instant (epoch ms) used as 'now'; defaults to the server clock",
    ),
) -> int:
    """
    Request dependency supplying the current instant.

    This is the only place the wall clock is read; services and the date
    core receive the value explicitly.
    """
    if now_ms is not None:
        return now_ms
    return int(time.time() * 1000)
