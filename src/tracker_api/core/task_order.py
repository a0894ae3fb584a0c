from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar

ROOT_DAY_PREFIX = "root-day:"
ROOT_WEEK_PREFIX = "root-week:"
ROOT_MONTH_PREFIX = "root-month:"
CHILDREN_PREFIX = "children:"
ALL = "all"

T = TypeVar("T", bound=Mapping[str, Any])


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class ViewKey:
    """
    Identifies one task listing whose manual order is saved separately.

    kind is one of root-day, root-week, root-month, children, all.
    start is the DayKey the view is anchored on (day, week start or month
    start); parent_task_id is set for children views only.
    """

    kind: str
    start: Optional[int] = None
    parent_task_id: Optional[int] = None

    def __str__(self) -> str:
        if self.kind == "children":
            return f"{CHILDREN_PREFIX}{self.parent_task_id}:{self.start}"
        if self.kind == ALL:
            return self.kind
        return f"{self.kind}:{self.start}"


def root_day_key(day: int) -> str:
    return f"{ROOT_DAY_PREFIX}{day}"


def root_week_key(week_start: int) -> str:
    return f"{ROOT_WEEK_PREFIX}{week_start}"


def root_month_key(month_start: int) -> str:
    return f"{ROOT_MONTH_PREFIX}{month_start}"


def children_key(parent_task_id: int, day: int) -> str:
    return f"{CHILDREN_PREFIX}{parent_task_id}:{day}"


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


# PUBLIC_INTERFACE
def parse_view_key(view_key: str) -> Optional[ViewKey]:
    """Parse a view key string; returns None when it is not a known shape."""
    if view_key == ALL:
        return ViewKey(view_key)
    for prefix in (ROOT_DAY_PREFIX, ROOT_WEEK_PREFIX, ROOT_MONTH_PREFIX):
        if view_key.startswith(prefix):
            start = _parse_int(view_key[len(prefix):])
            return None if start is None else ViewKey(prefix[:-1], start)
    if view_key.startswith(CHILDREN_PREFIX):
        parent, sep, day = view_key[len(CHILDREN_PREFIX):].rpartition(":")
        parent_id, start = _parse_int(parent), _parse_int(day)
        if not sep or parent_id is None or start is None:
            return None
        return ViewKey("children", start, parent_id)
    return None


# PUBLIC_INTERFACE
def rekey_view_key(view_key: str, convert: Callable[[int], int]) -> Optional[str]:
    """
    Apply `convert` to the DayKey embedded in a view key.

    Returns the new key, or None for keys that carry no day (or do not parse).
    """
    parsed = parse_view_key(view_key)
    if parsed is None or parsed.start is None:
        return None
    return str(ViewKey(parsed.kind, convert(parsed.start), parsed.parent_task_id))


# PUBLIC_INTERFACE
def apply_saved_order(items: Sequence[T], ordered_ids: Iterable[int]) -> List[T]:
    """
    Reorder items by a saved id list.

    Listed items come first in the saved order; items the list does not
    mention keep their incoming order after them. Ids without an item are
    ignored.
    """
    by_id: Dict[int, T] = {item["id"]: item for item in items}
    seen = set()
    out: List[T] = []
    for item_id in ordered_ids:
        item = by_id.get(item_id)
        if item is not None and item_id not in seen:
            out.append(item)
            seen.add(item_id)
    out.extend(item for item in items if item["id"] not in seen)
    return out
