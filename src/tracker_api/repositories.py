from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .settings import get_settings

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

TABLES = (
    "categories",
    "tasks",
    "completions",
    "calorie_entries",
    "calorie_settings",
    "weight_entries",
    "recipes",
    "task_orders",
)

_RESERVED = {"id", "created_at"}


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing documents of one table.

    - where: equality filters, field -> value (None matches a missing/null field)
    - between: inclusive range filters, field -> (low, high); either bound may be None
    - sort: sort keys applied in order; a leading '-' means descending.
      Ties are broken by id in the direction of the last key.
    - limit/offset: pagination; limit None returns everything
    """
    where: Mapping[str, Any] = field(default_factory=dict)
    between: Mapping[str, Tuple[Optional[float], Optional[float]]] = field(default_factory=dict)
    sort: Tuple[str, ...] = ("-created_at",)
    limit: Optional[int] = None
    offset: int = 0


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table!r}")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _split_sort(key: str) -> Tuple[str, bool]:
    key = key.strip()
    return (key[1:], True) if key.startswith("-") else (key, False)


def _sort_value(value: Any) -> Tuple[bool, Any]:
    # Nulls sort first ascending, matching sqlite.
    return (False, 0) if value is None else (True, value)


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract document-store contract shared by the storage backends."""

    @abstractmethod
    def insert(self, table: str, doc: Mapping[str, Any]) -> Document:
        """Store a new document and return it with `id` and `created_at` assigned."""

    @abstractmethod
    def get(self, table: str, doc_id: int) -> Optional[Document]:
        """Return a document by id, or None if not found."""

    @abstractmethod
    def patch(self, table: str, doc_id: int, fields: Mapping[str, Any]) -> Optional[Document]:
        """Merge fields into an existing document. Return the updated document or None if not found."""

    @abstractmethod
    def delete(self, table: str, doc_id: int) -> bool:
        """Delete a document by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, table: str, query: Optional[ListQuery] = None) -> Tuple[List[Document], int]:
        """
        Return a slice of documents and the total count matching the filters.
        - Equality and inclusive range filters
        - Multi-key sorting (asc/desc)
        - limit/offset
        """

    def first(self, table: str, query: Optional[ListQuery] = None) -> Optional[Document]:
        q = query or ListQuery()
        items, _ = self.list(table, ListQuery(where=q.where, between=q.between, sort=q.sort, limit=1))
        return items[0] if items else None


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._tables: Dict[str, Dict[int, Document]] = {t: {} for t in TABLES}
        self._next_ids: Dict[str, int] = {t: 1 for t in TABLES}

    def _allocate_id(self, table: str) -> int:
        with self._lock:
            i = self._next_ids[table]
            self._next_ids[table] += 1
            return i

    def insert(self, table: str, doc: Mapping[str, Any]) -> Document:
        _check_table(table)
        entity: Document = {k: v for k, v in doc.items() if k not in _RESERVED}
        entity["id"] = self._allocate_id(table)
        entity["created_at"] = _now_ms()
        with self._lock:
            self._tables[table][entity["id"]] = entity
        return entity.copy()

    def get(self, table: str, doc_id: int) -> Optional[Document]:
        _check_table(table)
        with self._lock:
            item = self._tables[table].get(doc_id)
            return None if item is None else item.copy()

    def patch(self, table: str, doc_id: int, fields: Mapping[str, Any]) -> Optional[Document]:
        _check_table(table)
        with self._lock:
            existing = self._tables[table].get(doc_id)
            if existing is None:
                return None
            updated = existing.copy()
            updated.update({k: v for k, v in fields.items() if k not in _RESERVED})
            self._tables[table][doc_id] = updated
            return updated.copy()

    def delete(self, table: str, doc_id: int) -> bool:
        _check_table(table)
        with self._lock:
            return self._tables[table].pop(doc_id, None) is not None

    def list(self, table: str, query: Optional[ListQuery] = None) -> Tuple[List[Document], int]:
        _check_table(table)
        q = query or ListQuery()
        with self._lock:
            items: Iterable[Document] = list(self._tables[table].values())

            for name, value in q.where.items():
                items = [d for d in items if d.get(name) == value]

            for name, (low, high) in q.between.items():
                def in_range(d: Document, name: str = name, low: Any = low, high: Any = high) -> bool:
                    v = d.get(name)
                    if v is None:
                        return False
                    return (low is None or v >= low) and (high is None or v <= high)
                items = [d for d in items if in_range(d)]

            items = list(items)
            total = len(items)

            # Stable sorts applied from the least to the most significant key.
            keys = [_split_sort(k) for k in q.sort if k.strip()]
            tiebreak_desc = keys[-1][1] if keys else False
            items.sort(key=lambda d: d["id"], reverse=tiebreak_desc)
            for name, desc in reversed(keys):
                items.sort(key=lambda d, name=name: _sort_value(d.get(name)), reverse=desc)

            start = max(q.offset, 0)
            page = items[start:] if q.limit is None else items[start:start + max(q.limit, 0)]
            return [d.copy() for d in page], total


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Factory returning the configured repository (cached for the process).
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository backed by SQLITE_DB_PATH
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using sqlite persistence at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory persistence")
    return InMemoryRepository()
