from __future__ import annotations

import json
import os
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator, List, Mapping, Optional, Tuple

from .repositories import TABLES, Document, ListQuery, Repository, _RESERVED, _check_table, _now_ms, _split_sort

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class _Cols:
    id: str = "id"
    created_at: str = "created_at"
    doc: str = "doc"


_COLS = _Cols()


def _field_sql(name: str) -> str:
    """SQL expression for a document field; id and created_at are real columns."""
    if name in _RESERVED:
        return name
    if not _FIELD_RE.match(name):
        raise ValueError(f"Invalid field name: {name!r}")
    return f"json_extract({_COLS.doc}, '$.{name}')"


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.

    Each table stores its documents as JSON next to the id and created_at
    columns; filters and sorting go through json_extract.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            for table in TABLES:
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        {_COLS.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                        {_COLS.created_at} INTEGER NOT NULL,
                        {_COLS.doc} TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}({_COLS.created_at})"
                )

    def _row_to_entity(self, row: sqlite3.Row) -> Document:
        entity: Document = json.loads(row[_COLS.doc])
        entity["id"] = int(row[_COLS.id])
        entity["created_at"] = int(row[_COLS.created_at])
        return entity

    def _fetch(self, conn: sqlite3.Connection, table: str, doc_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT * FROM {table} WHERE {_COLS.id} = ?", (doc_id,)).fetchone()

    def insert(self, table: str, doc: Mapping[str, Any]) -> Document:
        _check_table(table)
        body = {k: v for k, v in doc.items() if k not in _RESERVED}
        with self._conn() as conn:
            cur = conn.execute(
                f"INSERT INTO {table} ({_COLS.created_at}, {_COLS.doc}) VALUES (?, ?)",
                (_now_ms(), json.dumps(body)),
            )
            row = self._fetch(conn, table, int(cur.lastrowid))
            assert row is not None
            return self._row_to_entity(row)

    def get(self, table: str, doc_id: int) -> Optional[Document]:
        _check_table(table)
        with self._conn() as conn:
            row = self._fetch(conn, table, doc_id)
            return self._row_to_entity(row) if row else None

    def patch(self, table: str, doc_id: int, fields: Mapping[str, Any]) -> Optional[Document]:
        _check_table(table)
        with self._conn() as conn:
            row = self._fetch(conn, table, doc_id)
            if not row:
                return None
            body = json.loads(row[_COLS.doc])
            body.update({k: v for k, v in fields.items() if k not in _RESERVED})
            conn.execute(
                f"UPDATE {table} SET {_COLS.doc} = ? WHERE {_COLS.id} = ?",
                (json.dumps(body), doc_id),
            )
            row2 = self._fetch(conn, table, doc_id)
            assert row2 is not None
            return self._row_to_entity(row2)

    def delete(self, table: str, doc_id: int) -> bool:
        _check_table(table)
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {table} WHERE {_COLS.id} = ?", (doc_id,))
            return cur.rowcount > 0

    def list(self, table: str, query: Optional[ListQuery] = None) -> Tuple[List[Document], int]:
        _check_table(table)
        q = query or ListQuery()
        clauses: List[str] = []
        params: list = []

        for name, value in q.where.items():
            if value is None:
                clauses.append(f"{_field_sql(name)} IS NULL")
            else:
                clauses.append(f"{_field_sql(name)} = ?")
                params.append(value)

        for name, (low, high) in q.between.items():
            expr = _field_sql(name)
            clauses.append(f"{expr} IS NOT NULL")
            if low is not None:
                clauses.append(f"{expr} >= ?")
                params.append(low)
            if high is not None:
                clauses.append(f"{expr} <= ?")
                params.append(high)

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        keys = [_split_sort(k) for k in q.sort if k.strip()]
        tiebreak_desc = keys[-1][1] if keys else False
        order_parts = [f"{_field_sql(name)} {'DESC' if desc else 'ASC'}" for name, desc in keys]
        order_parts.append(f"{_COLS.id} {'DESC' if tiebreak_desc else 'ASC'}")
        order_sql = f"ORDER BY {', '.join(order_parts)}"

        page_sql = "LIMIT ? OFFSET ?"
        limit = -1 if q.limit is None else max(q.limit, 0)
        offset = max(q.offset, 0)

        with self._conn() as conn:
            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM {table} {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM {table}
                {where_sql}
                {order_sql}
                {page_sql}
                """,
                [*params, limit, offset],
            ).fetchall()
            return [self._row_to_entity(r) for r in rows], total
