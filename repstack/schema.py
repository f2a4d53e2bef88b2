"""
Document tables on top of SQLite.

Every collection is stored as one table with a primary key column, a handful
of extracted index columns, and a `doc` column holding the JSON record. The
`TableHandle` API is what upgrade steps and the entity store operate on.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .errors import MissingTableError

KEY_TEXT = "TEXT"
KEY_INTEGER = "INTEGER"
DOC_COLUMN = "doc"


@dataclass(frozen=True)
class TableDef:
    """Declared shape of a document table at a schema version."""

    key_type: str = KEY_TEXT
    indexes: tuple[str, ...] = ()

    def create_sql(self, name: str) -> str:
        if self.key_type == KEY_INTEGER:
            key = "id INTEGER PRIMARY KEY AUTOINCREMENT"
        else:
            key = "id TEXT PRIMARY KEY"
        columns = [key, *self.indexes, f"{DOC_COLUMN} TEXT NOT NULL"]
        return f"CREATE TABLE {name} ({', '.join(columns)})"

    def index_sql(self, name: str) -> list[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS idx_{name}_{column} ON {name} ({column})"
            for column in self.indexes
        ]


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,),
    )
    return cursor.fetchone() is not None


def user_table_names(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
    ).fetchall()
    return [row[0] for row in rows]


def table_key_type(conn: sqlite3.Connection, table: str) -> Optional[str]:
    """Declared type of the table's primary key column, upper-cased."""
    for _, _, col_type, _, _, pk in conn.execute(f"PRAGMA table_info({table})").fetchall():
        if pk:
            return (col_type or "").upper()
    return None


def table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def _column_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, sort_keys=True)
    return value


class TableHandle:
    """CRUD access to one document table inside a transaction."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        name: str,
        *,
        on_write: Callable[[str], None] | None = None,
    ) -> None:
        self._conn = conn
        self.name = name
        columns = table_columns(conn, name)
        self.key_type = table_key_type(conn, name) or KEY_TEXT
        self.columns = tuple(col for col in columns if col not in ("id", DOC_COLUMN))
        self._on_write = on_write

    def _touch(self) -> None:
        if self._on_write is not None:
            self._on_write(self.name)

    def _check_column(self, column: str) -> str:
        if column != "id" and column not in self.columns:
            raise ValueError(f"{self.name} has no indexed column {column!r}")
        return column

    def _decode(self, rows: Iterable[Sequence[Any]]) -> List[Dict[str, Any]]:
        return [json.loads(row[0]) for row in rows]

    def _order_clause(self, order_by: Optional[str], descending: bool) -> str:
        if order_by is None:
            return " ORDER BY rowid"
        direction = "DESC" if descending else "ASC"
        return f" ORDER BY {self._check_column(order_by)} {direction}, rowid {direction}"

    def add(self, doc: Dict[str, Any]) -> Any:
        """Insert a new document; integer-keyed tables assign the key."""
        values = [_column_value(doc.get(column)) for column in self.columns]
        if self.key_type == KEY_INTEGER and doc.get("id") is None:
            names = [*self.columns, DOC_COLUMN]
            placeholders = ", ".join("?" for _ in names)
            cursor = self._conn.execute(
                f"INSERT INTO {self.name} ({', '.join(names)}) VALUES ({placeholders})",
                [*values, json.dumps(doc)],
            )
            doc["id"] = cursor.lastrowid
            self._conn.execute(
                f"UPDATE {self.name} SET {DOC_COLUMN} = ? WHERE id = ?",
                (json.dumps(doc), doc["id"]),
            )
        else:
            names = ["id", *self.columns, DOC_COLUMN]
            placeholders = ", ".join("?" for _ in names)
            self._conn.execute(
                f"INSERT INTO {self.name} ({', '.join(names)}) VALUES ({placeholders})",
                [doc["id"], *values, json.dumps(doc)],
            )
        self._touch()
        return doc["id"]

    def bulk_add(self, docs: Iterable[Dict[str, Any]]) -> int:
        count = 0
        for doc in docs:
            self.add(doc)
            count += 1
        return count

    def put(self, doc: Dict[str, Any]) -> Any:
        """Insert or replace a document by key."""
        names = ["id", *self.columns, DOC_COLUMN]
        placeholders = ", ".join("?" for _ in names)
        values = [_column_value(doc.get(column)) for column in self.columns]
        self._conn.execute(
            f"INSERT OR REPLACE INTO {self.name} ({', '.join(names)}) VALUES ({placeholders})",
            [doc["id"], *values, json.dumps(doc)],
        )
        self._touch()
        return doc["id"]

    def get(self, key: Any) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            f"SELECT {DOC_COLUMN} FROM {self.name} WHERE id = ?", (key,)
        ).fetchone()
        return json.loads(row[0]) if row else None

    def to_list(self, *, order_by: str | None = None, descending: bool = False) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            f"SELECT {DOC_COLUMN} FROM {self.name}" + self._order_clause(order_by, descending)
        ).fetchall()
        return self._decode(rows)

    def where(
        self,
        column: str,
        value: Any,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            f"SELECT {DOC_COLUMN} FROM {self.name} WHERE {self._check_column(column)} = ?"
            + self._order_clause(order_by, descending),
            (_column_value(value),),
        ).fetchall()
        return self._decode(rows)

    def between(
        self,
        column: str,
        low: Any,
        high: Any,
        *,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        """Documents whose indexed column lies in [low, high]."""
        rows = self._conn.execute(
            f"SELECT {DOC_COLUMN} FROM {self.name} WHERE {self._check_column(column)} BETWEEN ? AND ?"
            + self._order_clause(column, descending),
            (_column_value(low), _column_value(high)),
        ).fetchall()
        return self._decode(rows)

    def first(self, column: str, value: Any) -> Optional[Dict[str, Any]]:
        matches = self.where(column, value)
        return matches[0] if matches else None

    def count(self) -> int:
        return int(self._conn.execute(f"SELECT COUNT(*) FROM {self.name}").fetchone()[0])

    def delete(self, key: Any) -> bool:
        cursor = self._conn.execute(f"DELETE FROM {self.name} WHERE id = ?", (key,))
        if cursor.rowcount:
            self._touch()
        return cursor.rowcount > 0

    def delete_where(self, column: str, value: Any) -> int:
        cursor = self._conn.execute(
            f"DELETE FROM {self.name} WHERE {self._check_column(column)} = ?",
            (_column_value(value),),
        )
        if cursor.rowcount:
            self._touch()
        return cursor.rowcount

    def clear(self) -> None:
        self._conn.execute(f"DELETE FROM {self.name}")
        self._touch()


class Transaction:
    """Table access bound to one open SQLite transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.touched: set[str] = set()
        self._handles: dict[str, TableHandle] = {}

    def _mark(self, table: str) -> None:
        self.touched.add(table)

    def has_table(self, name: str) -> bool:
        return table_exists(self.conn, name)

    def table(self, name: str) -> TableHandle:
        handle = self._handles.get(name)
        if handle is not None and table_exists(self.conn, name):
            return handle
        if not table_exists(self.conn, name):
            self._handles.pop(name, None)
            raise MissingTableError(name)
        handle = TableHandle(self.conn, name, on_write=self._mark)
        self._handles[name] = handle
        return handle

    def forget(self, name: str) -> None:
        """Drop any cached handle after the table's shape changed."""
        self._handles.pop(name, None)
