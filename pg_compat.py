"""PostgreSQL compatibility layer: wraps psycopg2 to look like sqlite3.

When DATABASE starts with postgresql:// (or postgres://) the stores get a
connection wrapper that:
  - rewrites ? placeholders to %s
  - rewrites INSERT OR IGNORE to INSERT ... ON CONFLICT DO NOTHING
  - splits executescript() into single statements
  - returns dict-like rows (PgRow) instead of tuples
  - exposes Error / IntegrityError like sqlite3.Connection does, so stores
    can write ``except db.IntegrityError`` once for both backends

``INSERT ... ON CONFLICT (...) DO UPDATE`` is passed through unchanged; both
engines accept it.
"""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_IGNORABLE_DDL = ("already exists", "duplicate column")


class PgRow:
    """Dict-like row that mimics sqlite3.Row."""

    def __init__(self, columns: list[str], values: tuple):
        self._columns = list(columns)
        self._data = dict(zip(columns, values))

    def __getitem__(self, key: str | int) -> Any:
        if isinstance(key, int):
            return self._data[self._columns[key]]
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __iter__(self):
        return iter(self._data[c] for c in self._columns)

    def keys(self) -> list[str]:
        return list(self._columns)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __repr__(self) -> str:
        return f"PgRow({self._data})"


def translate_sql(sql: str) -> str:
    """Translate one SQLite statement to PostgreSQL."""
    translated = sql.replace("?", "%s")
    if re.search(r"INSERT\s+OR\s+IGNORE\s+INTO", translated, flags=re.IGNORECASE):
        translated = re.sub(r"INSERT\s+OR\s+IGNORE\s+INTO", "INSERT INTO", translated,
                            flags=re.IGNORECASE)
        translated = translated.rstrip().rstrip(";") + " ON CONFLICT DO NOTHING"
    return translated


def translate_schema(sql: str) -> str:
    """Translate SQLite DDL to PostgreSQL DDL."""
    translated = re.sub(
        r"(\w+)\s+INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        r"\1 SERIAL PRIMARY KEY",
        sql,
        flags=re.IGNORECASE,
    )
    return re.sub(r"PRAGMA\s+\w+\s*=\s*\w+\s*;?", "", translated, flags=re.IGNORECASE)


class PgCursorWrapper:
    """Wraps a psycopg2 cursor to match the sqlite3.Cursor interface."""

    def __init__(self, cursor):
        self._cursor = cursor
        self._last_id: int | None = None

    @property
    def lastrowid(self) -> int | None:
        return self._last_id

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    def execute(self, sql: str, params: tuple = ()) -> "PgCursorWrapper":
        translated = translate_sql(sql)
        upper = translated.lstrip().upper()
        # Every table carries an id column, so RETURNING id is always valid.
        wants_id = upper.startswith("INSERT") and "RETURNING" not in upper
        if wants_id:
            translated = translated.rstrip().rstrip(";") + " RETURNING id"
        self._cursor.execute(translated, params)
        self._last_id = None
        if wants_id:
            row = self._cursor.fetchone()
            self._last_id = row[0] if row else None
        return self

    def _columns(self) -> list[str]:
        return [d[0] for d in self._cursor.description or ()]

    def fetchone(self) -> PgRow | None:
        row = self._cursor.fetchone()
        return PgRow(self._columns(), row) if row is not None else None

    def fetchall(self) -> list[PgRow]:
        if not self._cursor.description:
            return []
        cols = self._columns()
        return [PgRow(cols, r) for r in self._cursor.fetchall()]

    def close(self):
        self._cursor.close()


class PgConnectionWrapper:
    """Wraps a psycopg2 connection to match the sqlite3.Connection interface."""

    def __init__(self, conn, driver):
        self._conn = conn
        self._conn.autocommit = False
        self.Error = driver.Error
        self.IntegrityError = driver.IntegrityError
        self.row_factory = None

    def execute(self, sql: str, params: tuple = ()) -> PgCursorWrapper:
        return PgCursorWrapper(self._conn.cursor()).execute(sql, params)

    def executescript(self, sql: str) -> None:
        cursor = self._conn.cursor()
        for stmt in (s.strip() for s in translate_schema(sql).split(";")):
            if not stmt:
                continue
            cursor.execute("SAVEPOINT ddl")
            try:
                cursor.execute(stmt)
            except self.Error as e:
                if not any(p in str(e).lower() for p in _IGNORABLE_DDL):
                    raise
                cursor.execute("ROLLBACK TO SAVEPOINT ddl")
                logger.debug("Skipping DDL statement: %s", e)
            else:
                cursor.execute("RELEASE SAVEPOINT ddl")
        cursor.close()

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def connect_pg(database_url: str) -> PgConnectionWrapper:
    """Open a PostgreSQL connection with a sqlite3-compatible interface."""
    import psycopg2

    return PgConnectionWrapper(psycopg2.connect(database_url), psycopg2)


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql://") or url.startswith("postgres://")
