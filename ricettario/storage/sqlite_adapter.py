from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

from .adapter import Params, Row, StorageAdapter

_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA busy_timeout = 5000",
)


class SQLiteAdapter(StorageAdapter):
    """Single shared autocommit connection to the local store file.

    Transactions are opened explicitly with ``begin``/``transaction``; every
    other statement commits on its own.
    """

    backend: str = "sqlite"

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._guard = threading.Lock()
        self._logger = logging.getLogger(__name__)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        with self._guard:
            if self._conn is not None:
                return
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # Worker threads read settings while the UI thread writes.
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            try:
                for pragma in _PRAGMAS:
                    conn.execute(pragma)
            except sqlite3.Error:
                # A damaged file fails here; keep no handle on it.
                conn.close()
                raise
            self._conn = conn
        self._logger.debug("Opened local store", extra={"operation": "connect", "path": str(self._db_path)})

    def close(self) -> None:
        with self._guard:
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def begin(self) -> None:
        self._connection().execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        conn = self._conn
        if conn is not None and conn.in_transaction:
            conn.execute("COMMIT")

    def rollback(self) -> None:
        conn = self._conn
        if conn is not None and conn.in_transaction:
            conn.execute("ROLLBACK")

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        return self._connection().execute(sql, params)

    def query(self, sql: str, params: Params = ()) -> list[Row]:
        return [dict(row) for row in self.execute(sql, params)]

    def execute_script(self, sql: str) -> None:
        self._connection().executescript(sql)

    def table_names(self) -> set[str]:
        rows = self.query("SELECT name FROM sqlite_master WHERE type = 'table'")
        return {str(row["name"]) for row in rows}

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        return self._conn


__all__ = ["SQLiteAdapter"]
