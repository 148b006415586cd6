from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

from ricettario.core.errors import StorageReadError
from ricettario.services.migration_service import MigrationService
from ricettario.storage.adapter import StorageAdapter
from ricettario.storage.sqlite_adapter import SQLiteAdapter

JsonValue = Any


def _move_aside(path: Path) -> Path:
    """Rename the store file and its WAL sidecars to ``<name>.corrupt-<stamp>``."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    target = path.with_name(f"{path.name}.corrupt-{stamp}")
    for suffix in ("", "-wal", "-shm"):
        source = path.with_name(path.name + suffix)
        if source.exists():
            source.replace(path.with_name(target.name + suffix))
    return target


class KeyValueStore:
    """Durable JSON key-value store backed by a single SQLite table.

    Values are kept as serialized text. ``get`` never raises: an undecodable
    value is logged and reported as absent so application startup is not
    blocked by a corrupted entry. ``read`` is the strict variant.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        *,
        migration_service_factory: Callable[[StorageAdapter], MigrationService] = MigrationService,
    ) -> None:
        self._adapter = adapter
        self._lock = threading.RLock()
        self._logger = logging.getLogger(__name__)
        try:
            migration_service_factory(adapter).run_migrations()
        except sqlite3.DatabaseError as exc:
            adapter.close()
            raise StorageReadError(
                "The local data file is damaged and cannot be opened.",
                title="Local Data Unreadable",
                remediation="Move the data folder aside and import a backup.",
            ) from exc

    @classmethod
    def open(cls, db_path: Path | str) -> "KeyValueStore":
        """Open the store, moving a damaged file aside and starting empty."""
        path = Path(db_path)
        try:
            return cls(SQLiteAdapter(path))
        except StorageReadError:
            moved_to = _move_aside(path)
            logging.getLogger(__name__).warning(
                "Local data file is damaged; starting with an empty store",
                extra={"operation": "kv_open", "path": str(path), "moved_to": str(moved_to)},
                exc_info=True,
            )
        return cls(SQLiteAdapter(path))

    def read(self, key: str) -> Optional[JsonValue]:
        """Return the decoded value, ``None`` when absent.

        Raises StorageReadError when the row cannot be read or decoded.
        """
        with self._lock:
            try:
                rows = self._adapter.query("SELECT value FROM kv WHERE key = ?", (key,))
            except sqlite3.Error as exc:
                raise StorageReadError(
                    f"Could not read '{key}' from the local store.",
                    title="Local Data Unreadable",
                ) from exc
        if not rows:
            return None
        try:
            return json.loads(rows[0]["value"])
        except (json.JSONDecodeError, TypeError) as exc:
            raise StorageReadError(
                f"Stored value for '{key}' is not valid JSON.",
                title="Local Data Unreadable",
            ) from exc

    def get(self, key: str) -> Optional[JsonValue]:
        try:
            return self.read(key)
        except StorageReadError as exc:
            self._logger.warning(
                "Local store read failed; treating value as absent",
                extra={"operation": "kv_get", "key": key, "error": str(exc)},
                exc_info=True,
            )
            return None

    def set(self, key: str, value: JsonValue) -> None:
        with self._lock:
            self._upsert(key, value)
        self._logger.debug("Stored value", extra={"operation": "kv_set", "key": key})

    def set_many(self, values: Mapping[str, JsonValue]) -> None:
        """Write several keys in one transaction; all or none are stored."""
        with self._lock, self._adapter.transaction():
            for key, value in values.items():
                self._upsert(key, value)
        self._logger.debug("Stored values", extra={"operation": "kv_set_many", "keys": ",".join(values)})

    def remove(self, key: str) -> None:
        with self._lock:
            self._adapter.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._logger.debug("Removed value", extra={"operation": "kv_remove", "key": key})

    def remove_many(self, keys: Iterable[str]) -> None:
        names = list(keys)
        with self._lock, self._adapter.transaction():
            for key in names:
                self._adapter.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._logger.debug("Removed values", extra={"operation": "kv_remove_many", "keys": ",".join(names)})

    def keys(self) -> list[str]:
        with self._lock:
            rows = self._adapter.query("SELECT key FROM kv ORDER BY key")
        return [str(row["key"]) for row in rows]

    def items(self) -> Iterator[tuple[str, Optional[JsonValue]]]:
        for key in self.keys():
            yield key, self.get(key)

    def close(self) -> None:
        with self._lock:
            self._adapter.close()

    def _upsert(self, key: str, value: JsonValue) -> None:
        self._adapter.execute(
            """
            INSERT INTO kv(key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value, ensure_ascii=False), datetime.now(timezone.utc).isoformat()),
        )


__all__ = ["KeyValueStore"]
