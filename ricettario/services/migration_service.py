from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ricettario.core.errors import MigrationBlockedError
from ricettario.storage.adapter import StorageAdapter

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"
# Ordered (version, script) pairs; each script stamps meta.schema_version.
MIGRATIONS: tuple[tuple[str, str], ...] = (("1.0.0", "0001_baseline.sql"),)
TARGET_SCHEMA_VERSION = MIGRATIONS[-1][0]
EMPTY_VERSION = "0.0.0"


def _version_key(version: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        raise MigrationBlockedError(
            f"Local store reports an unreadable version: {version!r}",
            title="Unsupported Data Version",
            remediation="Move the data folder aside and import a backup into a fresh one.",
        ) from None


class MigrationService:
    """Brings the local store file up to the layout the application expects."""

    def __init__(self, storage_adapter: StorageAdapter) -> None:
        self._adapter = storage_adapter
        self._logger = logging.getLogger(__name__)

    def check_version(self) -> str:
        self._adapter.connect()
        try:
            rows = self._adapter.query("SELECT value FROM meta WHERE key = ?", ("schema_version",))
        except sqlite3.OperationalError:
            # No meta table yet: a brand new file.
            return EMPTY_VERSION
        return str(rows[0]["value"]) if rows else EMPTY_VERSION

    def pending(self, current: str) -> list[tuple[str, str]]:
        current_key = _version_key(current or EMPTY_VERSION)
        if current_key > _version_key(TARGET_SCHEMA_VERSION):
            raise MigrationBlockedError(
                f"Local store was written by a newer version ({current}).",
                title="Unsupported Data Version",
                remediation="Update the application or import a backup into a fresh data folder.",
            )
        return [(version, script) for version, script in MIGRATIONS if _version_key(version) > current_key]

    def run_migrations(self) -> str:
        current = self.check_version()
        steps = self.pending(current)
        if not steps:
            return current

        for version, script_name in steps:
            script = (MIGRATIONS_DIR / script_name).read_text(encoding="utf-8")
            self._logger.info(
                "Applying local store migration",
                extra={"operation": "run_migrations", "from_version": current, "target_version": version},
            )
            try:
                self._adapter.execute_script(script)
            except Exception:
                self._adapter.rollback()
                self._logger.error(
                    "Migration failed",
                    extra={"operation": "run_migrations", "from_version": current, "target_version": version},
                    exc_info=True,
                )
                raise
            current = version

        self._logger.info("Local store ready", extra={"operation": "run_migrations", "target_version": current})
        return current


__all__ = ["MIGRATIONS", "MigrationService", "TARGET_SCHEMA_VERSION"]
