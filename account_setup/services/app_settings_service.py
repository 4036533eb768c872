"""
Application Settings Service.

Read/write access to the ``app_settings`` key-value table in the local
SQLite database.  Backs the persisted lockout state and the
registration draft.

This is a documented exception to the Repository pattern because
``app_settings`` stores infrastructure state, not domain data::

    CREATE TABLE IF NOT EXISTS app_settings (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional, Protocol

from account_setup.database import DatabaseManager
from account_setup.logger import StructuredLogger


class SettingsStore(Protocol):
    """String key-value capability shared by the settings implementations."""

    def get(self, key: str) -> Optional[str]: ...  # noqa: E704

    def set(self, key: str, value: str) -> bool: ...  # noqa: E704

    def delete(self, key: str) -> bool: ...  # noqa: E704


class AppSettingsService:
    """Manages persistent application preferences in local SQLite.

    Failures are logged and reported through the return value; settings
    are never critical to the auth flow.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager`` with active SQLite connection.
    logger:
        Structured logger instance.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def get(self, key: str) -> Optional[str]:
        """Read a setting value by key.  Returns ``None`` if not found."""
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    "SELECT value FROM app_settings WHERE key = ?",
                    (key,),
                ).fetchone()
            return row["value"] if row is not None else None
        except sqlite3.Error as exc:
            self._logger.warning("Failed to read app_settings[%s]: %s", key, exc)
            return None

    def set(self, key: str, value: str) -> bool:
        """Upsert a setting value.  Returns ``True`` on success."""
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO app_settings (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value      = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
                self._db.sqlite.commit()
            self._logger.debug("app_settings[%s] updated.", key)
            return True
        except sqlite3.Error as exc:
            self._logger.error("Failed to write app_settings[%s]: %s", key, exc)
            return False

    def delete(self, key: str) -> bool:
        """Remove a setting.  Returns ``True`` on success (including absent keys)."""
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    "DELETE FROM app_settings WHERE key = ?",
                    (key,),
                )
                self._db.sqlite.commit()
            return True
        except sqlite3.Error as exc:
            self._logger.error("Failed to delete app_settings[%s]: %s", key, exc)
            return False


class InMemorySettingsStore:
    """Dict-backed settings store for tests."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._lock: threading.Lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> bool:
        with self._lock:
            self._values[key] = value
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            self._values.pop(key, None)
        return True
