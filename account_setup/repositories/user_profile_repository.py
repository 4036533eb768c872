"""
User Profile Repository.

Plain key-value store for the serialized user record.  The auth store
writes the profile once at registration under a fixed key and reads it
back at login and session restore.

Two implementations share the ``ProfileStore`` protocol:

- ``UserProfileRepository``: the ``user_profiles`` SQLite table.
- ``InMemoryProfileStore``: a dict, for tests.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional, Protocol, runtime_checkable

from account_setup.exceptions import ProfileStoreError
from account_setup.repositories.base_repository import BaseRepository


@runtime_checkable
class ProfileStore(Protocol):
    """Capability set the auth store consumes.  Raises ``ProfileStoreError``."""

    def put(self, key: str, payload: bytes) -> None: ...  # noqa: E704

    def get(self, key: str) -> Optional[bytes]: ...  # noqa: E704


class UserProfileRepository(BaseRepository):
    """Stores serialized user profiles in the ``user_profiles`` table."""

    TABLE = "user_profiles"

    def put(self, key: str, payload: bytes) -> None:
        """Upsert *payload* under *key*.

        Raises
        ------
        ProfileStoreError
            If the write fails.
        """
        try:
            with self._db.write_lock:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE} (key, payload)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        payload    = excluded.payload,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, payload),
                )
                self.sqlite.commit()
        except sqlite3.Error as exc:
            raise ProfileStoreError(f"Failed to write profile '{key}'", exc) from exc
        self._logger.debug("Profile '%s' written (%d bytes).", key, len(payload))

    def get(self, key: str) -> Optional[bytes]:
        """Return the payload stored under *key*, or ``None``."""
        try:
            with self._db.write_lock:
                row = self.sqlite.execute(
                    f"SELECT payload FROM {self.TABLE} WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise ProfileStoreError(f"Failed to read profile '{key}'", exc) from exc
        return bytes(row["payload"]) if row is not None else None


class InMemoryProfileStore:
    """Dict-backed profile store."""

    def __init__(self) -> None:
        self._payloads: dict[str, bytes] = {}
        self._lock: threading.Lock = threading.Lock()

    def put(self, key: str, payload: bytes) -> None:
        with self._lock:
            self._payloads[key] = bytes(payload)

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._payloads.get(key)
