"""
Credential Vault.

Opaque secure key-value store for the login credentials and the session
token.  Each entry is a ``(username, secret)`` pair keyed by a service
identifier; storing under an existing service id overwrites it.

Implementations
---------------
- ``EncryptedCredentialVault``: rows in the local SQLite
  ``vault_entries`` table, each payload encrypted with AES-256-GCM.
- ``InMemoryCredentialVault``: a process-local dict, for tests and
  database-less callers.
- ``TimedCredentialVault``: wraps another vault and bounds every call
  with a timeout so an unresponsive store cannot stall the auth flow.

Security model (``EncryptedCredentialVault``)
---------------------------------------------
- The key is derived at runtime from machine identity (hostname + OS
  user) via PBKDF2-HMAC-SHA256 with a per-install random salt kept in a
  0600 file.  The key is **never** persisted.
- AES-GCM gives confidentiality and integrity; a tampered row or a
  changed machine identity surfaces as ``VaultError`` on read.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import socket
import sqlite3
import stat
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable, Optional, Protocol, TypeVar, runtime_checkable

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from account_setup.database import DatabaseManager
from account_setup.exceptions import VaultError, VaultTimeoutError
from account_setup.logger import StructuredLogger
from account_setup.models.auth_models import VaultEntry

T = TypeVar("T")


@runtime_checkable
class CredentialVault(Protocol):
    """Capability set the auth store consumes.

    Every method raises ``VaultError`` on failure.
    """

    def set(self, service_id: str, username: str, secret: str) -> None: ...  # noqa: E704

    def get(self, service_id: str) -> Optional[VaultEntry]: ...  # noqa: E704

    def delete(self, service_id: str) -> None: ...  # noqa: E704


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryCredentialVault:
    """Dict-backed vault.  Contents live only as long as the instance."""

    def __init__(self) -> None:
        self._entries: dict[str, VaultEntry] = {}
        self._lock: threading.Lock = threading.Lock()

    def set(self, service_id: str, username: str, secret: str) -> None:
        with self._lock:
            self._entries[service_id] = VaultEntry(username=username, secret=secret)

    def get(self, service_id: str) -> Optional[VaultEntry]:
        with self._lock:
            return self._entries.get(service_id)

    def delete(self, service_id: str) -> None:
        with self._lock:
            self._entries.pop(service_id, None)


# ---------------------------------------------------------------------------
# Encrypted SQLite
# ---------------------------------------------------------------------------

class EncryptedCredentialVault:
    """AES-256-GCM encrypted vault stored in the ``vault_entries`` table.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager``; the schema must already exist.
    logger:
        Structured logger.  Secrets are never logged.
    salt_path:
        Location of the per-install 32-byte random salt.  Created with
        owner-only permissions on first use.
    kdf_iterations:
        PBKDF2 iteration count for the key derivation.
    """

    _KEY_LENGTH: int = 32  # 256 bits
    _SALT_LENGTH: int = 32

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        salt_path: Path,
        kdf_iterations: int = 600_000,
    ) -> None:
        self._db: DatabaseManager = db
        self._logger: StructuredLogger = logger
        self._salt_path: Path = salt_path
        self._kdf_iterations: int = kdf_iterations
        self._key: Optional[bytes] = None
        self._key_lock: threading.Lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set(self, service_id: str, username: str, secret: str) -> None:
        """Encrypt and upsert the pair stored under *service_id*.

        Raises
        ------
        VaultError
            If the pair cannot be encoded, or key derivation, encryption
            or the database write fails.
        """
        try:
            plaintext: bytes = json.dumps(
                {"username": username, "secret": secret}, ensure_ascii=False,
            ).encode("utf-8")
            cipher = AES.new(self._get_key(), AES.MODE_GCM)
            ciphertext, tag = cipher.encrypt_and_digest(plaintext)
            nonce: bytes = cipher.nonce
        except (OSError, ValueError, UnicodeError) as exc:
            raise VaultError(f"Failed to encrypt vault entry '{service_id}'", exc) from exc

        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO vault_entries (service_id, encrypted_payload, nonce, tag)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(service_id) DO UPDATE SET
                        encrypted_payload = excluded.encrypted_payload,
                        nonce             = excluded.nonce,
                        tag               = excluded.tag,
                        updated_at        = CURRENT_TIMESTAMP
                    """,
                    (service_id, ciphertext, nonce, tag),
                )
                self._db.sqlite.commit()
        except sqlite3.Error as exc:
            raise VaultError(f"Failed to write vault entry '{service_id}'", exc) from exc

        self._logger.debug("Vault entry '%s' stored.", service_id)

    def get(self, service_id: str) -> Optional[VaultEntry]:
        """Return the decrypted pair for *service_id*, or ``None`` if absent.

        Raises
        ------
        VaultError
            If the row cannot be read, fails authentication (tampered or
            machine identity changed) or is malformed.
        """
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    "SELECT encrypted_payload, nonce, tag FROM vault_entries "
                    "WHERE service_id = ?",
                    (service_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise VaultError(f"Failed to read vault entry '{service_id}'", exc) from exc

        if row is None:
            return None

        try:
            cipher = AES.new(self._get_key(), AES.MODE_GCM, nonce=row["nonce"])
            plaintext: bytes = cipher.decrypt_and_verify(row["encrypted_payload"], row["tag"])
            data: dict[str, str] = json.loads(plaintext.decode("utf-8"))
            return VaultEntry(username=data["username"], secret=data["secret"])
        except (ValueError, KeyError, TypeError, OSError) as exc:
            # json.JSONDecodeError and pydantic.ValidationError are ValueErrors.
            raise VaultError(
                f"Vault entry '{service_id}' could not be decrypted "
                "(corrupted data or machine identity changed)",
                exc,
            ) from exc

    def delete(self, service_id: str) -> None:
        """Remove the entry for *service_id*.  Deleting a missing entry is a no-op."""
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    "DELETE FROM vault_entries WHERE service_id = ?",
                    (service_id,),
                )
                self._db.sqlite.commit()
        except sqlite3.Error as exc:
            raise VaultError(f"Failed to delete vault entry '{service_id}'", exc) from exc

        self._logger.debug("Vault entry '%s' deleted.", service_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_key(self) -> bytes:
        """Derive (once per instance) the 256-bit AES key.

        The key is deterministic for a given (hostname, OS username,
        salt) triple, so a copied database file is useless elsewhere.
        """
        with self._key_lock:
            if self._key is None:
                identity: str = f"{socket.gethostname()}:{getpass.getuser()}"
                self._key = PBKDF2(
                    password=identity,
                    salt=self._get_or_create_salt(),
                    dkLen=self._KEY_LENGTH,
                    count=self._kdf_iterations,
                    hmac_hash_module=SHA256,
                )
            return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the per-install salt, creating it on first run.

        Raises
        ------
        OSError
            If the salt file cannot be read or written.  The vault refuses
            to fall back to a static salt.
        """
        if self._salt_path.exists():
            data: bytes = self._salt_path.read_bytes()
            if len(data) == self._SALT_LENGTH:
                return data
            self._logger.warning(
                "Vault salt file has unexpected length (%d); regenerating.",
                len(data),
            )

        salt: bytes = os.urandom(self._SALT_LENGTH)
        self._salt_path.parent.mkdir(parents=True, exist_ok=True)
        self._salt_path.write_bytes(salt)
        if platform.system() != "Windows":
            self._salt_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600

        self._logger.info("Per-install vault salt created at %s.", self._salt_path)
        return salt


# ---------------------------------------------------------------------------
# Timeout wrapper
# ---------------------------------------------------------------------------

class TimedCredentialVault:
    """Bounds every call to *inner* by *timeout_s* seconds.

    Calls run on a single worker thread, so they stay in issue order.
    A call that times out keeps running in the background; later calls
    queue behind it and will usually time out as well until it returns.

    Parameters
    ----------
    inner:
        The vault doing the actual work.
    timeout_s:
        Maximum seconds to wait for any single call.
    """

    def __init__(self, inner: CredentialVault, timeout_s: float) -> None:
        self._inner: CredentialVault = inner
        self._timeout_s: float = timeout_s
        self._executor: ThreadPoolExecutor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="credential-vault",
        )

    def set(self, service_id: str, username: str, secret: str) -> None:
        self._run("set", service_id, lambda: self._inner.set(service_id, username, secret))

    def get(self, service_id: str) -> Optional[VaultEntry]:
        return self._run("get", service_id, lambda: self._inner.get(service_id))

    def delete(self, service_id: str) -> None:
        self._run("delete", service_id, lambda: self._inner.delete(service_id))

    def close(self) -> None:
        """Stop accepting calls; does not wait for a hung call."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _run(self, operation: str, service_id: str, call: Callable[[], T]) -> T:
        future = self._executor.submit(call)
        try:
            return future.result(timeout=self._timeout_s)
        except FutureTimeoutError as exc:
            raise VaultTimeoutError(
                f"Vault {operation} for '{service_id}' timed out "
                f"after {self._timeout_s}s",
                exc,
            ) from exc
