"""
Storage exceptions raised by the credential vault and profile store.

The auth store catches only ``PersistenceError`` (and its subclasses)
and maps them to ``AuthErrorCode.PERSISTENCE_FAILURE``.  Anything else
is a programming error and propagates.
"""

from __future__ import annotations

from typing import Optional


class PersistenceError(Exception):
    """Base class for failures of the local secure or profile storage."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class VaultError(PersistenceError):
    """A credential-vault read, write or delete failed."""


class VaultTimeoutError(VaultError):
    """A credential-vault call did not complete within the configured timeout."""


class ProfileStoreError(PersistenceError):
    """The user-profile store could not be read or written."""
