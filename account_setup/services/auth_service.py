"""
Authentication Session Store.

Single owner of the authentication state for this install: who is
signed in, how many consecutive logins have failed, and whether the
account is temporarily locked.  Screens call ``register``, ``login``,
``logout`` and ``check_session`` and render the returned ``AuthResult``
plus the ``state`` snapshot; they never touch the vault directly.

Lock policy
-----------
Every failed credential check increments ``failed_login_attempts``.
Reaching ``max_login_attempts`` locks the account and stamps
``lock_time``.  While locked, ``login`` is rejected without reading the
vault.  Once ``lock_duration`` has elapsed the lock is cleared by the
next ``login`` or ``check_session`` call; countdown timers in the UI are
display-only.

Single account per install
--------------------------
Registration never checks for an existing account and overwrites both
the stored profile and the stored credentials.

All methods return typed ``AuthResult`` models.  Storage failures are
logged and reported as ``PERSISTENCE_FAILURE``; they never count as a
failed login attempt.
"""

from __future__ import annotations

import getpass
import hashlib
import hmac
import math
import secrets
import socket
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from account_setup.exceptions import PersistenceError
from account_setup.logger import StructuredLogger
from account_setup.models.auth_models import (
    ERROR_MESSAGES,
    AuthResult,
    AuthSessionState,
    LockoutState,
)
from account_setup.models.enums import AuthErrorCode
from account_setup.models.user import User, UserProfile
from account_setup.repositories.user_profile_repository import ProfileStore
from account_setup.services.app_settings_service import SettingsStore
from account_setup.services.credential_vault import CredentialVault


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_LOGIN_ATTEMPTS: int = 5
LOCK_DURATION: timedelta = timedelta(minutes=2)

CREDENTIALS_SERVICE_ID: str = "com.accountsetup.credentials"
SESSION_SERVICE_ID: str = "com.accountsetup.session"
SESSION_TOKEN_USERNAME: str = "session"

USER_PROFILE_KEY: str = "@user_data"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def generate_session_token() -> str:
    """Return a URL-safe token with 256 bits of randomness."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Persisted lockout state
# ---------------------------------------------------------------------------

class LockoutStateStore:
    """Persists the failed-attempt counter and lock time across restarts.

    The JSON payload is stored in ``app_settings`` with an HMAC-SHA256
    signature appended (``<json>|hmac:<hex>``) so that editing the file
    to reset a lock is detected.  A missing, unsigned or tampered value
    loads as the empty state.

    Parameters
    ----------
    settings:
        Key-value store backing the state.
    logger:
        Structured logger instance.
    hmac_key:
        Signing key.  Defaults to the machine identity
        (``hostname:username``).
    """

    _SETTINGS_KEY: str = "lockout_state"
    _SEPARATOR: str = "|hmac:"

    def __init__(
        self,
        settings: SettingsStore,
        logger: StructuredLogger,
        hmac_key: Optional[bytes] = None,
    ) -> None:
        self._settings: SettingsStore = settings
        self._logger: StructuredLogger = logger
        self._hmac_key: bytes = hmac_key or (
            f"{socket.gethostname()}:{getpass.getuser()}".encode("utf-8")
        )

    def load(self) -> LockoutState:
        raw_value = self._settings.get(self._SETTINGS_KEY)
        if raw_value is None:
            return LockoutState()

        if self._SEPARATOR not in raw_value:
            self._logger.warning("Lockout state has no HMAC signature; resetting.")
            return LockoutState()

        json_part, hmac_hex = raw_value.rsplit(self._SEPARATOR, maxsplit=1)
        if not hmac.compare_digest(self._sign(json_part), hmac_hex):
            self._logger.warning(
                "Lockout state HMAC verification failed; "
                "possible tampering. Resetting to empty.",
            )
            return LockoutState()

        try:
            return LockoutState.model_validate_json(json_part)
        except ValidationError as exc:
            self._logger.warning("Could not parse lockout state: %s", exc)
            return LockoutState()

    def save(self, state: LockoutState) -> None:
        json_payload: str = state.model_dump_json()
        signed_value: str = f"{json_payload}{self._SEPARATOR}{self._sign(json_payload)}"
        if not self._settings.set(self._SETTINGS_KEY, signed_value):
            self._logger.warning("Could not persist lockout state.")

    def _sign(self, payload: str) -> str:
        return hmac.new(
            self._hmac_key,
            payload.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class AuthSessionStore:
    """Authentication / lockout state machine.

    Construct once per process and pass the instance to every screen.
    The store assumes at most one auth operation is in flight at a time;
    callers disable the triggering action while a call is pending.

    Parameters
    ----------
    vault:
        Secure store for the credentials and the session token.
    profiles:
        Store for the serialized user record.
    logger:
        Structured logger.  Passwords and tokens are never logged.
    max_login_attempts:
        Consecutive failures that lock the account.
    lock_duration:
        How long a lock lasts.
    clock:
        Returns the current UTC time; injectable for tests.
    lockout_store:
        Optional persistence for the counter and lock time.  When
        given, a lock survives a restart.
    credentials_service_id, session_service_id:
        Vault keys for the credential pair and the session token.
    token_factory:
        Produces a fresh session token.
    """

    def __init__(
        self,
        vault: CredentialVault,
        profiles: ProfileStore,
        logger: StructuredLogger,
        *,
        max_login_attempts: int = MAX_LOGIN_ATTEMPTS,
        lock_duration: timedelta = LOCK_DURATION,
        clock: Clock = utc_now,
        lockout_store: Optional[LockoutStateStore] = None,
        credentials_service_id: str = CREDENTIALS_SERVICE_ID,
        session_service_id: str = SESSION_SERVICE_ID,
        token_factory: Callable[[], str] = generate_session_token,
    ) -> None:
        self._vault: CredentialVault = vault
        self._profiles: ProfileStore = profiles
        self._logger: StructuredLogger = logger
        self._max_login_attempts: int = max_login_attempts
        self._lock_duration: timedelta = lock_duration
        self._clock: Clock = clock
        self._lockout_store: Optional[LockoutStateStore] = lockout_store
        self._credentials_service_id: str = credentials_service_id
        self._session_service_id: str = session_service_id
        self._token_factory: Callable[[], str] = token_factory

        self._state_lock: threading.RLock = threading.RLock()
        self._state: AuthSessionState = AuthSessionState()

        if lockout_store is not None:
            restored = lockout_store.load()
            self._state = self._state.model_copy(update={
                "failed_login_attempts": restored.failed_login_attempts,
                "is_account_locked": restored.lock_time is not None,
                "lock_time": restored.lock_time,
            })
            if restored.lock_time is not None:
                self._logger.info(
                    "Restored account lock from %s.", restored.lock_time.isoformat(),
                )

    # ==================================================================
    # State access
    # ==================================================================

    @property
    def state(self) -> AuthSessionState:
        """Snapshot of the current state.  Mutating it has no effect."""
        with self._state_lock:
            return self._state.model_copy()

    @property
    def remaining_attempts(self) -> int:
        """Failed logins left before the account locks."""
        with self._state_lock:
            return max(0, self._max_login_attempts - self._state.failed_login_attempts)

    def lock_remaining_seconds(self) -> int:
        """Whole seconds (rounded up) until the lock clears; ``0`` if unlocked."""
        with self._state_lock:
            lock_time = self._state.lock_time
            if not self._state.is_account_locked or lock_time is None:
                return 0
        remaining = self._lock_duration - (self._clock() - lock_time)
        return max(0, math.ceil(remaining.total_seconds()))

    def reset_failed_attempts(self) -> None:
        """Zero the counter and clear any lock."""
        self._update(failed_login_attempts=0, is_account_locked=False, lock_time=None)

    # ==================================================================
    # Registration
    # ==================================================================

    def register(self, profile: UserProfile, password: str) -> AuthResult:
        """Create the install's account and sign it in.

        Writes the profile, then the credentials, then a fresh session
        token.  A failure part-way leaves the earlier writes in place.

        Parameters
        ----------
        profile:
            The registration form fields.  ``profile.email`` becomes the
            login username.
        password:
            The chosen password, stored only in the vault.

        Returns
        -------
        AuthResult
            ``success=True`` with the new user id, or
            ``PERSISTENCE_FAILURE``.
        """
        user = User(id=self._generate_user_id(), **profile.model_dump())

        try:
            self._profiles.put(USER_PROFILE_KEY, user.model_dump_json().encode("utf-8"))
            self._vault.set(self._credentials_service_id, profile.email, password)
            self._store_new_session_token()
        except PersistenceError as exc:
            self._logger.error(
                "Registration failed for %s: %s. Writes completed before the "
                "failure were not rolled back.",
                profile.email,
                exc,
                extra={"event": "REGISTER_FAILED", "email": profile.email},
            )
            return self._failure(AuthErrorCode.PERSISTENCE_FAILURE)

        self._update(
            user=user,
            is_authenticated=True,
            failed_login_attempts=0,
            is_account_locked=False,
            lock_time=None,
        )
        self._logger.info(
            "User registered: %s",
            user.email,
            extra={"event": "REGISTER", "email": user.email, "user_id": user.id},
        )
        return AuthResult(success=True, user_id=user.id, email=user.email)

    # ==================================================================
    # Login
    # ==================================================================

    def login(self, identifier: str, password: str) -> AuthResult:
        """Check *identifier*/*password* against the stored credentials.

        Parameters
        ----------
        identifier:
            The email entered on the login screen; must equal the
            registration email exactly.
        password:
            The password entered on the login screen.

        Returns
        -------
        AuthResult
            ``success=True`` on a match.  Otherwise one of
            ``ACCOUNT_LOCKED`` (vault not consulted, or this failure
            engaged the lock), ``LOGIN_FAILED``, ``ACCOUNT_DATA_CORRUPT``
            (credentials matched but the profile is unusable) or
            ``PERSISTENCE_FAILURE``.
        """
        if self.state.is_account_locked and not self._clear_expired_lock():
            self._logger.info(
                "Login rejected: account locked for another %ds.",
                self.lock_remaining_seconds(),
                extra={"event": "LOGIN_REJECTED_LOCKED"},
            )
            return self._failure(AuthErrorCode.ACCOUNT_LOCKED)

        try:
            credentials = self._vault.get(self._credentials_service_id)
        except PersistenceError as exc:
            self._logger.error(
                "Could not read stored credentials: %s", exc,
                extra={"event": "LOGIN_STORAGE_ERROR"},
            )
            return self._failure(AuthErrorCode.PERSISTENCE_FAILURE)

        if (
            credentials is None
            or credentials.username != identifier
            or not hmac.compare_digest(
                credentials.secret.encode("utf-8", "surrogatepass"),
                password.encode("utf-8", "surrogatepass"),
            )
        ):
            return self._record_failed_attempt(no_account=credentials is None)

        try:
            user = self._load_user()
            if user is None:
                self._logger.error(
                    "Credentials matched for %s but the stored profile is "
                    "missing or unreadable.",
                    identifier,
                    extra={"event": "ACCOUNT_DATA_CORRUPT", "email": identifier},
                )
                return self._failure(AuthErrorCode.ACCOUNT_DATA_CORRUPT)
            self._store_new_session_token()
        except PersistenceError as exc:
            self._logger.error(
                "Login storage error for %s: %s", identifier, exc,
                extra={"event": "LOGIN_STORAGE_ERROR", "email": identifier},
            )
            return self._failure(AuthErrorCode.PERSISTENCE_FAILURE)

        self._update(
            user=user,
            is_authenticated=True,
            failed_login_attempts=0,
            is_account_locked=False,
            lock_time=None,
        )
        self._logger.info(
            "User authenticated: %s",
            user.email,
            extra={"event": "LOGIN", "email": user.email, "user_id": user.id},
        )
        return AuthResult(success=True, user_id=user.id, email=user.email)

    # ==================================================================
    # Logout
    # ==================================================================

    def logout(self) -> AuthResult:
        """Delete the session token and sign out.

        The in-memory session is cleared even when the token cannot be
        deleted; the result then carries ``PERSISTENCE_FAILURE`` because
        the next ``check_session`` may restore the session.  The failed
        attempt counter and any lock are left untouched.
        """
        user = self.state.user
        user_email = user.email if user is not None else "unknown"

        failed_delete: Optional[PersistenceError] = None
        try:
            self._vault.delete(self._session_service_id)
        except PersistenceError as exc:
            failed_delete = exc
            self._logger.error(
                "Could not delete session token for %s: %s", user_email, exc,
                extra={"event": "LOGOUT_STORAGE_ERROR", "email": user_email},
            )

        self._update(user=None, is_authenticated=False)
        self._logger.info(
            "User logged out: %s",
            user_email,
            extra={"event": "LOGOUT", "email": user_email},
        )
        if failed_delete is not None:
            return self._failure(AuthErrorCode.PERSISTENCE_FAILURE)
        return AuthResult(success=True)

    # ==================================================================
    # Session restore
    # ==================================================================

    def check_session(self) -> AuthResult:
        """Restore the signed-in state at process start.

        Clears an expired lock, then restores the stored user if a
        session token exists.  ``is_loading`` is ``True`` for the
        duration of the call and ``False`` afterwards on every path.

        Returns
        -------
        AuthResult
            ``success=True`` only when a session was restored.  No token
            (or no profile) gives ``success=False`` without an error code;
            a storage failure gives ``PERSISTENCE_FAILURE``.
        """
        self._update(is_loading=True)
        try:
            if self.state.is_account_locked:
                self._clear_expired_lock()

            try:
                token = self._vault.get(self._session_service_id)
                user = self._load_user() if token is not None else None
            except PersistenceError as exc:
                self._logger.error(
                    "Session check failed: %s", exc,
                    extra={"event": "SESSION_CHECK_STORAGE_ERROR"},
                )
                self._update(user=None, is_authenticated=False)
                return self._failure(AuthErrorCode.PERSISTENCE_FAILURE)

            if user is None:
                if token is not None:
                    self._logger.warning(
                        "Session token present but no usable profile; "
                        "staying signed out.",
                    )
                self._update(user=None, is_authenticated=False)
                return AuthResult(success=False)

            self._update(user=user, is_authenticated=True)
            self._logger.info(
                "Session restored for %s",
                user.email,
                extra={"event": "SESSION_RESTORED", "email": user.email, "user_id": user.id},
            )
            return AuthResult(success=True, user_id=user.id, email=user.email)
        finally:
            self._update(is_loading=False)

    # ==================================================================
    # Internals
    # ==================================================================

    def _update(self, **changes: object) -> None:
        """Apply *changes* to the state and persist lockout fields if touched."""
        with self._state_lock:
            self._state = self._state.model_copy(update=changes)
            if self._lockout_store is not None and (
                "failed_login_attempts" in changes or "lock_time" in changes
            ):
                self._lockout_store.save(LockoutState(
                    failed_login_attempts=self._state.failed_login_attempts,
                    lock_time=self._state.lock_time,
                ))

    def _clear_expired_lock(self) -> bool:
        """Clear the lock if its duration has elapsed.  Returns ``True`` if cleared."""
        lock_time = self.state.lock_time
        if lock_time is not None and self._clock() - lock_time < self._lock_duration:
            return False

        self.reset_failed_attempts()
        self._logger.info("Account lock expired; unlocked.", extra={"event": "ACCOUNT_UNLOCKED"})
        return True

    def _record_failed_attempt(self, no_account: bool) -> AuthResult:
        with self._state_lock:
            attempts = self._state.failed_login_attempts + 1
            locked = attempts >= self._max_login_attempts
            self._update(
                failed_login_attempts=attempts,
                is_account_locked=locked,
                lock_time=self._clock() if locked else None,
            )

        if locked:
            self._logger.warning(
                "Account locked after %d failed attempts for %s.",
                attempts,
                self._lock_duration,
                extra={"event": "ACCOUNT_LOCKED", "failed_attempts": attempts},
            )
            return self._failure(AuthErrorCode.ACCOUNT_LOCKED)

        self._logger.warning(
            "Login failed (%s); %d attempt(s) remaining.",
            "no account registered" if no_account else "credential mismatch",
            self.remaining_attempts,
            extra={"event": "LOGIN_FAILED", "failed_attempts": attempts},
        )
        return self._failure(AuthErrorCode.LOGIN_FAILED)

    def _load_user(self) -> Optional[User]:
        """Read and decode the stored profile.

        Returns ``None`` when nothing is stored or the payload does not
        decode to a ``User``.  Raises ``PersistenceError`` if the store
        itself fails.
        """
        raw = self._profiles.get(USER_PROFILE_KEY)
        if raw is None:
            return None
        try:
            return User.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.warning("Stored user profile is malformed: %s", exc)
            return None

    def _store_new_session_token(self) -> None:
        self._vault.set(self._session_service_id, SESSION_TOKEN_USERNAME, self._token_factory())

    def _generate_user_id(self) -> str:
        millis = int(self._clock().timestamp() * 1000)
        return f"user_{millis}_{secrets.token_hex(4)}"

    def _failure(self, code: AuthErrorCode) -> AuthResult:
        return AuthResult(
            success=False,
            error_code=code,
            error_message=ERROR_MESSAGES[code],
            lock_remaining_seconds=self.lock_remaining_seconds(),
            remaining_attempts=self.remaining_attempts,
        )
