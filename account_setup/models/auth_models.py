"""
Authentication Pipeline Models.

Pydantic models for the contracts between the validation rules, the
``AuthSessionStore`` and whatever screen drives them.

Every auth operation returns a structured, inspectable result rather
than raising or returning bare booleans.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from account_setup.models.enums import AuthErrorCode, ValidationErrorCode
from account_setup.models.user import User


# ---------------------------------------------------------------------------
# Human-readable messages
# ---------------------------------------------------------------------------

ERROR_MESSAGES: dict[str, str] = {
    ValidationErrorCode.REQUIRED: "This field is required",
    ValidationErrorCode.EMAIL_INVALID: "Please enter a valid email address",
    ValidationErrorCode.PASSWORD_WEAK: (
        "Password must be at least 8 characters with uppercase, "
        "lowercase, number, and special character"
    ),
    ValidationErrorCode.PASSWORD_MISMATCH: "Passwords do not match",
    ValidationErrorCode.PHONE_INVALID: "Please enter a valid phone number",
    ValidationErrorCode.NAME_INVALID: "Please enter a valid name",
    ValidationErrorCode.ZIP_CODE_INVALID: "Please enter a valid ZIP code",
    AuthErrorCode.LOGIN_FAILED: "Invalid email/username or password",
    AuthErrorCode.ACCOUNT_LOCKED: (
        "Account locked due to too many failed attempts. Try again later."
    ),
    AuthErrorCode.PERSISTENCE_FAILURE: (
        "Secure storage is unavailable. Please try again."
    ),
    AuthErrorCode.ACCOUNT_DATA_CORRUPT: (
        "Your account data could not be loaded. Please register again."
    ),
}


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check.

    Attributes
    ----------
    is_valid:
        ``True`` when the value passes the rule.
    error_code:
        The failure kind, or ``None`` on success.
    error_message:
        Human-readable description of the failure, or ``None`` on success.
    """

    is_valid: bool
    error_code: Optional[ValidationErrorCode] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def failure(cls, code: ValidationErrorCode) -> "ValidationResult":
        return cls(is_valid=False, error_code=code, error_message=ERROR_MESSAGES[code])


VALID: ValidationResult = ValidationResult(is_valid=True)
"""The shared "no error" sentinel returned by every passing rule."""


# ---------------------------------------------------------------------------
# Unified auth response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Unified response for register, login, logout and session checks.

    Attributes
    ----------
    success:
        ``True`` when the operation completed without error.
    error_code:
        Structured error category (``None`` on success).
    error_message:
        Human-readable error description (``None`` on success).
    user_id:
        Id of the authenticated / registered user.
    email:
        The user's email address.
    lock_remaining_seconds:
        Seconds until the lock clears; ``0`` when not locked.
    remaining_attempts:
        Failed attempts left before the account locks.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    lock_remaining_seconds: int = 0
    remaining_attempts: Optional[int] = None

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

class AuthSessionState(BaseModel):
    """In-memory authentication state owned by ``AuthSessionStore``.

    Invariants: ``is_account_locked`` implies ``lock_time`` is set, and
    ``is_authenticated`` implies ``user`` is set.
    """

    user: Optional[User] = None
    is_authenticated: bool = False
    is_loading: bool = True
    failed_login_attempts: int = 0
    is_account_locked: bool = False
    lock_time: Optional[datetime] = None


class LockoutState(BaseModel):
    """The persisted subset of ``AuthSessionState``.

    Serialized to the ``app_settings`` table so that a lock survives an
    application restart.
    """

    failed_login_attempts: int = 0
    lock_time: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Credential vault entry
# ---------------------------------------------------------------------------

class VaultEntry(BaseModel):
    """A username/secret pair as returned by a credential vault."""

    username: str
    secret: str = Field(repr=False)

    model_config = ConfigDict(frozen=True)
