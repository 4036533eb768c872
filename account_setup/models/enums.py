"""
Shared Enumerations for Account Setup Models.

All string enumerations for type-safe error classification.
StrEnum values compare equal to their string equivalents, so callers
may compare against plain strings (``code == "required"``).
"""

from __future__ import annotations
from enum import StrEnum


class ValidationErrorCode(StrEnum):
    """Field-level validation failures produced by the validation rules."""

    REQUIRED = "required"
    EMAIL_INVALID = "email_invalid"
    PASSWORD_WEAK = "password_weak"
    PASSWORD_MISMATCH = "password_mismatch"
    PHONE_INVALID = "phone_invalid"
    NAME_INVALID = "name_invalid"
    ZIP_CODE_INVALID = "zip_code_invalid"


class AuthErrorCode(StrEnum):
    """Outcome categories of the auth store operations.

    ``PERSISTENCE_FAILURE`` means the vault or profile store raised or
    timed out; it never counts as a failed login attempt.
    ``ACCOUNT_DATA_CORRUPT`` means the credentials matched but the stored
    profile is missing or cannot be decoded.
    """

    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    PERSISTENCE_FAILURE = "persistence_failure"
    ACCOUNT_DATA_CORRUPT = "account_data_corrupt"
