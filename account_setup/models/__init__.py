from __future__ import annotations

"""
Data Models Package.

Re-exports all Pydantic models for convenient imports:
    from account_setup.models import User, UserProfile, AuthResult
    from account_setup.models import AuthErrorCode, ValidationErrorCode
"""

from account_setup.models.enums import AuthErrorCode, ValidationErrorCode
from account_setup.models.user import User, UserProfile
from account_setup.models.registration import RegistrationDraft, RegistrationForm
from account_setup.models.auth_models import (
    ERROR_MESSAGES,
    VALID,
    AuthResult,
    AuthSessionState,
    LockoutState,
    ValidationResult,
    VaultEntry,
)

__all__ = [
    "AuthErrorCode",
    "ValidationErrorCode",
    "User",
    "UserProfile",
    "RegistrationDraft",
    "RegistrationForm",
    "ERROR_MESSAGES",
    "VALID",
    "AuthResult",
    "AuthSessionState",
    "LockoutState",
    "ValidationResult",
    "VaultEntry",
]
