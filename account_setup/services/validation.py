"""
Field Validation Rules.

Pure functions mapping a raw form value to a ``ValidationResult``.
Screens call them on every keystroke and before submitting, so they
never raise, never touch storage and always return the same answer for
the same input.

Every rule checks "required" first: an empty or whitespace-only value
yields ``REQUIRED`` regardless of any other defect.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from account_setup.models.auth_models import VALID, ValidationResult
from account_setup.models.enums import ValidationErrorCode
from account_setup.models.registration import RegistrationForm


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH: int = 8

PASSWORD_SPECIAL_CHARS: str = "@$!%*?&"

_EMAIL_RE: re.Pattern[str] = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

# One combined composition check; the leading character must itself come
# from the allowed alphabet.  Digits are ASCII only.
_PASSWORD_SPECIAL_CLASS: str = re.escape(PASSWORD_SPECIAL_CHARS)
_PASSWORD_RE: re.Pattern[str] = re.compile(
    rf"(?=.*[a-z])(?=.*[A-Z])(?=.*[0-9])(?=.*[{_PASSWORD_SPECIAL_CLASS}])"
    rf"[A-Za-z0-9{_PASSWORD_SPECIAL_CLASS}]"
)

_PHONE_RE: re.Pattern[str] = re.compile(r"\+?[0-9\s\-()]+")

_NAME_RE: re.Pattern[str] = re.compile(r"[a-zA-Z\s'-]+")

_ZIP_CODE_RE: re.Pattern[str] = re.compile(r"[A-Z0-9\s-]+", re.IGNORECASE)


def _is_blank(value: Optional[str]) -> bool:
    # str.strip() keeps the byte-order mark.
    return not value or not value.replace("\ufeff", "").strip()


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def validate_required(value: Optional[str]) -> ValidationResult:
    """Reject empty and whitespace-only values."""
    if _is_blank(value):
        return ValidationResult.failure(ValidationErrorCode.REQUIRED)
    return VALID


def validate_email(email: Optional[str]) -> ValidationResult:
    """Validate an email address.

    Accepts any ``local@domain.tld`` shape: exactly one ``@``, a
    non-empty local part and a domain containing a dot, with no
    whitespace anywhere.

    Parameters
    ----------
    email:
        The raw email string to validate.

    Returns
    -------
    ValidationResult
        ``REQUIRED`` or ``EMAIL_INVALID`` on failure, ``VALID`` otherwise.
    """
    if _is_blank(email):
        return ValidationResult.failure(ValidationErrorCode.REQUIRED)
    if not _EMAIL_RE.fullmatch(email):
        return ValidationResult.failure(ValidationErrorCode.EMAIL_INVALID)
    return VALID


def validate_password(password: Optional[str]) -> ValidationResult:
    """Enforce the password policy.

    Policy: minimum 8 characters, then at least one lowercase letter,
    one uppercase letter, one ASCII digit and one of ``@$!%*?&``.  Both the
    length and the composition failure report ``PASSWORD_WEAK``.

    Parameters
    ----------
    password:
        The raw password string to validate.

    Returns
    -------
    ValidationResult
    """
    if _is_blank(password):
        return ValidationResult.failure(ValidationErrorCode.REQUIRED)
    if len(password) < PASSWORD_MIN_LENGTH:
        return ValidationResult.failure(ValidationErrorCode.PASSWORD_WEAK)
    if not _PASSWORD_RE.match(password):
        return ValidationResult.failure(ValidationErrorCode.PASSWORD_WEAK)
    return VALID


def validate_confirm_password(
    password: Optional[str],
    confirm_password: Optional[str],
) -> ValidationResult:
    """Check that *confirm_password* repeats *password* exactly.

    The required check applies to the confirmation field only; an empty
    original password is reported by ``validate_password``.
    """
    if _is_blank(confirm_password):
        return ValidationResult.failure(ValidationErrorCode.REQUIRED)
    if password != confirm_password:
        return ValidationResult.failure(ValidationErrorCode.PASSWORD_MISMATCH)
    return VALID


def validate_phone(phone: Optional[str]) -> ValidationResult:
    """Permissive phone check: optional leading ``+``, then digits,
    spaces, hyphens and parentheses.  No length or country-code rules.
    """
    if _is_blank(phone):
        return ValidationResult.failure(ValidationErrorCode.REQUIRED)
    if not _PHONE_RE.fullmatch(phone):
        return ValidationResult.failure(ValidationErrorCode.PHONE_INVALID)
    return VALID


def validate_name(name: Optional[str]) -> ValidationResult:
    """Letters, spaces, apostrophes and hyphens only."""
    if _is_blank(name):
        return ValidationResult.failure(ValidationErrorCode.REQUIRED)
    if not _NAME_RE.fullmatch(name):
        return ValidationResult.failure(ValidationErrorCode.NAME_INVALID)
    return VALID


def validate_zip_code(zip_code: Optional[str]) -> ValidationResult:
    if _is_blank(zip_code):
        return ValidationResult.failure(ValidationErrorCode.REQUIRED)
    if not _ZIP_CODE_RE.fullmatch(zip_code):
        return ValidationResult.failure(ValidationErrorCode.ZIP_CODE_INVALID)
    return VALID


# ---------------------------------------------------------------------------
# Form-level helpers
# ---------------------------------------------------------------------------

_REGISTRATION_RULES: dict[str, Callable[[Optional[str]], ValidationResult]] = {
    "email": validate_email,
    "password": validate_password,
    "first_name": validate_name,
    "last_name": validate_name,
    "phone": validate_phone,
    "country": validate_required,
    "date_of_birth": validate_required,
    "address": validate_required,
    "city": validate_required,
    "zip_code": validate_zip_code,
}


def validate_registration_form(form: RegistrationForm) -> dict[str, ValidationResult]:
    """Run every registration field through its rule.

    Parameters
    ----------
    form:
        The submitted registration form.

    Returns
    -------
    dict[str, ValidationResult]
        Failing results keyed by field name, in form order.  An empty
        dict means the form may be submitted.
    """
    errors: dict[str, ValidationResult] = {}
    for field_name, rule in _REGISTRATION_RULES.items():
        result = rule(getattr(form, field_name))
        if not result.is_valid:
            errors[field_name] = result
        if field_name == "password":
            confirm = validate_confirm_password(form.password, form.confirm_password)
            if not confirm.is_valid:
                errors["confirm_password"] = confirm
    return errors


def validate_login_form(identifier: Optional[str], password: Optional[str]) -> dict[str, ValidationResult]:
    """Check the login form before ``AuthSessionStore.login`` is called."""
    errors: dict[str, ValidationResult] = {}
    identifier_check = validate_email(identifier)
    if not identifier_check.is_valid:
        errors["identifier"] = identifier_check
    password_check = validate_required(password)
    if not password_check.is_valid:
        errors["password"] = password_check
    return errors
