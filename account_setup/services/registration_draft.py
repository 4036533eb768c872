"""
Registration Draft Service.

Keeps a partially completed registration form across app restarts so
the user can pick up where they left off.  Saves merge into the
existing draft; only fields that are set in the update overwrite.

The draft lives in ``app_settings`` as JSON.  Password fields are
never persisted.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from account_setup.logger import StructuredLogger
from account_setup.models.registration import RegistrationDraft
from account_setup.services.app_settings_service import SettingsStore

_KEY_REGISTRATION_DRAFT: str = "registration_draft"

_UNPERSISTED_FIELDS: set[str] = {"password", "confirm_password"}


class RegistrationDraftService:
    """Persisted, mergeable registration draft.

    Parameters
    ----------
    settings:
        Key-value store the draft is serialized into.
    logger:
        Structured logger instance.
    """

    def __init__(self, settings: SettingsStore, logger: StructuredLogger) -> None:
        self._settings: SettingsStore = settings
        self._logger: StructuredLogger = logger

    def save_draft(self, update: RegistrationDraft) -> RegistrationDraft:
        """Merge *update* into the stored draft and return the result."""
        current = self.get_draft() or RegistrationDraft()
        changes = update.model_dump(exclude_none=True, exclude=_UNPERSISTED_FIELDS)
        merged = current.model_copy(update=changes)

        if not self._settings.set(
            _KEY_REGISTRATION_DRAFT,
            merged.model_dump_json(exclude_none=True),
        ):
            self._logger.warning("Registration draft could not be persisted.")
        return merged

    def get_draft(self) -> Optional[RegistrationDraft]:
        """Return the stored draft, or ``None`` when there is none."""
        raw = self._settings.get(_KEY_REGISTRATION_DRAFT)
        if raw is None:
            return None
        try:
            return RegistrationDraft.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.warning("Discarding malformed registration draft: %s", exc)
            self._settings.delete(_KEY_REGISTRATION_DRAFT)
            return None

    def clear_draft(self) -> None:
        self._settings.delete(_KEY_REGISTRATION_DRAFT)
