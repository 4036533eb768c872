"""
Business Logic Services Package.

The ``create_services()`` factory wires the storage adapters and the
auth store together, returning a typed dict that the application layer
(screens / commands) can consume without knowing the dependency graph.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TypedDict

from account_setup.config import AppConfig
from account_setup.database import DatabaseManager
from account_setup.logger import StructuredLogger
from account_setup.repositories.user_profile_repository import UserProfileRepository
from account_setup.services.app_settings_service import AppSettingsService
from account_setup.services.auth_service import AuthSessionStore, LockoutStateStore
from account_setup.services.credential_vault import (
    EncryptedCredentialVault,
    TimedCredentialVault,
)
from account_setup.services.registration_draft import RegistrationDraftService


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    auth_store: AuthSessionStore
    registration_draft_service: RegistrationDraftService
    app_settings_service: AppSettingsService
    credential_vault: TimedCredentialVault


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    logger: StructuredLogger | None = None,
) -> ServiceContainer:
    """
    Wire all storage adapters and services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with the schema already applied.
        config: Application configuration.
        logger: Logger shared by the services; defaults to ``"services"``.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = logger or StructuredLogger(name="services")

    # ------------------------------------------------------------------
    # 1. Storage adapters
    # ------------------------------------------------------------------
    app_settings_service = AppSettingsService(db=db, logger=logger)
    profile_repo = UserProfileRepository(db=db, logger=logger)
    credential_vault = TimedCredentialVault(
        inner=EncryptedCredentialVault(
            db=db,
            logger=logger,
            salt_path=config.VAULT_SALT_PATH,
            kdf_iterations=config.VAULT_KDF_ITERATIONS,
        ),
        timeout_s=config.VAULT_TIMEOUT_S,
    )

    # ------------------------------------------------------------------
    # 2. Services
    # ------------------------------------------------------------------
    lockout_store = (
        LockoutStateStore(settings=app_settings_service, logger=logger)
        if config.PERSIST_LOCKOUT_STATE
        else None
    )
    auth_store = AuthSessionStore(
        vault=credential_vault,
        profiles=profile_repo,
        logger=logger,
        max_login_attempts=config.MAX_LOGIN_ATTEMPTS,
        lock_duration=timedelta(seconds=config.LOCK_DURATION_S),
        lockout_store=lockout_store,
        credentials_service_id=config.CREDENTIALS_SERVICE_ID,
        session_service_id=config.SESSION_SERVICE_ID,
    )
    registration_draft_service = RegistrationDraftService(
        settings=app_settings_service,
        logger=logger,
    )

    return ServiceContainer(
        auth_store=auth_store,
        registration_draft_service=registration_draft_service,
        app_settings_service=app_settings_service,
        credential_vault=credential_vault,
    )
