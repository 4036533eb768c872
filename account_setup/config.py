"""
Application Configuration.

Pydantic Settings model for the Account Setup authentication core.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, model_validator


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Local storage ---
    SQLITE_PATH: Path = Path("account_setup_local.db")

    # --- Login lockout policy ---
    MAX_LOGIN_ATTEMPTS: int = Field(default=5, ge=1)
    LOCK_DURATION_S: int = Field(default=120, ge=0)
    PERSIST_LOCKOUT_STATE: bool = True

    # --- Credential vault ---
    CREDENTIALS_SERVICE_ID: str = "com.accountsetup.credentials"
    SESSION_SERVICE_ID: str = "com.accountsetup.session"
    VAULT_TIMEOUT_S: float = Field(default=5.0, gt=0)
    VAULT_KDF_ITERATIONS: int = Field(default=600_000, ge=1)
    VAULT_SALT_PATH: Path = Field(
        default_factory=lambda: Path.home() / ".accountsetup_vault_salt",
    )

    # --- Logging ---
    LOG_FILE: str = "account_setup.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_service_ids(self) -> "AppConfig":
        """Reject configurations where the token would overwrite the credentials.

        Both secrets live in the same vault keyed by service id, so the
        two identifiers must differ.
        """
        if self.CREDENTIALS_SERVICE_ID == self.SESSION_SERVICE_ID:
            raise ValueError(
                "CREDENTIALS_SERVICE_ID and SESSION_SERVICE_ID must differ"
            )

        if not Path(".env").exists():
            logging.getLogger("account_setup.config").debug(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )
        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern so first initialisation is thread-safe.

    Prefer direct constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
