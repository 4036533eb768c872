"""
Account Setup Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema and runs the start-up session recovery.  Every
subsystem is wired here; there are no module-level globals in the core.

Screens embed the same wiring and keep the returned ``AuthSessionStore``
for the lifetime of the process.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys

from account_setup.config import get_config
from account_setup.database import DatabaseManager
from account_setup.logger import StructuredLogger
from account_setup.schema import initialize_schema
from account_setup.services import create_services


def main() -> int:
    """Wire dependencies and restore any persisted session."""
    logger = StructuredLogger(name="main")
    logger.info("Starting Account Setup...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager + schema (idempotent)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        sqlite_path=config.SQLITE_PATH,
        logger=StructuredLogger(name="database"),
    )
    atexit.register(db.close)
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 3. Service Container
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config)
    auth_store = services["auth_store"]

    # ------------------------------------------------------------------
    # 4. Start-up session recovery
    # ------------------------------------------------------------------
    try:
        result = auth_store.check_session()
        state = auth_store.state
        logger.info(
            "Session check complete: authenticated=%s locked=%s",
            state.is_authenticated,
            state.is_account_locked,
            extra={
                "event": "STARTUP",
                "error_code": str(result.error_code or ""),
                "lock_remaining_seconds": str(auth_store.lock_remaining_seconds()),
            },
        )
    finally:
        services["credential_vault"].close()
        db.close()
        logger.info("Account Setup shut down.")

    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
