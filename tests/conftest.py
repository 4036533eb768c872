"""Shared fixtures for the account setup test suite."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional

import pytest

from account_setup.database import DatabaseManager
from account_setup.exceptions import VaultError
from account_setup.logger import StructuredLogger
from account_setup.models.auth_models import VaultEntry
from account_setup.models.user import UserProfile
from account_setup.repositories.user_profile_repository import InMemoryProfileStore
from account_setup.schema import initialize_schema
from account_setup.services.auth_service import AuthSessionStore
from account_setup.services.credential_vault import InMemoryCredentialVault


PASSWORD = "Pass@123"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SpyVault(InMemoryCredentialVault):
    """In-memory vault that records every call and can be told to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set()

    def _check(self, operation: str, service_id: str) -> None:
        self.calls.append((operation, service_id))
        if (operation, service_id) in self.fail_on or (operation, "*") in self.fail_on:
            raise VaultError(f"simulated {operation} failure for {service_id}")

    def set(self, service_id: str, username: str, secret: str) -> None:
        self._check("set", service_id)
        super().set(service_id, username, secret)

    def get(self, service_id: str) -> Optional[VaultEntry]:
        self._check("get", service_id)
        return super().get(service_id)

    def delete(self, service_id: str) -> None:
        self._check("delete", service_id)
        super().delete(service_id)

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="tests", level=logging.DEBUG, file_logging=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vault() -> SpyVault:
    return SpyVault()


@pytest.fixture
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def store(vault, profiles, logger, clock) -> AuthSessionStore:
    return AuthSessionStore(vault=vault, profiles=profiles, logger=logger, clock=clock)


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        email="jane.doe@example.com",
        first_name="Jane",
        last_name="O'Neil-Doe",
        phone="+1 (555) 010-2030",
        country="US",
        date_of_birth="1990-04-12",
        address="1 Main Street",
        city="Springfield",
        zip_code="12345",
    )


@pytest.fixture
def db(tmp_path: Path, logger) -> Iterator[DatabaseManager]:
    manager = DatabaseManager(sqlite_path=tmp_path / "account_setup.db", logger=logger)
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()
