"""
Tests for the AuthSessionStore login / lockout state machine.

Covers:
- Registration and the signed-in state it produces
- Failed attempt counting, locking and the locked short-circuit
- Time-based auto-unlock in login and check_session
- Logout and session restore
- Storage failures reported as PERSISTENCE_FAILURE / ACCOUNT_DATA_CORRUPT

Run with: pytest tests/test_auth_service.py -v
"""

from datetime import timedelta

import pytest

from account_setup.models.enums import AuthErrorCode
from account_setup.services.app_settings_service import InMemorySettingsStore
from account_setup.services.auth_service import (
    CREDENTIALS_SERVICE_ID,
    LOCK_DURATION,
    MAX_LOGIN_ATTEMPTS,
    SESSION_SERVICE_ID,
    SESSION_TOKEN_USERNAME,
    USER_PROFILE_KEY,
    AuthSessionStore,
    LockoutStateStore,
)

from conftest import PASSWORD


def _fail_until_locked(store, email):
    results = [store.login(email, "Wrong@123") for _ in range(MAX_LOGIN_ATTEMPTS)]
    return results


class TestInitialState:

    def test_fresh_store_is_loading_and_signed_out(self, store):
        state = store.state
        assert state.is_loading is True
        assert state.is_authenticated is False
        assert state.user is None
        assert state.failed_login_attempts == 0
        assert state.is_account_locked is False
        assert state.lock_time is None

    def test_state_snapshot_is_detached(self, store):
        snapshot = store.state
        snapshot.failed_login_attempts = 3
        assert store.state.failed_login_attempts == 0


class TestRegister:

    def test_register_signs_in(self, store, profile, vault, profiles):
        result = store.register(profile, PASSWORD)

        assert result.success is True
        assert result.email == profile.email
        state = store.state
        assert state.is_authenticated is True
        assert state.user is not None
        assert state.user.id == result.user_id
        assert state.user.first_name == "Jane"

        credentials = vault.get(CREDENTIALS_SERVICE_ID)
        assert credentials.username == profile.email
        assert credentials.secret == PASSWORD
        token = vault.get(SESSION_SERVICE_ID)
        assert token.username == SESSION_TOKEN_USERNAME
        assert profiles.get(USER_PROFILE_KEY) is not None

    def test_register_resets_attempts_and_lock(self, store, profile):
        _fail_until_locked(store, profile.email)
        assert store.state.is_account_locked is True

        assert store.register(profile, PASSWORD).success is True
        state = store.state
        assert state.failed_login_attempts == 0
        assert state.is_account_locked is False
        assert state.lock_time is None

    def test_user_ids_are_unique(self, store, profile):
        first = store.register(profile, PASSWORD).user_id
        second = store.register(profile, PASSWORD).user_id
        assert first != second
        assert first.startswith("user_")

    def test_register_overwrites_previous_account(self, store, profile):
        store.register(profile, PASSWORD)
        other = profile.model_copy(update={"email": "other@example.com"})
        store.register(other, "Other@123")

        store.logout()
        assert store.login(profile.email, PASSWORD).success is False
        assert store.login("other@example.com", "Other@123").success is True

    def test_session_tokens_are_random(self, store, profile, vault):
        store.register(profile, PASSWORD)
        first = vault.get(SESSION_SERVICE_ID).secret
        store.login(profile.email, PASSWORD)
        second = vault.get(SESSION_SERVICE_ID).secret
        assert first != second
        assert len(first) >= 32
        assert profile.email not in first

    def test_storage_failure_reports_persistence_failure(self, store, profile, vault, profiles):
        vault.fail_on.add(("set", SESSION_SERVICE_ID))

        result = store.register(profile, PASSWORD)

        assert result.success is False
        assert result.error_code == AuthErrorCode.PERSISTENCE_FAILURE
        assert store.state.is_authenticated is False
        # Earlier writes are not rolled back.
        assert profiles.get(USER_PROFILE_KEY) is not None
        assert vault.get(CREDENTIALS_SERVICE_ID) is not None


class TestLogin:

    def test_correct_credentials(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()

        result = store.login(profile.email, PASSWORD)

        assert result.success is True
        assert result.error_code is None
        assert store.state.is_authenticated is True
        assert store.state.user.email == profile.email

    def test_wrong_password_counts_attempt(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()

        result = store.login(profile.email, "Wrong@123")

        assert result.success is False
        assert result.error_code == AuthErrorCode.LOGIN_FAILED
        assert result.remaining_attempts == MAX_LOGIN_ATTEMPTS - 1
        assert store.state.failed_login_attempts == 1
        assert store.state.is_authenticated is False

    def test_identifier_must_match_exactly(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()

        result = store.login(profile.email.upper(), PASSWORD)

        assert result.error_code == AuthErrorCode.LOGIN_FAILED

    def test_unencodable_password_is_a_mismatch(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()

        result = store.login(profile.email, "\ud800bad")

        assert result.error_code == AuthErrorCode.LOGIN_FAILED
        assert store.state.failed_login_attempts == 1

    def test_no_account_counts_attempt(self, store):
        result = store.login("nobody@example.com", PASSWORD)

        assert result.error_code == AuthErrorCode.LOGIN_FAILED
        assert store.state.failed_login_attempts == 1

    def test_success_resets_counter(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()
        store.login(profile.email, "Wrong@123")
        store.login(profile.email, "Wrong@123")

        assert store.login(profile.email, PASSWORD).success is True
        assert store.state.failed_login_attempts == 0


class TestLockout:

    def test_five_failures_lock_the_account(self, store, profile, clock):
        store.register(profile, PASSWORD)
        store.logout()

        results = _fail_until_locked(store, profile.email)

        assert [r.error_code for r in results[:-1]] == [AuthErrorCode.LOGIN_FAILED] * 4
        assert results[-1].error_code == AuthErrorCode.ACCOUNT_LOCKED
        state = store.state
        assert state.is_account_locked is True
        assert state.failed_login_attempts == 5
        assert state.lock_time == clock.now

    def test_locked_login_does_not_consult_vault(self, store, profile, vault):
        store.register(profile, PASSWORD)
        store.logout()
        _fail_until_locked(store, profile.email)
        gets_before = vault.count("get")

        result = store.login(profile.email, PASSWORD)

        assert result.error_code == AuthErrorCode.ACCOUNT_LOCKED
        assert vault.count("get") == gets_before
        assert store.state.failed_login_attempts == 5
        assert store.state.is_authenticated is False

    def test_lock_remaining_seconds_counts_down(self, store, profile, clock):
        _fail_until_locked(store, profile.email)
        assert store.lock_remaining_seconds() == 120

        clock.advance(30.5)
        assert store.lock_remaining_seconds() == 90

        result = store.login(profile.email, PASSWORD)
        assert result.lock_remaining_seconds == 90

    def test_still_locked_just_before_expiry(self, store, profile, clock):
        store.register(profile, PASSWORD)
        store.logout()
        _fail_until_locked(store, profile.email)

        clock.advance(LOCK_DURATION.total_seconds() - 0.001)

        assert store.login(profile.email, PASSWORD).error_code == AuthErrorCode.ACCOUNT_LOCKED

    def test_login_after_expiry_unlocks_and_succeeds(self, store, profile, clock):
        store.register(profile, PASSWORD)
        store.logout()
        _fail_until_locked(store, profile.email)

        clock.advance(120)
        result = store.login(profile.email, PASSWORD)

        assert result.success is True
        state = store.state
        assert state.failed_login_attempts == 0
        assert state.is_account_locked is False
        assert state.lock_time is None

    def test_wrong_password_after_expiry_starts_a_new_count(self, store, profile, clock):
        store.register(profile, PASSWORD)
        store.logout()
        _fail_until_locked(store, profile.email)

        clock.advance(121)
        result = store.login(profile.email, "Wrong@123")

        assert result.error_code == AuthErrorCode.LOGIN_FAILED
        assert store.state.failed_login_attempts == 1
        assert store.state.is_account_locked is False

    def test_lock_survives_logout(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()
        _fail_until_locked(store, profile.email)

        store.logout()

        assert store.state.is_account_locked is True
        assert store.state.failed_login_attempts == 5

    def test_reset_failed_attempts_clears_lock(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()
        _fail_until_locked(store, profile.email)

        store.reset_failed_attempts()

        state = store.state
        assert state.failed_login_attempts == 0
        assert state.is_account_locked is False
        assert state.lock_time is None
        assert store.login(profile.email, PASSWORD).success is True

    def test_custom_policy(self, vault, profiles, logger, clock, profile):
        store = AuthSessionStore(
            vault=vault,
            profiles=profiles,
            logger=logger,
            clock=clock,
            max_login_attempts=2,
            lock_duration=timedelta(seconds=10),
        )
        store.login(profile.email, "x")
        assert store.login(profile.email, "x").error_code == AuthErrorCode.ACCOUNT_LOCKED
        clock.advance(10)
        assert store.login(profile.email, "x").error_code == AuthErrorCode.LOGIN_FAILED


class TestLogout:

    def test_logout_clears_user_and_token(self, store, profile, vault):
        store.register(profile, PASSWORD)

        result = store.logout()

        assert result.success is True
        assert store.state.is_authenticated is False
        assert store.state.user is None
        assert vault.get(SESSION_SERVICE_ID) is None
        assert vault.get(CREDENTIALS_SERVICE_ID) is not None

    def test_logout_proceeds_when_delete_fails(self, store, profile, vault):
        store.register(profile, PASSWORD)
        vault.fail_on.add(("delete", SESSION_SERVICE_ID))

        result = store.logout()

        assert result.error_code == AuthErrorCode.PERSISTENCE_FAILURE
        assert store.state.is_authenticated is False


class TestCheckSession:

    def test_no_token_stays_signed_out(self, store):
        result = store.check_session()

        assert result.success is False
        assert result.error_code is None
        assert store.state.is_authenticated is False
        assert store.state.is_loading is False

    def test_restart_after_register_restores_user(self, vault, profiles, logger, clock, profile):
        first = AuthSessionStore(vault=vault, profiles=profiles, logger=logger, clock=clock)
        registered = first.register(profile, PASSWORD)

        restarted = AuthSessionStore(vault=vault, profiles=profiles, logger=logger, clock=clock)
        result = restarted.check_session()

        assert result.success is True
        state = restarted.state
        assert state.is_authenticated is True
        assert state.is_loading is False
        assert state.user.id == registered.user_id
        assert state.user == first.state.user

    def test_logout_then_check_session_is_signed_out(self, store, profile):
        store.register(profile, PASSWORD)
        store.logout()

        store.check_session()

        assert store.state.is_authenticated is False
        assert store.state.is_loading is False

    def test_token_without_profile_stays_signed_out(self, store, vault):
        vault.set(SESSION_SERVICE_ID, SESSION_TOKEN_USERNAME, "orphan-token")

        result = store.check_session()

        assert result.success is False
        assert store.state.is_authenticated is False

    def test_expired_lock_is_cleared(self, store, profile, clock):
        _fail_until_locked(store, profile.email)
        clock.advance(120)

        store.check_session()

        assert store.state.is_account_locked is False
        assert store.state.failed_login_attempts == 0

    def test_unexpired_lock_is_kept(self, store, profile, clock):
        _fail_until_locked(store, profile.email)
        clock.advance(60)

        store.check_session()

        assert store.state.is_account_locked is True

    def test_storage_failure_clears_loading(self, store, profile, vault):
        store.register(profile, PASSWORD)
        vault.fail_on.add(("get", SESSION_SERVICE_ID))

        result = store.check_session()

        assert result.error_code == AuthErrorCode.PERSISTENCE_FAILURE
        assert store.state.is_loading is False
        assert store.state.is_authenticated is False


class TestStorageFailures:

    def test_vault_read_failure_is_not_a_failed_attempt(self, store, profile, vault):
        store.register(profile, PASSWORD)
        store.logout()
        vault.fail_on.add(("get", CREDENTIALS_SERVICE_ID))

        result = store.login(profile.email, PASSWORD)

        assert result.error_code == AuthErrorCode.PERSISTENCE_FAILURE
        assert store.state.failed_login_attempts == 0

    def test_missing_profile_after_match_is_data_corrupt(self, vault, logger, clock, profile):
        from account_setup.repositories.user_profile_repository import InMemoryProfileStore

        store = AuthSessionStore(
            vault=vault, profiles=InMemoryProfileStore(), logger=logger, clock=clock,
        )
        vault.set(CREDENTIALS_SERVICE_ID, profile.email, PASSWORD)

        result = store.login(profile.email, PASSWORD)

        assert result.error_code == AuthErrorCode.ACCOUNT_DATA_CORRUPT
        assert store.state.failed_login_attempts == 0
        assert store.state.is_authenticated is False

    def test_malformed_profile_is_data_corrupt(self, store, profile, profiles):
        store.register(profile, PASSWORD)
        store.logout()
        profiles.put(USER_PROFILE_KEY, b"{not json")

        result = store.login(profile.email, PASSWORD)

        assert result.error_code == AuthErrorCode.ACCOUNT_DATA_CORRUPT


class TestPersistedLockout:

    @pytest.fixture
    def settings(self):
        return InMemorySettingsStore()

    def _store(self, vault, profiles, logger, clock, settings):
        return AuthSessionStore(
            vault=vault,
            profiles=profiles,
            logger=logger,
            clock=clock,
            lockout_store=LockoutStateStore(settings=settings, logger=logger, hmac_key=b"k"),
        )

    def test_lock_survives_restart(self, vault, profiles, logger, clock, settings, profile):
        first = self._store(vault, profiles, logger, clock, settings)
        first.register(profile, PASSWORD)
        first.logout()
        _fail_until_locked(first, profile.email)

        restarted = self._store(vault, profiles, logger, clock, settings)

        assert restarted.state.is_account_locked is True
        assert restarted.state.failed_login_attempts == 5
        assert restarted.login(profile.email, PASSWORD).error_code == AuthErrorCode.ACCOUNT_LOCKED

    def test_restart_after_expiry_unlocks_on_check_session(
        self, vault, profiles, logger, clock, settings, profile,
    ):
        first = self._store(vault, profiles, logger, clock, settings)
        _fail_until_locked(first, profile.email)
        clock.advance(200)

        restarted = self._store(vault, profiles, logger, clock, settings)
        restarted.check_session()

        assert restarted.state.is_account_locked is False
        assert restarted.state.failed_login_attempts == 0

    def test_partial_count_survives_restart(self, vault, profiles, logger, clock, settings, profile):
        first = self._store(vault, profiles, logger, clock, settings)
        first.login(profile.email, "Wrong@123")
        first.login(profile.email, "Wrong@123")

        restarted = self._store(vault, profiles, logger, clock, settings)

        assert restarted.state.failed_login_attempts == 2
        assert restarted.state.is_account_locked is False

    def test_tampered_state_is_discarded(self, vault, profiles, logger, clock, settings, profile):
        first = self._store(vault, profiles, logger, clock, settings)
        _fail_until_locked(first, profile.email)
        raw = settings.get("lockout_state")
        settings.set("lockout_state", raw.replace('"failed_login_attempts":5', '"failed_login_attempts":0'))

        restarted = self._store(vault, profiles, logger, clock, settings)

        assert restarted.state.failed_login_attempts == 0
        assert restarted.state.is_account_locked is False

    def test_unsigned_state_is_discarded(self, logger, settings):
        settings.set("lockout_state", '{"failed_login_attempts": 5, "lock_time": null}')

        state = LockoutStateStore(settings=settings, logger=logger).load()

        assert state.failed_login_attempts == 0
