"""
Tests for the session/identity manager.
"""

import time

import pytest

from blueprints.auth.services import session_manager as session_module
from blueprints.auth.services.session_manager import SessionManager, SessionState, PENDING_EMAIL_KEY
from gateway import GatewayError, GatewayTimeout, Query, is_transient
from gateway.local import LocalBackend
from utils.errors import (
    ValidationError,
    AuthError,
    ConflictError,
    NotAuthenticatedError,
    RegistrationError,
    NetworkError,
)
from utils.messages import MESSAGES
from utils.retry import RetryPolicy

from conftest import USER_EMAIL, USER_PASSWORD


def no_wait(attempts):
    return RetryPolicy(attempts=attempts, delay=0, retry_if=is_transient, sleep=lambda s: None)


@pytest.fixture
def make_manager(backend, notifications):
    """Factory building a manager over a given storage dict."""
    def make(storage=None, target=None):
        return SessionManager(
            target or backend,
            {} if storage is None else storage,
            notify=notifications,
            retry_policy=no_wait(2),
            profile_retry_policy=no_wait(3),
            login_timeout=10
        )

    return make


@pytest.fixture
def manager(make_manager):
    return make_manager()


class TestSignIn:

    def test_success_sets_user_and_redirect(self, manager, user, notifications):
        profile = manager.sign_in(f'  {USER_EMAIL.upper()} ', USER_PASSWORD)

        assert profile.user_id == user.id
        assert profile.username == 'jane_doe'
        assert manager.user == profile
        assert manager.state.redirect_to == '/profile'
        assert manager.state.loading is False
        assert manager.is_email_verified() is True
        assert notifications.messages[-1] == (MESSAGES['login_success'].format(name='Jane Doe'), 'success')

    def test_admin_redirects_to_dashboard(self, manager):
        profile = manager.sign_in('admin@locauto.fr', 'Admin1234')
        assert profile.is_admin is True
        assert manager.consume_redirect() == '/admin/dashboard'
        assert manager.state.redirect_to is None

    def test_invalid_credentials(self, manager, user, notifications):
        with pytest.raises(AuthError) as exc_info:
            manager.sign_in(USER_EMAIL, 'wrong-password')

        assert exc_info.value.message == MESSAGES['invalid_credentials']
        assert exc_info.value.can_resend_verification is False
        assert manager.user is None
        assert manager.state.error == MESSAGES['invalid_credentials']
        assert notifications.messages[-1] == (MESSAGES['invalid_credentials'], 'error')

    def test_unconfirmed_email_sets_pending_verification(self, manager, make_user):
        make_user(email='new@example.com', username='newbie', confirm=False)

        with pytest.raises(AuthError) as exc_info:
            manager.sign_in('New@Example.com', USER_PASSWORD)

        assert exc_info.value.can_resend_verification is True
        assert exc_info.value.message == MESSAGES['email_not_confirmed']
        assert manager.state.pending_verification_email == 'new@example.com'
        assert manager.storage[PENDING_EMAIL_KEY] == 'new@example.com'
        assert manager.user is None

    def test_unconfirmed_user_in_issued_session_is_rejected(self, make_manager):
        backend = LocalBackend(':memory:', 'key', require_email_confirmation=False)
        try:
            backend.auth({}).sign_up('lax@example.com', USER_PASSWORD, {'username': 'lax_user'})
            backend.execute("UPDATE auth_users SET email_confirmed_at = NULL WHERE email = 'lax@example.com'")
            backend.db.commit()

            storage = {}
            manager = make_manager(storage, target=backend)
            with pytest.raises(AuthError) as exc_info:
                manager.sign_in('lax@example.com', USER_PASSWORD)

            assert exc_info.value.can_resend_verification is True
            assert manager.state.pending_verification_email == 'lax@example.com'
            # The issued session was discarded
            assert manager.auth.get_session() is None
        finally:
            backend.close()

    def test_empty_fields(self, manager, notifications):
        with pytest.raises(ValidationError):
            manager.sign_in('', 'secret')
        assert notifications.messages == []

    def test_timeout_becomes_network_error(self, manager, monkeypatch):
        calls = []

        def slow(email, password, timeout=None):
            calls.append(timeout)
            raise GatewayTimeout()

        monkeypatch.setattr(manager.auth, 'sign_in_with_password', slow)
        with pytest.raises(NetworkError) as exc_info:
            manager.sign_in(USER_EMAIL, USER_PASSWORD)

        assert exc_info.value.message == MESSAGES['login_timeout']
        # Transient: retried once, each call bounded by the login timeout
        assert calls == [10, 10]
        assert manager.state.loading is False

    def test_records_auth_attempts(self, manager, user, backend):
        with pytest.raises(AuthError):
            manager.sign_in(USER_EMAIL, 'wrong-password')
        with pytest.raises(AuthError):
            manager.sign_in(USER_EMAIL, 'wrong-password')

        attempt = backend.table('auth_attempts').single(Query().eq('email', USER_EMAIL))
        assert attempt['attempt_count'] == 2
        assert attempt['success'] is False

        manager.sign_in(USER_EMAIL, USER_PASSWORD)
        attempt = backend.table('auth_attempts').single(Query().eq('email', USER_EMAIL))
        assert attempt['attempt_count'] == 0
        assert attempt['success']


class TestSignUp:

    def test_creates_account_and_sets_pending(self, manager, backend, notifications):
        auth_user = manager.sign_up(' Alice@Example.com', 'secret123', 'alice_w', full_name='Alice W')

        assert auth_user.email == 'alice@example.com'
        assert manager.state.pending_verification_email == 'alice@example.com'
        assert manager.state.redirect_to == '/login'
        assert manager.is_email_verified() is False
        profile = backend.table('profiles').single(Query().eq('user_id', auth_user.id))
        assert profile['username'] == 'alice_w'
        assert profile['full_name'] == 'Alice W'
        assert notifications.messages[-1] == (MESSAGES['registration_success'], 'success')

    def test_minimal_sign_up_needs_only_credentials_and_username(self, manager, backend):
        auth_user = manager.sign_up('bob@example.com', 'secret123', 'bob_42')

        profile = backend.table('profiles').single(Query().eq('user_id', auth_user.id))
        assert profile['username'] == 'bob_42'
        assert profile['phone'] is None
        assert manager.state.error is None
        assert manager.state.loading is False

    @pytest.mark.parametrize('username', ['ab', 'Alice', 'alice-w', 'a' * 21, 'alice w'])
    def test_invalid_username(self, manager, username):
        with pytest.raises(ValidationError) as exc_info:
            manager.sign_up('alice@example.com', 'secret123', username)
        assert exc_info.value.field == 'username'

    def test_email_collision(self, manager, user):
        with pytest.raises(ConflictError) as exc_info:
            manager.sign_up(USER_EMAIL, 'secret123', 'someone_else')
        assert exc_info.value.field == 'email'
        assert exc_info.value.message == MESSAGES['email_exists']

    def test_username_collision(self, manager, user):
        with pytest.raises(ConflictError) as exc_info:
            manager.sign_up('other@example.com', 'secret123', 'jane_doe')
        assert exc_info.value.field == 'username'
        assert exc_info.value.message == MESSAGES['username_exists']

    def test_both_collide_reports_email(self, manager, user):
        with pytest.raises(ConflictError) as exc_info:
            manager.sign_up(USER_EMAIL, 'secret123', 'jane_doe')
        assert exc_info.value.field == 'email'

    def test_missing_profile_after_retries(self, manager, backend, monkeypatch):
        lookups = []

        def never_found(backend, user_id):
            lookups.append(user_id)
            return None

        monkeypatch.setattr(session_module, 'get_profile_by_user_id', never_found)
        with pytest.raises(RegistrationError):
            manager.sign_up('alice@example.com', 'secret123', 'alice_w')

        assert len(lookups) == 3
        logs = backend.table('error_logs').select(Query().eq('error_context', 'sign_up'))
        assert len(logs) == 1

    def test_backend_failure_is_logged(self, manager, backend, monkeypatch):
        def failing(email, password, data=None):
            raise GatewayError('Database error saving new user', status=500)

        monkeypatch.setattr(manager.auth, 'sign_up', failing)
        with pytest.raises(RegistrationError) as exc_info:
            manager.sign_up('alice@example.com', 'secret123', 'alice_w')

        assert exc_info.value.message == MESSAGES['registration_unavailable']
        assert backend.table('error_logs').count() == 1


class TestEmailVerification:

    def test_freshly_created_user_is_not_verified_until_confirmed(self, manager, backend):
        manager.sign_up('alice@example.com', 'secret123', 'alice_w')
        assert manager.is_email_verified() is False

        manager.verify_email(backend.confirmation_token('alice@example.com'))
        assert manager.state.pending_verification_email is None

        manager.sign_in('alice@example.com', 'secret123')
        assert manager.is_email_verified() is True

    def test_resend_uses_pending_email(self, manager, backend, make_user):
        make_user(email='new@example.com', username='newbie', confirm=False)
        token = backend.confirmation_token('new@example.com')
        manager.set_pending_verification_email('New@Example.com')

        assert manager.resend_verification_email() == 'new@example.com'
        assert backend.confirmation_token('new@example.com') != token

    def test_resend_without_address(self, manager):
        with pytest.raises(ValidationError):
            manager.resend_verification_email()

    def test_invalid_token(self, manager):
        with pytest.raises(AuthError) as exc_info:
            manager.verify_email('bogus')
        assert exc_info.value.message == MESSAGES['invalid_verification_link']


class TestSessionLifecycle:

    def test_initialize_restores_user_from_storage(self, make_manager, user):
        storage = {}
        make_manager(storage).sign_in(USER_EMAIL, USER_PASSWORD)

        restored = make_manager(storage)
        assert restored.initialize().user_id == user.id
        assert restored.user.user_id == user.id

    def test_expired_session_is_not_restored(self, make_manager, user):
        storage = {}
        make_manager(storage).sign_in(USER_EMAIL, USER_PASSWORD)
        stored = dict(storage['auth.session'])
        stored['expires_at'] = int(time.time()) - 1
        storage['auth.session'] = stored

        restored = make_manager(storage)
        assert restored.initialize() is None
        assert restored.user is None

    def test_pending_email_survives_requests(self, make_manager):
        storage = {}
        make_manager(storage).set_pending_verification_email('new@example.com')
        assert make_manager(storage).state.pending_verification_email == 'new@example.com'

    def test_sign_out_clears_state(self, manager, user, notifications):
        manager.initialize()
        manager.sign_in(USER_EMAIL, USER_PASSWORD)
        manager.set_pending_verification_email('other@example.com')

        manager.sign_out()
        assert manager.user is None
        assert manager.state.pending_verification_email is None
        assert manager.consume_redirect() == '/login'
        assert notifications.messages[-1] == (MESSAGES['logout_success'], 'success')

    def test_observers_receive_snapshots(self, manager, user):
        states = []
        unsubscribe = manager.subscribe(states.append)
        manager.sign_in(USER_EMAIL, USER_PASSWORD)

        assert all(isinstance(s, SessionState) for s in states)
        assert states[0].loading is True
        assert states[-1].loading is False
        assert states[-1].user is not None

        unsubscribe()
        count = len(states)
        manager.clear_error()
        assert len(states) == count

    def test_auth_events_resync_outside_operations(self, manager, user):
        manager.initialize()
        # A sign-in made by another component on the same storage
        manager.auth.sign_in_with_password(USER_EMAIL, USER_PASSWORD)
        assert manager.user is not None
        assert manager.state.redirect_to == '/profile'

        manager.auth.sign_out()
        assert manager.user is None
        assert manager.state.redirect_to == '/login'


class TestUpdateProfile:

    def test_requires_user(self, manager):
        with pytest.raises(NotAuthenticatedError):
            manager.update_profile({'full_name': 'X'})

    def test_updates_fields(self, manager, user, backend):
        manager.sign_in(USER_EMAIL, USER_PASSWORD)
        updated = manager.update_profile({'full_name': 'Jane Smith', 'phone': '0612345678'})

        assert updated.full_name == 'Jane Smith'
        assert updated.email == USER_EMAIL
        assert manager.user.phone == '0612345678'
        assert backend.table('profiles').single(Query().eq('user_id', user.id))['full_name'] == 'Jane Smith'
        assert manager.state.profile_loading is False

    def test_rejects_unknown_fields(self, manager, user):
        manager.sign_in(USER_EMAIL, USER_PASSWORD)
        with pytest.raises(ValidationError) as exc_info:
            manager.update_profile({'role': 'admin'})
        assert exc_info.value.field == 'role'

    def test_rejects_invalid_username(self, manager, user):
        manager.sign_in(USER_EMAIL, USER_PASSWORD)
        with pytest.raises(ValidationError):
            manager.update_profile({'username': 'Jane!'})

    def test_username_taken(self, manager, user):
        manager.sign_in(USER_EMAIL, USER_PASSWORD)
        with pytest.raises(ConflictError) as exc_info:
            manager.update_profile({'username': 'admin'})
        assert exc_info.value.field == 'username'

    def test_vanished_profile_is_a_network_error(self, manager, user, monkeypatch):
        manager.sign_in(USER_EMAIL, USER_PASSWORD)
        monkeypatch.setattr(session_module, 'update_profile_row', lambda backend, user_id, values: None)

        with pytest.raises(NetworkError) as exc_info:
            manager.update_profile({'full_name': 'Jane Smith'})

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == MESSAGES['profile_update_failed']
        assert manager.user.full_name == 'Jane Doe'
        assert manager.state.profile_loading is False
