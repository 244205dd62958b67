"""
Session/identity manager.

Owns the current-user projection for one auth storage (the Flask session of
one browser) and mediates every identity change: sign-in, sign-up,
sign-out, profile updates and email verification.

State is an immutable SessionState snapshot replaced on every change;
observers registered with subscribe() receive each new snapshot.

Usage:
    manager = SessionManager.from_config(backend, session, app.config)
    manager.initialize()
    user = manager.sign_in('Jane@Example.com ', 'secret')
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from gateway import AuthEvent, GatewayError, GatewayTimeout, is_transient
from gateway import errors as gateway_errors
from models.auth_attempt import record_auth_attempt
from models.profile import (
    UserProfile,
    get_profile_by_user_id,
    find_profiles_by_username_or_email,
    update_profile_row,
)
from utils.audit import client_ip, log_error
from utils.datetime_helpers import utc_now_iso
from utils.errors import (
    RentalError,
    ValidationError,
    AuthError,
    ConflictError,
    NotAuthenticatedError,
    RegistrationError,
    NetworkError,
)
from utils.messages import MESSAGES, get_message, translate_backend_error
from utils.notifications import notify as flash_notify
from utils.retry import RetryPolicy
from utils.validators import validate_username, validate_phone

logger = logging.getLogger(__name__)

PENDING_EMAIL_KEY = 'auth.pending_verification_email'

UPDATABLE_FIELDS = ('username', 'full_name', 'phone', 'avatar_url')


@dataclass(frozen=True)
class SessionState:
    user: Optional[UserProfile] = None
    pending_verification_email: Optional[str] = None
    error: Optional[str] = None
    loading: bool = False
    profile_loading: bool = False
    redirect_to: Optional[str] = None


class SessionManager:
    """Current-user state and identity operations for one auth storage."""

    def __init__(
        self,
        backend,
        storage=None,
        notify: Callable = flash_notify,
        retry_policy: RetryPolicy = None,
        profile_retry_policy: RetryPolicy = None,
        login_timeout: float = 10
    ):
        self.backend = backend
        self.storage = {} if storage is None else storage
        self.auth = backend.auth(self.storage)
        self.notify = notify
        self.retry = retry_policy or RetryPolicy(attempts=2, delay=1.0, retry_if=is_transient)
        self.profile_retry = profile_retry_policy or RetryPolicy(attempts=3, delay=1.0, retry_if=is_transient)
        self.login_timeout = login_timeout

        self._state = SessionState(pending_verification_email=self.storage.get(PENDING_EMAIL_KEY))
        self._listeners = []
        self._unsubscribe_auth = None

    @classmethod
    def from_config(cls, backend, storage, config, notify: Callable = flash_notify) -> 'SessionManager':
        """Build a manager with retry and timeout settings from a Flask config."""
        return cls(
            backend,
            storage,
            notify=notify,
            retry_policy=RetryPolicy(
                attempts=config.get('AUTH_RETRY_ATTEMPTS', 2),
                delay=config.get('AUTH_RETRY_DELAY', 1.0),
                retry_if=is_transient
            ),
            profile_retry_policy=RetryPolicy(
                attempts=config.get('PROFILE_RETRY_ATTEMPTS', 3),
                delay=config.get('PROFILE_RETRY_DELAY', 1.0),
                retry_if=is_transient
            ),
            login_timeout=config.get('LOGIN_TIMEOUT_SECONDS', 10),
        )

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[UserProfile]:
        return self._state.user

    def subscribe(self, listener: Callable) -> Callable:
        """
        Register an observer called with every new SessionState.

        Returns:
            Function that unregisters the observer
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> None:
        if 'pending_verification_email' in changes:
            email = changes['pending_verification_email']
            if email:
                self.storage[PENDING_EMAIL_KEY] = email
            else:
                self.storage.pop(PENDING_EMAIL_KEY, None)

        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception('Session state listener failed')

    def _fail(self, error: RentalError, toast: bool = True) -> RentalError:
        """Record an error in the state, show it, and hand it back for raising."""
        self._set(error=error.message)
        if toast:
            self.notify(error.message, 'error')
        logger.info(f'{type(error).__name__}: {error.message}')
        return error

    @staticmethod
    def _backend_failure(exc: GatewayError, error_class=NetworkError) -> RentalError:
        if exc.transient:
            return NetworkError(MESSAGES['network_error'])
        return error_class(translate_backend_error(exc))

    @staticmethod
    def _redirect_for(user: UserProfile) -> str:
        return '/admin/dashboard' if user.is_admin else '/profile'

    # =========================================================================
    # BACKEND HELPERS
    # =========================================================================

    def _load_profile(self, auth_user) -> UserProfile:
        row = get_profile_by_user_id(self.backend, auth_user.id)
        if row is None:
            raise GatewayError(MESSAGES['profile_not_found'], code=gateway_errors.NOT_FOUND)
        return UserProfile.from_row(row, auth_user)

    def _require_profile(self, user_id: str) -> dict:
        # A missing profile right after sign-up may just not be written yet
        row = get_profile_by_user_id(self.backend, user_id)
        if row is None:
            raise GatewayError('Profile not created yet', code=gateway_errors.NOT_FOUND, transient=True)
        return row

    def _discard_session(self) -> None:
        try:
            self.auth.sign_out()
        except GatewayError:
            logger.warning('Backend sign-out failed; dropping the stored session only', exc_info=True)
            self.auth.clear_session()

    def _record_attempt(self, email: str, success: bool) -> None:
        try:
            record_auth_attempt(self.backend, email, success, ip_address=client_ip())
        except Exception as e:
            logger.error(f'Failed to record auth attempt: {e}', exc_info=True)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self) -> Optional[UserProfile]:
        """
        Restore the current user from a stored, non-expired session and start
        listening to auth-state changes.

        A profile fetch failure signs the session out and leaves no user.
        """
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self.auth.on_auth_state_change(self._handle_auth_event)

        session = self.auth.get_session()
        if session is None:
            return None

        self._set(loading=True)
        try:
            user = self.retry.call(self._load_profile, session.user)
        except GatewayError as e:
            logger.warning(f'Could not restore session for {session.user.id}: {e.message}')
            self._discard_session()
            self._set(user=None)
            return None
        finally:
            self._set(loading=False)

        self._set(user=user)
        return user

    def close(self) -> None:
        """Stop listening to auth-state changes."""
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None

    def _handle_auth_event(self, event: AuthEvent, session) -> None:
        # Imperative operations update the state themselves
        if self._state.loading:
            return

        if event == AuthEvent.SIGNED_OUT:
            self._set(user=None, redirect_to='/login')
            return
        if session is None:
            return

        try:
            user = self._load_profile(session.user)
        except GatewayError:
            logger.exception(f'Profile re-sync failed on {event.value}')
            self._set(user=None)
            return

        if event == AuthEvent.SIGNED_IN:
            self._set(user=user, redirect_to=self._redirect_for(user))
        else:
            self._set(user=user)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def sign_in(self, identifier: str, password: str) -> UserProfile:
        """
        Authenticate with email and password.

        Args:
            identifier: Email address (normalized to lowercase, trimmed)
            password: Password

        Returns:
            UserProfile of the signed-in user

        Raises:
            AuthError: invalid credentials or unverified email
                (the email is then kept as pending verification)
            NetworkError: backend unreachable or login timed out
        """
        email = (identifier or '').strip().lower()
        if not email or not password:
            raise self._fail(ValidationError(MESSAGES['field_required']), toast=False)

        self._set(loading=True, error=None)
        try:
            try:
                session = self.retry.call(
                    self.auth.sign_in_with_password, email, password, timeout=self.login_timeout
                )
            except GatewayError as e:
                self._record_attempt(email, False)
                if e.code == gateway_errors.EMAIL_NOT_CONFIRMED:
                    self._set(pending_verification_email=email)
                    raise self._fail(AuthError(MESSAGES['email_not_confirmed'],
                                               can_resend_verification=True)) from e
                if isinstance(e, GatewayTimeout):
                    raise self._fail(NetworkError(MESSAGES['login_timeout'])) from e
                raise self._fail(self._backend_failure(e, AuthError)) from e

            if not session.user.email_confirmed_at:
                self._record_attempt(email, False)
                self._discard_session()
                self._set(pending_verification_email=email)
                raise self._fail(AuthError(MESSAGES['email_not_confirmed'], can_resend_verification=True))

            try:
                user = self.retry.call(self._load_profile, session.user)
            except GatewayError as e:
                self._discard_session()
                raise self._fail(self._backend_failure(e, AuthError)) from e

            self._record_attempt(email, True)
            self._set(user=user, pending_verification_email=None, redirect_to=self._redirect_for(user))
            self.notify(get_message('login_success', name=user.full_name or user.username or user.email),
                        'success')
            return user
        finally:
            self._set(loading=False)

    def sign_up(self, email: str, password: str, username: str, full_name: str = None):
        """
        Create an account and its profile.

        Args:
            email: Email address
            password: Password
            username: Username matching ^[a-z0-9_]{3,20}$
            full_name: Display name (optional)

        Returns:
            AuthUser created by the backend

        Raises:
            ValidationError: username does not match the pattern
            ConflictError: username or email already taken (field names which)
            RegistrationError: account or profile could not be created
        """
        email = (email or '').strip().lower()
        username = username or ''
        if not validate_username(username):
            raise self._fail(ValidationError(MESSAGES['invalid_username'], field='username'), toast=False)

        self._set(loading=True, error=None)
        try:
            try:
                existing = self.retry.call(find_profiles_by_username_or_email, self.backend, username, email)
            except GatewayError as e:
                raise self._fail(self._backend_failure(e, RegistrationError)) from e

            if any((row.get('email') or '').lower() == email for row in existing):
                raise self._fail(ConflictError(MESSAGES['email_exists'], field='email'))
            if any(row.get('username') == username for row in existing):
                raise self._fail(ConflictError(MESSAGES['username_exists'], field='username'))

            registration_context = {'email': email, 'username': username}
            try:
                auth_user = self.retry.call(
                    self.auth.sign_up, email, password, {'username': username, 'full_name': full_name or ''}
                )
            except GatewayError as e:
                if e.code == gateway_errors.USER_ALREADY_EXISTS:
                    raise self._fail(ConflictError(MESSAGES['email_exists'], field='email')) from e
                log_error(self.backend, 'Sign-up failed', detail=e.message, context='sign_up',
                          registration_context=registration_context, exc=e)
                raise self._fail(self._backend_failure(e, RegistrationError)) from e

            try:
                self.profile_retry.call(self._require_profile, auth_user.id)
            except GatewayError as e:
                log_error(self.backend, 'Profile missing after sign-up', detail=e.message,
                          context='sign_up', registration_context={**registration_context, 'user_id': auth_user.id},
                          exc=e)
                raise self._fail(RegistrationError(MESSAGES['registration_failed'])) from e

            self._set(pending_verification_email=email, redirect_to='/login')
            self.notify(MESSAGES['registration_success'], 'success')
            return auth_user
        finally:
            self._set(loading=False)

    def sign_out(self) -> None:
        """Sign out of the backend and clear the current user and pending email."""
        self._set(loading=True, error=None)
        try:
            try:
                self.retry.call(self.auth.sign_out)
            except GatewayError as e:
                raise self._fail(self._backend_failure(e)) from e

            self._set(user=None, pending_verification_email=None, redirect_to='/login')
            self.notify(MESSAGES['logout_success'], 'success')
        finally:
            self._set(loading=False)

    def update_profile(self, changes: dict) -> UserProfile:
        """
        Persist profile changes for the current user.

        Args:
            changes: Subset of username, full_name, phone, avatar_url

        Returns:
            Updated UserProfile

        Raises:
            NotAuthenticatedError: no current user
            ValidationError: unknown field, invalid username or phone number
            ConflictError: username already taken
            NetworkError: backend unreachable or the profile row is gone
        """
        if self.user is None:
            raise NotAuthenticatedError(MESSAGES['not_authenticated'])

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise self._fail(ValidationError(MESSAGES['invalid_value'], field=sorted(unknown)[0]), toast=False)

        values = {k: changes[k] for k in UPDATABLE_FIELDS if k in changes}
        if 'username' in values and not validate_username(values['username']):
            raise self._fail(ValidationError(MESSAGES['invalid_username'], field='username'), toast=False)
        if values.get('phone') and not validate_phone(values['phone']):
            raise self._fail(ValidationError(MESSAGES['invalid_phone'], field='phone'), toast=False)
        values['updated_at'] = utc_now_iso()

        current = self.user
        self._set(profile_loading=True, error=None)
        try:
            try:
                row = self.retry.call(update_profile_row, self.backend, current.user_id, values)
            except GatewayError as e:
                if e.code == gateway_errors.CONSTRAINT_VIOLATION:
                    raise self._fail(ConflictError(MESSAGES['username_exists'], field='username')) from e
                raise self._fail(self._backend_failure(e)) from e

            if row is None:
                raise self._fail(NetworkError(MESSAGES['profile_update_failed']))

            user = replace(UserProfile.from_row(row), email=current.email,
                           email_confirmed_at=current.email_confirmed_at)
            self._set(user=user)
            self.notify(MESSAGES['profile_updated'], 'success')
            return user
        finally:
            self._set(profile_loading=False)

    def resend_verification_email(self, email: str = None) -> str:
        """
        Send the confirmation email again.

        Args:
            email: Address to verify; defaults to the pending-verification email

        Returns:
            The address the email was sent to

        Raises:
            ValidationError: no address given and none pending
        """
        target = (email or self._state.pending_verification_email or '').strip().lower()
        if not target:
            raise self._fail(ValidationError(MESSAGES['no_verification_email'], field='email'), toast=False)

        self._set(loading=True, error=None)
        try:
            try:
                self.retry.call(self.auth.resend, target)
            except GatewayError as e:
                raise self._fail(self._backend_failure(e)) from e

            self._set(pending_verification_email=target)
            self.notify(MESSAGES['verification_sent'], 'success')
            return target
        finally:
            self._set(loading=False)

    def verify_email(self, token: str):
        """
        Confirm an email address with the token from the confirmation link.

        Returns:
            AuthUser whose address was confirmed
        """
        if not token:
            raise self._fail(ValidationError(MESSAGES['invalid_verification_link'], field='token'), toast=False)

        self._set(loading=True, error=None)
        try:
            try:
                auth_user = self.retry.call(self.auth.verify_email, token)
            except GatewayError as e:
                raise self._fail(self._backend_failure(e, AuthError)) from e

            changes = {}
            if self._state.pending_verification_email == auth_user.email:
                changes['pending_verification_email'] = None
            if self.user is not None and self.user.user_id == auth_user.id:
                changes['user'] = replace(self.user, email_confirmed_at=auth_user.email_confirmed_at)
            if changes:
                self._set(**changes)
            self.notify(MESSAGES['email_verified'], 'success')
            return auth_user
        finally:
            self._set(loading=False)

    def is_email_verified(self) -> bool:
        return bool(self.user is not None and self.user.email_confirmed_at)

    def clear_error(self) -> None:
        self._set(error=None)

    def set_pending_verification_email(self, email: Optional[str]) -> None:
        self._set(pending_verification_email=(email or '').strip().lower() or None)

    def consume_redirect(self) -> Optional[str]:
        """Return the pending redirect target and clear it."""
        target = self._state.redirect_to
        if target is not None:
            self._set(redirect_to=None)
        return target
