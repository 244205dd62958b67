"""
Backend gateway contracts.

A Backend exposes the hosted resources as tables, an auth client bound to a
session storage, and a realtime change feed. LocalBackend (SQLite) and
RestBackend (hosted REST API) both implement this contract.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Callable, Optional

from gateway.errors import GatewayError
from gateway.query import Query, matches

logger = logging.getLogger(__name__)

TABLES = (
    'profiles',
    'vehicles',
    'bookings',
    'sessions',
    'audit_logs',
    'auth_attempts',
    'error_logs',
)


# =============================================================================
# AUTH VALUE OBJECTS
# =============================================================================

class AuthEvent(str, Enum):
    SIGNED_IN = 'SIGNED_IN'
    SIGNED_OUT = 'SIGNED_OUT'
    USER_UPDATED = 'USER_UPDATED'


@dataclass(frozen=True)
class AuthUser:
    """Identity record held by the backend's auth service."""

    id: str
    email: str
    email_confirmed_at: Optional[str] = None
    user_metadata: dict = field(default_factory=dict)
    last_sign_in_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'AuthUser':
        return cls(
            id=data['id'],
            email=data.get('email') or '',
            email_confirmed_at=data.get('email_confirmed_at'),
            user_metadata=dict(data.get('user_metadata') or {}),
            last_sign_in_at=data.get('last_sign_in_at'),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AuthSession:
    """Backend-issued credential with an expiry (epoch seconds)."""

    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]
    user: AuthUser

    def is_expired(self, now: float = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at <= now

    @classmethod
    def from_dict(cls, data: dict) -> 'AuthSession':
        return cls(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token'),
            expires_at=data.get('expires_at'),
            user=AuthUser.from_dict(data['user']),
        )

    def to_dict(self) -> dict:
        return {
            'access_token': self.access_token,
            'refresh_token': self.refresh_token,
            'expires_at': self.expires_at,
            'user': self.user.to_dict(),
        }


@dataclass(frozen=True)
class ChangeEvent:
    """Row change published on the realtime feed."""

    table: str
    type: str  # INSERT, UPDATE, DELETE
    new: Optional[dict] = None
    old: Optional[dict] = None


# =============================================================================
# TABLE
# =============================================================================

class Table:
    """
    Access to one backend resource.
    Subclasses implement the raw operations; all return lists of dict rows.
    """

    def __init__(self, backend: 'Backend', name: str):
        if name not in TABLES:
            raise ValueError(f'Unknown table: {name}')
        self.backend = backend
        self.name = name

    def select(self, query: Query = None) -> list:
        raise NotImplementedError

    def count(self, query: Query = None) -> int:
        raise NotImplementedError

    def insert(self, rows) -> list:
        raise NotImplementedError

    def update(self, values: dict, query: Query) -> list:
        raise NotImplementedError

    def delete(self, query: Query) -> list:
        raise NotImplementedError

    def upsert(self, rows, on_conflict: str, ignore_duplicates: bool = False) -> list:
        raise NotImplementedError

    def single(self, query: Query = None) -> Optional[dict]:
        """
        Return the only row matching the query, or None when there is none.

        Raises:
            GatewayError: if more than one row matches
        """
        rows = self.select(query)
        if len(rows) > 1:
            raise GatewayError(
                f'Expected a single row from {self.name}, got {len(rows)}',
                code='multiple_rows'
            )
        return rows[0] if rows else None


# =============================================================================
# AUTH CLIENT
# =============================================================================

class AuthClient:
    """
    Auth operations bound to one user's session storage.

    The storage is any dict-like object (the Flask session in the web layer).
    Listeners registered with on_auth_state_change() are called after the
    corresponding operation has completed.
    """

    STORAGE_KEY = 'auth.session'

    def __init__(self, backend: 'Backend', storage=None):
        self.backend = backend
        self._storage = {} if storage is None else storage
        self._listeners = []

    # --- storage -------------------------------------------------------------

    def _load_session(self) -> Optional[AuthSession]:
        data = self._storage.get(self.STORAGE_KEY)
        if not data:
            return None
        try:
            return AuthSession.from_dict(data)
        except (KeyError, TypeError):
            logger.warning('Discarding malformed stored auth session')
            self._storage.pop(self.STORAGE_KEY, None)
            return None

    def _save_session(self, session: AuthSession) -> None:
        self._storage[self.STORAGE_KEY] = session.to_dict()

    def clear_session(self) -> None:
        """Forget the stored session without contacting the backend."""
        self._storage.pop(self.STORAGE_KEY, None)

    # --- events --------------------------------------------------------------

    def on_auth_state_change(self, callback: Callable) -> Callable:
        """
        Register a listener called as callback(event, session).

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception(f'Auth listener failed on {event.value}')

    # --- public operations ---------------------------------------------------

    def get_session(self) -> Optional[AuthSession]:
        """Return the stored session if it has not expired."""
        session = self._load_session()
        if session is None:
            return None
        if session.is_expired():
            logger.info(f'Stored session for {session.user.id} has expired')
            self.clear_session()
            return None
        return session

    def sign_in_with_password(self, email: str, password: str, timeout: float = None) -> AuthSession:
        session = self._password_grant(email, password, timeout)
        self._save_session(session)
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    def sign_up(self, email: str, password: str, data: dict = None) -> AuthUser:
        return self._signup(email, password, data or {})

    def sign_out(self) -> None:
        session = self._load_session()
        if session is not None:
            self._logout(session)
        self.clear_session()
        self._emit(AuthEvent.SIGNED_OUT, None)

    def resend(self, email: str) -> None:
        self._resend(email)

    def verify_email(self, token: str) -> AuthUser:
        user = self._verify(token)
        session = self._load_session()
        if session is not None and session.user.id == user.id:
            session = AuthSession(session.access_token, session.refresh_token, session.expires_at, user)
            self._save_session(session)
            self._emit(AuthEvent.USER_UPDATED, session)
        return user

    def get_user(self) -> Optional[AuthUser]:
        """Ask the backend who owns the stored session."""
        session = self.get_session()
        if session is None:
            return None
        return self._fetch_user(session)

    # --- backend specific ----------------------------------------------------

    def _password_grant(self, email, password, timeout) -> AuthSession:
        raise NotImplementedError

    def _signup(self, email, password, data) -> AuthUser:
        raise NotImplementedError

    def _logout(self, session: AuthSession) -> None:
        raise NotImplementedError

    def _resend(self, email) -> None:
        raise NotImplementedError

    def _verify(self, token) -> AuthUser:
        raise NotImplementedError

    def _fetch_user(self, session: AuthSession) -> Optional[AuthUser]:
        raise NotImplementedError


# =============================================================================
# BACKEND
# =============================================================================

class Backend:
    """
    Shared handle to one backend.
    One instance lives for the whole process (app.extensions['backend']).
    """

    table_class = Table
    auth_class = AuthClient

    def __init__(self):
        self._subscribers = []
        self._subscribers_lock = threading.Lock()

    def table(self, name: str) -> Table:
        return self.table_class(self, name)

    def auth(self, storage=None) -> AuthClient:
        return self.auth_class(self, storage)

    def close(self) -> None:
        pass

    # --- realtime feed -------------------------------------------------------

    def subscribe(self, table: str, callback: Callable, query: Query = None) -> Callable:
        """
        Receive a ChangeEvent for every write on a table.

        Args:
            table: Table name
            callback: Called as callback(event)
            query: Optional filters the changed row must satisfy

        Returns:
            Function that cancels the subscription
        """
        entry = (table, callback, query)
        with self._subscribers_lock:
            self._subscribers.append(entry)

        def unsubscribe():
            with self._subscribers_lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        with self._subscribers_lock:
            subscribers = [s for s in self._subscribers if s[0] == event.table]

        row = event.new if event.new is not None else event.old
        for _, callback, query in subscribers:
            if query is not None and not all(matches(row, f) for f in query.filters):
                continue
            try:
                callback(event)
            except Exception:
                logger.exception(f'Change subscriber failed on {event.table} {event.type}')
