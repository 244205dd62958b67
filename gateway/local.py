"""
Local backend.
Implements the gateway contract on top of the SQLite database package, for
development and tests. Mirrors the hosted backend's behaviour: uuid ids,
ISO timestamps, JSON columns, password auth with email confirmation and a
profile row created on sign-up.
"""

import json
import logging
import re
import secrets
import sqlite3
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from werkzeug.security import generate_password_hash, check_password_hash

from database import connect, init_db, ensure_schema, JSON_COLUMNS, BOOLEAN_COLUMNS
from gateway import errors
from gateway.base import Backend, Table, AuthClient, AuthSession, AuthUser, ChangeEvent
from gateway.errors import GatewayError
from gateway.query import Query

logger = logging.getLogger(__name__)

IDENTIFIER = re.compile(r'^[a-z_][a-z0-9_]*$')


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


def _column(name: str) -> str:
    if not IDENTIFIER.match(name):
        raise GatewayError(f'Invalid column name: {name}', code='invalid_column', status=400)
    return name


def _encode(value):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return value


def _translate(exc: sqlite3.Error) -> GatewayError:
    message = str(exc)
    if isinstance(exc, sqlite3.IntegrityError):
        return GatewayError(message, code=errors.CONSTRAINT_VIOLATION, status=409)
    if isinstance(exc, sqlite3.OperationalError) and 'locked' in message:
        return GatewayError(message, code='database_locked', status=503, transient=True)
    return GatewayError(message, code='database_error', status=500)


# =============================================================================
# TABLE
# =============================================================================

class LocalTable(Table):
    """One SQLite table behind the gateway contract."""

    def _decode(self, row: sqlite3.Row) -> dict:
        data = dict(row)
        for column in JSON_COLUMNS.get(self.name, ()):
            if column in data and isinstance(data[column], str):
                data[column] = json.loads(data[column])
        for column in BOOLEAN_COLUMNS.get(self.name, ()):
            if column in data and data[column] is not None:
                data[column] = bool(data[column])
        return data

    def _condition(self, flt) -> tuple:
        if flt.op == 'or':
            parts = [self._condition(sub) for sub in flt.value]
            if not parts:
                return '0', []
            sql = ' OR '.join(part[0] for part in parts)
            params = [p for part in parts for p in part[1]]
            return f'({sql})', params

        column = _column(flt.column)
        if flt.op == 'is' or (flt.op == 'eq' and flt.value is None):
            if flt.value is None:
                return f'{column} IS NULL', []
            return f'{column} = ?', [int(bool(flt.value))]
        if flt.op == 'in':
            if not flt.value:
                return '0', []
            placeholders = ','.join('?' * len(flt.value))
            return f'{column} IN ({placeholders})', [_encode(v) for v in flt.value]

        operators = {'eq': '=', 'neq': '!=', 'gt': '>', 'gte': '>=', 'lt': '<', 'lte': '<='}
        if flt.op not in operators:
            raise GatewayError(f'Unsupported operator: {flt.op}', code='invalid_operator', status=400)
        return f'{column} {operators[flt.op]} ?', [_encode(flt.value)]

    def _where(self, query: Optional[Query]) -> tuple:
        if query is None or not query.filters:
            return '', []
        conditions = [self._condition(flt) for flt in query.filters]
        sql = ' WHERE ' + ' AND '.join(c[0] for c in conditions)
        params = [p for c in conditions for p in c[1]]
        return sql, params

    def _by_ids(self, ids: list) -> list:
        if not ids:
            return []
        placeholders = ','.join('?' * len(ids))
        rows = self.backend.execute(
            f'SELECT * FROM {self.name} WHERE id IN ({placeholders})', ids
        ).fetchall()
        by_id = {row['id']: self._decode(row) for row in rows}
        return [by_id[i] for i in ids if i in by_id]

    def select(self, query: Query = None) -> list:
        columns = '*'
        if query is not None and query.columns != '*':
            columns = ', '.join(_column(c.strip()) for c in query.columns.split(','))

        where, params = self._where(query)
        sql = f'SELECT {columns} FROM {self.name}{where}'

        if query is not None and query.ordering:
            order = ', '.join(
                f'{_column(col)} {"DESC" if desc else "ASC"}' for col, desc in query.ordering
            )
            sql += f' ORDER BY {order}'
        if query is not None and query.row_limit is not None:
            sql += ' LIMIT ?'
            params.append(int(query.row_limit))

        with self.backend.lock:
            rows = self.backend.execute(sql, params).fetchall()
        return [self._decode(row) for row in rows]

    def count(self, query: Query = None) -> int:
        where, params = self._where(query)
        with self.backend.lock:
            row = self.backend.execute(f'SELECT COUNT(*) FROM {self.name}{where}', params).fetchone()
        return row[0]

    def insert(self, rows) -> list:
        if isinstance(rows, dict):
            rows = [rows]

        ids = []
        with self.backend.lock:
            try:
                for row in rows:
                    row = dict(row)
                    row.setdefault('id', uuid.uuid4().hex)
                    columns = [_column(c) for c in row]
                    placeholders = ','.join('?' * len(columns))
                    self.backend.db.execute(
                        f'INSERT INTO {self.name} ({", ".join(columns)}) VALUES ({placeholders})',
                        [_encode(v) for v in row.values()]
                    )
                    ids.append(row['id'])
                self.backend.db.commit()
            except sqlite3.Error as e:
                self.backend.db.rollback()
                raise _translate(e)
            created = self._by_ids(ids)

        for row in created:
            self.backend.publish(ChangeEvent(self.name, 'INSERT', new=row))
        return created

    def update(self, values: dict, query: Query) -> list:
        if not values:
            return []

        with self.backend.lock:
            before = self.select(query)
            if not before:
                return []
            ids = [row['id'] for row in before]
            assignments = ', '.join(f'{_column(c)} = ?' for c in values)
            placeholders = ','.join('?' * len(ids))
            try:
                self.backend.db.execute(
                    f'UPDATE {self.name} SET {assignments} WHERE id IN ({placeholders})',
                    [_encode(v) for v in values.values()] + ids
                )
                self.backend.db.commit()
            except sqlite3.Error as e:
                self.backend.db.rollback()
                raise _translate(e)
            after = self._by_ids(ids)

        old_by_id = {row['id']: row for row in before}
        for row in after:
            self.backend.publish(ChangeEvent(self.name, 'UPDATE', new=row, old=old_by_id.get(row['id'])))
        return after

    def delete(self, query: Query) -> list:
        with self.backend.lock:
            before = self.select(query)
            if not before:
                return []
            ids = [row['id'] for row in before]
            placeholders = ','.join('?' * len(ids))
            try:
                self.backend.db.execute(f'DELETE FROM {self.name} WHERE id IN ({placeholders})', ids)
                self.backend.db.commit()
            except sqlite3.Error as e:
                self.backend.db.rollback()
                raise _translate(e)

        for row in before:
            self.backend.publish(ChangeEvent(self.name, 'DELETE', old=row))
        return before

    def upsert(self, rows, on_conflict: str, ignore_duplicates: bool = False) -> list:
        """
        Insert rows, resolving conflicts on a unique column.

        Args:
            rows: Row dict or list of row dicts
            on_conflict: Unique column used to detect existing rows
            ignore_duplicates: Leave existing rows untouched instead of merging

        Returns:
            Rows actually inserted or updated (duplicates ignored are omitted)
        """
        if isinstance(rows, dict):
            rows = [rows]
        _column(on_conflict)

        written = []
        with self.backend.lock:
            for row in rows:
                existing = self.select(Query().eq(on_conflict, row[on_conflict]))
                if not existing:
                    written.extend(self.insert(row))
                elif not ignore_duplicates:
                    values = {k: v for k, v in row.items() if k != 'id'}
                    written.extend(self.update(values, Query().eq('id', existing[0]['id'])))
        return written


# =============================================================================
# AUTH
# =============================================================================

class LocalAuthClient(AuthClient):
    """Password auth against the auth_users and sessions tables."""

    def _user_from_row(self, row) -> AuthUser:
        metadata = row['user_metadata']
        return AuthUser(
            id=row['id'],
            email=row['email'],
            email_confirmed_at=row['email_confirmed_at'],
            user_metadata=json.loads(metadata) if metadata else {},
            last_sign_in_at=row['last_sign_in_at'],
        )

    def _password_grant(self, email, password, timeout) -> AuthSession:
        backend = self.backend
        with backend.lock:
            row = backend.execute('SELECT * FROM auth_users WHERE email = ?', (email,)).fetchone()

            if row is None or not check_password_hash(row['password_hash'], password):
                raise GatewayError('Invalid login credentials', code=errors.INVALID_CREDENTIALS, status=400)
            if backend.require_email_confirmation and not row['email_confirmed_at']:
                raise GatewayError('Email not confirmed', code=errors.EMAIL_NOT_CONFIRMED, status=400)

            expires_at = int(time.time()) + backend.session_ttl
            access_token = secrets.token_urlsafe(32)
            refresh_token = secrets.token_urlsafe(32)
            now = utc_now()
            try:
                backend.db.execute('''
                    INSERT INTO sessions (id, user_id, refresh_token, expires_at)
                    VALUES (?, ?, ?, ?)
                ''', (access_token, row['id'], refresh_token,
                      datetime.fromtimestamp(expires_at, timezone.utc).isoformat()))
                backend.db.execute('UPDATE auth_users SET last_sign_in_at = ? WHERE id = ?', (now, row['id']))
                backend.db.commit()
            except sqlite3.Error as e:
                backend.db.rollback()
                raise _translate(e)

            row = backend.execute('SELECT * FROM auth_users WHERE id = ?', (row['id'],)).fetchone()

        return AuthSession(access_token, refresh_token, expires_at, self._user_from_row(row))

    def _signup(self, email, password, data) -> AuthUser:
        backend = self.backend
        user_id = uuid.uuid4().hex
        token = secrets.token_urlsafe(24)

        with backend.lock:
            exists = backend.execute('SELECT 1 FROM auth_users WHERE email = ?', (email,)).fetchone()
            if exists:
                raise GatewayError('User already registered', code=errors.USER_ALREADY_EXISTS, status=422)

            confirmed_at = None if backend.require_email_confirmation else utc_now()
            try:
                backend.db.execute('''
                    INSERT INTO auth_users (id, email, password_hash, email_confirmed_at,
                                            confirmation_token, confirmation_sent_at, user_metadata)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', (user_id, email, generate_password_hash(password), confirmed_at,
                      token, utc_now(), json.dumps(data)))
                backend.db.commit()
            except sqlite3.Error as e:
                backend.db.rollback()
                raise _translate(e)

            # The hosted backend creates the profile from a trigger on auth.users
            try:
                backend.table('profiles').insert({
                    'user_id': user_id,
                    'username': data.get('username') or email.split('@')[0],
                    'email': email,
                    'full_name': data.get('full_name') or '',
                    'role': 'user',
                })
            except GatewayError:
                backend.execute('DELETE FROM auth_users WHERE id = ?', (user_id,))
                backend.db.commit()
                logger.exception(f'Profile creation failed for {email}')
                raise GatewayError('Database error saving new user', code='unexpected_failure', status=500)

            row = backend.execute('SELECT * FROM auth_users WHERE id = ?', (user_id,)).fetchone()

        logger.info(f'Confirmation link issued for {email}')
        return self._user_from_row(row)

    def _logout(self, session: AuthSession) -> None:
        with self.backend.lock:
            self.backend.execute('DELETE FROM sessions WHERE id = ?', (session.access_token,))
            self.backend.db.commit()

    def _resend(self, email) -> None:
        with self.backend.lock:
            row = self.backend.execute(
                'SELECT id, email_confirmed_at FROM auth_users WHERE email = ?', (email,)
            ).fetchone()
            # Unknown or confirmed addresses are not reported, to avoid account enumeration
            if row is None or row['email_confirmed_at']:
                return
            self.backend.execute('''
                UPDATE auth_users SET confirmation_token = ?, confirmation_sent_at = ?
                WHERE id = ?
            ''', (secrets.token_urlsafe(24), utc_now(), row['id']))
            self.backend.db.commit()
        logger.info(f'Confirmation link re-issued for {email}')

    def _verify(self, token) -> AuthUser:
        with self.backend.lock:
            row = self.backend.execute(
                'SELECT * FROM auth_users WHERE confirmation_token = ?', (token,)
            ).fetchone()
            if row is None:
                raise GatewayError('Token has expired or is invalid', code=errors.INVALID_TOKEN, status=403)
            self.backend.execute('''
                UPDATE auth_users SET email_confirmed_at = ?, confirmation_token = NULL
                WHERE id = ?
            ''', (utc_now(), row['id']))
            self.backend.db.commit()
            row = self.backend.execute('SELECT * FROM auth_users WHERE id = ?', (row['id'],)).fetchone()
        return self._user_from_row(row)

    def _fetch_user(self, session: AuthSession) -> Optional[AuthUser]:
        with self.backend.lock:
            row = self.backend.execute('''
                SELECT u.*, s.expires_at AS session_expires_at
                FROM sessions s
                JOIN auth_users u ON s.user_id = u.id
                WHERE s.id = ?
            ''', (session.access_token,)).fetchone()
        if row is None:
            return None
        if datetime.fromisoformat(row['session_expires_at']) <= datetime.now(timezone.utc):
            return None
        return self._user_from_row(row)


# =============================================================================
# BACKEND
# =============================================================================

class LocalBackend(Backend):
    """
    SQLite-backed backend.

    A single connection is shared by all threads and guarded by a lock, so
    each gateway call is atomic the way a hosted backend request is.
    """

    table_class = LocalTable
    auth_class = LocalAuthClient

    def __init__(self, db_path: str, api_key: str = None,
                 require_email_confirmation: bool = True, session_ttl: int = 3600):
        super().__init__()
        self.db_path = db_path
        self.api_key = api_key
        self.require_email_confirmation = require_email_confirmation
        self.session_ttl = session_ttl
        self.lock = threading.RLock()
        self.db = connect(db_path)
        ensure_schema(self.db)

    def execute(self, sql: str, params=()):
        with self.lock:
            try:
                return self.db.execute(sql, params)
            except sqlite3.Error as e:
                raise _translate(e)

    def reset(self, seed: bool = True) -> None:
        """Recreate the schema; WARNING: deletes all data."""
        with self.lock:
            init_db(self.db, seed=seed)

    def confirmation_token(self, email: str) -> Optional[str]:
        """Pending confirmation token for an address (stands in for the confirmation email)."""
        row = self.execute('SELECT confirmation_token FROM auth_users WHERE email = ?', (email,)).fetchone()
        return row['confirmation_token'] if row else None

    def close(self) -> None:
        with self.lock:
            self.db.close()
