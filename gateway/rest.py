"""
Hosted backend over its REST API.
Table calls go to the PostgREST endpoint (/rest/v1), auth calls to the auth
service (/auth/v1). Every request carries the project API key.
"""

import logging
import time
from typing import Optional

import requests

from gateway import errors
from gateway.base import Backend, Table, AuthClient, AuthSession, AuthUser, ChangeEvent
from gateway.errors import GatewayError, GatewayTimeout
from gateway.query import Query

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# Older auth servers only send a message; map the ones callers branch on
MESSAGE_CODES = {
    'Invalid login credentials': errors.INVALID_CREDENTIALS,
    'Email not confirmed': errors.EMAIL_NOT_CONFIRMED,
    'User already registered': errors.USER_ALREADY_EXISTS,
    'Token has expired or is invalid': errors.INVALID_TOKEN,
}

RESERVED_CHARS = set(',.:()" ')


def format_value(value) -> str:
    """Render a filter value the way PostgREST expects it in a query string."""
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


def _quoted(value) -> str:
    text = format_value(value)
    if any(c in RESERVED_CHARS for c in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def _condition(flt) -> str:
    """Filter as 'op.value' (the part after 'column=')."""
    if flt.op == 'in':
        return 'in.(' + ','.join(_quoted(v) for v in flt.value) + ')'
    if flt.op == 'is' or (flt.op == 'eq' and flt.value is None):
        return 'is.' + format_value(flt.value)
    return f'{flt.op}.{format_value(flt.value)}'


def query_params(query: Optional[Query], include_modifiers: bool = True) -> list:
    """
    Translate a Query into PostgREST query-string parameters.

    Args:
        query: Query to translate (None means no filters)
        include_modifiers: Add select/order/limit (only meaningful for reads)

    Returns:
        list: (name, value) pairs; a list so one column can be filtered twice
    """
    if query is None:
        return []

    params = []
    for flt in query.filters:
        if flt.op == 'or':
            parts = []
            for sub in flt.value:
                condition = _condition(sub)
                if sub.op == 'in':
                    parts.append(f'{sub.column}.{condition}')
                else:
                    op, _, value = condition.partition('.')
                    parts.append(f'{sub.column}.{op}.{_quoted(value)}')
            params.append(('or', '(' + ','.join(parts) + ')'))
        else:
            params.append((flt.column, _condition(flt)))

    if include_modifiers:
        if query.columns != '*':
            params.append(('select', query.columns))
        if query.ordering:
            params.append(('order', ','.join(
                f'{col}.{"desc" if desc else "asc"}' for col, desc in query.ordering
            )))
        if query.row_limit is not None:
            params.append(('limit', str(query.row_limit)))
    return params


# =============================================================================
# TABLE
# =============================================================================

class RestTable(Table):
    """One PostgREST resource."""

    @property
    def path(self) -> str:
        return f'/rest/v1/{self.name}'

    def select(self, query: Query = None) -> list:
        return self.backend.request('GET', self.path, params=query_params(query)) or []

    def count(self, query: Query = None) -> int:
        response = self.backend.request(
            'HEAD', self.path,
            params=query_params(query, include_modifiers=False),
            headers={'Prefer': 'count=exact'},
            raw=True
        )
        # Content-Range: 0-24/3573 or */0
        content_range = response.headers.get('Content-Range', '*/0')
        total = content_range.rsplit('/', 1)[-1]
        return int(total) if total.isdigit() else 0

    def insert(self, rows) -> list:
        created = self.backend.request(
            'POST', self.path, json=rows,
            headers={'Prefer': 'return=representation'}
        ) or []
        for row in created:
            self.backend.publish(ChangeEvent(self.name, 'INSERT', new=row))
        return created

    def update(self, values: dict, query: Query) -> list:
        updated = self.backend.request(
            'PATCH', self.path, json=values,
            params=query_params(query, include_modifiers=False),
            headers={'Prefer': 'return=representation'}
        ) or []
        for row in updated:
            self.backend.publish(ChangeEvent(self.name, 'UPDATE', new=row))
        return updated

    def delete(self, query: Query) -> list:
        deleted = self.backend.request(
            'DELETE', self.path,
            params=query_params(query, include_modifiers=False),
            headers={'Prefer': 'return=representation'}
        ) or []
        for row in deleted:
            self.backend.publish(ChangeEvent(self.name, 'DELETE', old=row))
        return deleted

    def upsert(self, rows, on_conflict: str, ignore_duplicates: bool = False) -> list:
        resolution = 'ignore-duplicates' if ignore_duplicates else 'merge-duplicates'
        written = self.backend.request(
            'POST', self.path, json=rows,
            params=[('on_conflict', on_conflict)],
            headers={'Prefer': f'resolution={resolution},return=representation'}
        ) or []
        for row in written:
            self.backend.publish(ChangeEvent(self.name, 'INSERT', new=row))
        return written


# =============================================================================
# AUTH
# =============================================================================

class RestAuthClient(AuthClient):
    """Auth service client (/auth/v1)."""

    def _session_from_payload(self, payload: dict) -> AuthSession:
        expires_at = payload.get('expires_at')
        if expires_at is None and payload.get('expires_in'):
            expires_at = int(time.time()) + int(payload['expires_in'])
        return AuthSession(
            access_token=payload['access_token'],
            refresh_token=payload.get('refresh_token'),
            expires_at=expires_at,
            user=AuthUser.from_dict(payload['user']),
        )

    def _password_grant(self, email, password, timeout) -> AuthSession:
        payload = self.backend.request(
            'POST', '/auth/v1/token',
            params=[('grant_type', 'password')],
            json={'email': email, 'password': password},
            timeout=timeout
        )
        return self._session_from_payload(payload)

    def _signup(self, email, password, data) -> AuthUser:
        payload = self.backend.request(
            'POST', '/auth/v1/signup',
            json={'email': email, 'password': password, 'data': data}
        )
        # With auto-confirm the response is a session wrapping the user
        user = payload.get('user') if 'access_token' in payload else payload
        return AuthUser.from_dict(user)

    def _logout(self, session: AuthSession) -> None:
        self.backend.request('POST', '/auth/v1/logout', token=session.access_token)

    def _resend(self, email) -> None:
        self.backend.request('POST', '/auth/v1/resend', json={'type': 'signup', 'email': email})

    def _verify(self, token) -> AuthUser:
        payload = self.backend.request(
            'POST', '/auth/v1/verify',
            json={'type': 'signup', 'token_hash': token}
        )
        return AuthUser.from_dict(payload.get('user') or payload)

    def _fetch_user(self, session: AuthSession) -> Optional[AuthUser]:
        try:
            payload = self.backend.request('GET', '/auth/v1/user', token=session.access_token)
        except GatewayError as e:
            if e.status in (401, 403):
                return None
            raise
        return AuthUser.from_dict(payload)


# =============================================================================
# BACKEND
# =============================================================================

class RestBackend(Backend):
    """
    Client for the hosted backend.

    The realtime feed only carries writes made through this process.
    """

    table_class = RestTable
    auth_class = RestAuthClient

    def __init__(self, url: str, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        super().__init__()
        self.url = url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.http = requests.Session()
        self.http.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        })

    def request(self, method: str, path: str, params=None, json=None, headers=None,
                token: str = None, timeout: float = None, raw: bool = False):
        """
        Perform one HTTP call and decode the JSON answer.

        Args:
            method: HTTP verb
            path: Path below the project URL
            params: Query-string parameters
            json: JSON body
            headers: Extra headers
            token: User access token replacing the API key as bearer
            timeout: Seconds before giving up (defaults to the backend timeout)
            raw: Return the Response object instead of its JSON body

        Returns:
            Decoded JSON body, None for empty bodies, or the Response when raw

        Raises:
            GatewayTimeout: if the backend did not answer in time
            GatewayError: for connection failures and non-2xx answers
        """
        headers = dict(headers or {})
        if token:
            headers['Authorization'] = f'Bearer {token}'

        try:
            response = self.http.request(
                method, f'{self.url}{path}',
                params=params, json=json, headers=headers,
                timeout=timeout or self.timeout
            )
        except requests.Timeout:
            logger.warning(f'{method} {path} timed out')
            raise GatewayTimeout()
        except requests.ConnectionError as e:
            logger.warning(f'{method} {path} connection failed: {e}')
            raise GatewayError(str(e), code=errors.CONNECTION_ERROR, transient=True)

        if response.status_code >= 400:
            raise self._error_from(response)
        if raw:
            return response
        if not response.content:
            return None
        return response.json()

    def _error_from(self, response) -> GatewayError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = (body.get('msg') or body.get('message') or body.get('error_description')
                   or body.get('error') or response.reason or f'HTTP {response.status_code}')
        code = body.get('error_code') or body.get('code') or MESSAGE_CODES.get(message)
        # 23505 is the Postgres unique_violation SQLSTATE
        if response.status_code == 409 or code == '23505':
            code = errors.CONSTRAINT_VIOLATION

        transient = response.status_code >= 500 or response.status_code == 429
        logger.debug(f'Backend error {response.status_code}: {message}')
        return GatewayError(message, code=str(code) if code else None,
                            status=response.status_code, transient=transient)

    def close(self) -> None:
        self.http.close()
