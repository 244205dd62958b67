"""
Remote data gateway.

Uniform access to the hosted backend's tables, auth service and realtime
change feed:
- base: Backend/Table/AuthClient contracts and value objects
- query: Backend-neutral query builder
- errors: GatewayError and error codes
- local: SQLite implementation (development and tests)
- rest: Hosted REST implementation
"""

from gateway.base import Backend, Table, AuthClient, AuthEvent, AuthSession, AuthUser, ChangeEvent, TABLES
from gateway.errors import GatewayError, GatewayTimeout, is_transient
from gateway.query import Query, Filter


def create_backend(url: str, api_key: str, **options) -> Backend:
    """
    Build the backend designated by a URL.

    Args:
        url: 'sqlite:///path/to/file.db', 'sqlite:///:memory:' or 'https://<project>'
        api_key: Project API key
        **options: Backend specific options (timeout for REST;
                   require_email_confirmation and session_ttl for SQLite)

    Returns:
        Backend: Ready to use backend instance

    Raises:
        ValueError: if the URL scheme is not supported
    """
    if url.startswith('sqlite:///'):
        from gateway.local import LocalBackend
        return LocalBackend(
            url[len('sqlite:///'):],
            api_key,
            require_email_confirmation=options.get('require_email_confirmation', True),
            session_ttl=options.get('session_ttl', 3600),
        )

    if url.startswith(('http://', 'https://')):
        from gateway.rest import RestBackend, DEFAULT_TIMEOUT
        return RestBackend(url, api_key, timeout=options.get('timeout', DEFAULT_TIMEOUT))

    raise ValueError(f'Unsupported backend URL: {url}')


__all__ = [
    'Backend',
    'Table',
    'AuthClient',
    'AuthEvent',
    'AuthSession',
    'AuthUser',
    'ChangeEvent',
    'TABLES',
    'GatewayError',
    'GatewayTimeout',
    'is_transient',
    'Query',
    'Filter',
    'create_backend',
]
