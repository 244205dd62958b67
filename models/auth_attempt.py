"""
Login attempt tracking.
One row per email: the last outcome and the count of consecutive failures.
"""

from typing import Optional

from gateway import Query
from utils.datetime_helpers import utc_now_iso


def get_auth_attempt(backend, email: str) -> Optional[dict]:
    return backend.table('auth_attempts').single(Query().eq('email', email))


def record_auth_attempt(backend, email: str, success: bool, ip_address: str = None) -> dict:
    """
    Record a login attempt.

    A failure increments attempt_count; a success resets it to zero.

    Args:
        backend: Gateway backend
        email: Normalized identifier used for the attempt
        success: Outcome of the attempt
        ip_address: Client IP address

    Returns:
        The stored auth_attempts row
    """
    existing = get_auth_attempt(backend, email)
    count = 0 if success else (existing['attempt_count'] if existing else 0) + 1

    rows = backend.table('auth_attempts').upsert({
        'email': email,
        'ip_address': ip_address,
        'success': success,
        'attempt_count': count,
        'last_attempt': utc_now_iso(),
    }, on_conflict='email')
    return rows[0] if rows else get_auth_attempt(backend, email)
