"""
Audit logging utility functions.
Records row changes on audited tables and persistent error logs, capturing
the acting user and client IP from the Flask request context when present.
"""

import logging

from flask import request, g, has_request_context

# Configure logger for audit operations
logger = logging.getLogger(__name__)

AUDITED_TABLES = ('bookings', 'vehicles', 'profiles')


def client_ip() -> str:
    """Client IP, considering proxies; None outside a request."""
    if not has_request_context():
        return None
    ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
    if ip_address and ',' in ip_address:
        ip_address = ip_address.split(',')[0].strip()
    return ip_address


def _acting_user_id() -> str:
    """Id of the user already loaded for this request, None for system actions."""
    if not has_request_context():
        return None
    # Only the user Flask-Login has already loaded; loading one here would
    # re-enter the backend from inside a write
    user = g.get('_login_user')
    if user is not None and getattr(user, 'is_authenticated', False):
        return user.get_id()
    return None


def log_audit(
    backend,
    action: str,
    table_name: str,
    record_id: str = None,
    old_data: dict = None,
    new_data: dict = None,
    user_id: str = None
) -> str:
    """
    Log an audit entry manually.

    Audit logging never fails the main operation: errors are logged and
    None is returned.

    Args:
        backend: Gateway backend
        action: Action type (INSERT, UPDATE, DELETE, or a custom verb)
        table_name: Affected table
        record_id: ID of the affected row
        old_data: Row before the change
        new_data: Row after the change
        user_id: Override user ID (defaults to the request's user)

    Returns:
        New audit log ID, or None if logging failed

    Example:
        log_audit(backend, 'UPDATE', 'bookings', booking.id,
                  old_data={'booking_status': 'pending'},
                  new_data={'booking_status': 'confirmed'})
    """
    try:
        from models.audit_log import create_audit_log

        if user_id is None:
            user_id = _acting_user_id()

        return create_audit_log(
            backend,
            action=action,
            table_name=table_name,
            record_id=record_id,
            user_id=user_id,
            old_data=old_data,
            new_data=new_data,
            ip_address=client_ip()
        )

    except Exception as e:
        logger.error(f"Failed to log audit entry: {e}", exc_info=True)
        return None


def log_error(backend, message: str, detail: str = None, context: str = None,
              registration_context: dict = None, exc: BaseException = None) -> str:
    """
    Persist an error_logs entry; never raises.

    Returns:
        New error log ID, or None if logging failed
    """
    try:
        from models.error_log import create_error_log
        return create_error_log(
            backend, message, detail=detail, context=context,
            registration_context=registration_context, exc=exc
        )
    except Exception as e:
        logger.error(f"Failed to log error entry: {e}", exc_info=True)
        return None


def register_audit_subscriber(backend, tables=AUDITED_TABLES) -> list:
    """
    Subscribe to the change feed and audit every write on the given tables.

    Args:
        backend: Gateway backend
        tables: Tables to audit

    Returns:
        List of unsubscribe callables, one per table
    """
    def on_change(event):
        row = event.new if event.new is not None else event.old
        log_audit(
            backend,
            action=event.type,
            table_name=event.table,
            record_id=(row or {}).get('id'),
            old_data=event.old,
            new_data=event.new
        )

    return [backend.subscribe(table, on_change) for table in tables]


# Export public API
__all__ = [
    'AUDITED_TABLES',
    'client_ip',
    'log_audit',
    'log_error',
    'register_audit_subscriber',
]
