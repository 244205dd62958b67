"""
Audit Log model and data access functions.
Handles audit log creation and retrieval.
"""

from gateway import Query


# =============================================================================
# READ OPERATIONS
# =============================================================================

def get_audit_logs(
    backend,
    user_id: str = None,
    action: str = None,
    table_name: str = None,
    record_id: str = None,
    start_date: str = None,
    end_date: str = None,
    limit: int = 100
) -> list:
    """
    Get audit logs with optional filtering, newest first.

    Args:
        backend: Gateway backend
        user_id: Filter by acting user
        action: Filter by action type (INSERT, UPDATE, DELETE)
        table_name: Filter by table (bookings, vehicles, profiles)
        record_id: Filter by specific record ID
        start_date: Filter logs from this date (ISO format YYYY-MM-DD)
        end_date: Filter logs until this date, inclusive (ISO format YYYY-MM-DD)
        limit: Maximum number of records to return (default 100)

    Returns:
        List of audit log dicts
    """
    query = Query()

    if user_id:
        query.eq('user_id', user_id)
    if action:
        query.eq('action', action)
    if table_name:
        query.eq('table_name', table_name)
    if record_id:
        query.eq('record_id', record_id)
    if start_date:
        query.gte('created_at', start_date)
    if end_date:
        # created_at carries a time part
        query.lte('created_at', f'{end_date}T23:59:59.999Z')

    query.order('created_at', desc=True).limit(limit)
    return backend.table('audit_logs').select(query)


# =============================================================================
# CREATE OPERATIONS
# =============================================================================

def create_audit_log(
    backend,
    action: str,
    table_name: str,
    record_id: str = None,
    user_id: str = None,
    old_data: dict = None,
    new_data: dict = None,
    ip_address: str = None
) -> str:
    """
    Create a new audit log entry.

    Args:
        backend: Gateway backend
        action: Action type (INSERT, UPDATE, DELETE)
        table_name: Affected table
        record_id: ID of the affected row
        user_id: Acting user (None for system actions)
        old_data: Row before the change
        new_data: Row after the change
        ip_address: Client IP address

    Returns:
        New audit log ID
    """
    rows = backend.table('audit_logs').insert({
        'user_id': user_id,
        'action': action,
        'table_name': table_name,
        'record_id': record_id,
        'old_data': old_data,
        'new_data': new_data,
        'ip_address': ip_address,
    })
    return rows[0]['id'] if rows else None
