"""
Admin routes for the back-office.
Dashboard counters, analytics report, booking status changes and audit trail.
Admin role required on every route.
"""

from datetime import timedelta
from flask import request, Blueprint, current_app
from flask_login import login_required

from blueprints.admin.services import (
    STATUS_TRANSITIONS,
    get_dashboard_stats,
    get_analytics_report,
    change_booking_status,
)
from extensions import get_backend
from models.audit_log import get_audit_logs
from utils.api_response import api_success
from utils.datetime_helpers import get_today
from utils.decorators import admin_required
from utils.errors import ValidationError
from utils.messages import MESSAGES, get_message
from utils.notifications import notify
from utils.validators import parse_date

admin_bp = Blueprint('admin', __name__)

DEFAULT_ANALYTICS_DAYS = 30


def _date_arg(name, default):
    value = request.args.get(name, '').strip()
    if not value:
        return default
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError(MESSAGES['invalid_date'], field=name)


@admin_bp.route('/dashboard')
@login_required
@admin_required
def dashboard():
    """Admin dashboard with summary statistics."""
    stats = get_dashboard_stats(get_backend(), max_workers=current_app.config.get('DASHBOARD_WORKERS', 4))
    return api_success(data=stats)


@admin_bp.route('/analytics')
@login_required
@admin_required
def analytics():
    """
    Analytics report for bookings created in a date range.

    Query params:
        start: First day (YYYY-MM-DD, default 30 days ago)
        end: Last day (YYYY-MM-DD, default today)
    """
    today = get_today()
    end = _date_arg('end', today)
    start = _date_arg('start', end - timedelta(days=DEFAULT_ANALYTICS_DAYS))

    report = get_analytics_report(get_backend(), start, end,
                                  max_workers=current_app.config.get('DASHBOARD_WORKERS', 4))
    return api_success(data=report)


@admin_bp.route('/bookings/<booking_id>/status', methods=['POST'])
@login_required
@admin_required
def booking_status(booking_id):
    """Move a booking to a new status."""
    data = request.get_json(silent=True) or request.form
    new_status = (data.get('status') or '').strip()
    if not new_status:
        raise ValidationError(MESSAGES['field_required'], field='status')

    booking = change_booking_status(get_backend(), booking_id, new_status)
    message = get_message('booking_status_updated', status=MESSAGES[f'status_{new_status}'])
    notify(message, 'success')

    return api_success(
        data={'booking': booking.to_dict(),
              'allowed_transitions': list(STATUS_TRANSITIONS[booking.booking_status])},
        message=message
    )


@admin_bp.route('/audit-logs')
@login_required
@admin_required
def audit_logs():
    """
    Audit trail, newest first.

    Query params:
        user_id, action, table_name, record_id, start_date, end_date (optional)
        limit: Max rows (default 100, capped at 500)
    """
    limit = min(request.args.get('limit', 100, type=int), 500)
    start_date = _date_arg('start_date', None)
    end_date = _date_arg('end_date', None)

    logs = get_audit_logs(
        get_backend(),
        user_id=request.args.get('user_id', '').strip() or None,
        action=request.args.get('action', '').strip().upper() or None,
        table_name=request.args.get('table_name', '').strip() or None,
        record_id=request.args.get('record_id', '').strip() or None,
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
        limit=limit
    )

    return api_success(data={'logs': logs}, count=len(logs))
