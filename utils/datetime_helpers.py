"""Timezone-aware date/time helpers for the rental application."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context


def get_timezone() -> ZoneInfo:
    """Get the configured timezone."""
    tz_name = 'Europe/Paris'
    if has_app_context():
        tz_name = current_app.config.get('TIMEZONE', tz_name)
    return ZoneInfo(tz_name)


def get_today() -> date:
    """Get today's date in the configured timezone."""
    return datetime.now(get_timezone()).date()


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string, the format stored by the backend."""
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
