"""Admin services package."""

from blueprints.admin.services.analytics_service import (  # noqa: F401
    STATUS_TRANSITIONS,
    get_dashboard_stats,
    get_analytics_report,
    change_booking_status,
)
