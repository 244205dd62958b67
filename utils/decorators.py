"""
Route decorators for authentication and authorization.
Provides the admin gate for back-office routes.
"""

from functools import wraps
from flask import abort
from flask_login import login_required, current_user


def admin_required(func):
    """
    Decorator to require the admin role for a route.

    Usage:
        @admin_bp.route('/dashboard')
        @login_required
        @admin_required
        def dashboard():
            ...

    Non-admin users get a 403 without any data being fetched.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated or not current_user.is_admin:
            abort(403)

        return func(*args, **kwargs)
    return wrapper


# Re-export login_required for convenience
__all__ = ['login_required', 'admin_required']
