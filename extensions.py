"""
Flask extensions initialization.
Extensions are initialized here and then initialized with the app in app.py.
"""

from flask import current_app, g, session
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect

# Initialize Flask-Login
login_manager = LoginManager()

# Initialize CSRF Protection
csrf = CSRFProtect()

# Configure Login Manager
login_manager.login_view = 'auth.login'
login_manager.login_message = 'Veuillez vous connecter pour accéder à cette page'
login_manager.login_message_category = 'warning'


def get_backend():
    """Backend shared by the whole process."""
    return current_app.extensions['backend']


def get_session_manager():
    """
    Session manager for the current request, bound to the user's Flask session.
    Created and initialized once per request.
    """
    if 'session_manager' not in g:
        from blueprints.auth.services.session_manager import SessionManager

        manager = SessionManager.from_config(get_backend(), session, current_app.config)
        manager.initialize()
        g.session_manager = manager
    return g.session_manager


@login_manager.user_loader
def load_user(user_id):
    """
    Load user by ID for Flask-Login.

    Args:
        user_id: The auth user ID as a string

    Returns:
        UserProfile restored from the backend session, or None
    """
    user = get_session_manager().user
    if user is not None and user.get_id() == user_id:
        return user
    return None


@login_manager.unauthorized_handler
def unauthorized():
    """JSON 401 instead of a redirect to the login page."""
    from utils.api_response import api_error
    from utils.messages import MESSAGES

    return api_error(MESSAGES['not_authenticated'], status=401)
