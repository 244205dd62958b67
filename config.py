"""
Flask application configuration classes.
Provides configuration for development, production, and testing environments.
"""

import os
from datetime import timedelta


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() in ('1', 'true', 'yes')


class Config:
    """Base configuration class with common settings."""

    # Secret key for session management and CSRF protection
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Backend connection (both required)
    # BACKEND_URL: https://<project>.example.co for the hosted backend,
    # sqlite:///instance/locauto.db for the local one
    BACKEND_URL = os.environ.get('BACKEND_URL')
    BACKEND_API_KEY = os.environ.get('BACKEND_API_KEY')
    BACKEND_REQUEST_TIMEOUT = float(os.environ.get('BACKEND_REQUEST_TIMEOUT', 30))

    # Local backend only
    REQUIRE_EMAIL_CONFIRMATION = _env_bool('REQUIRE_EMAIL_CONFIRMATION', True)
    SESSION_TTL_SECONDS = int(os.environ.get('SESSION_TTL_SECONDS', 3600))

    # Optional map provider key; without it the map widget shows a text fallback
    MAPS_API_KEY = os.environ.get('MAPS_API_KEY')

    # Auth retry and timeout policy
    AUTH_RETRY_ATTEMPTS = 2
    AUTH_RETRY_DELAY = 1.0
    PROFILE_RETRY_ATTEMPTS = 3
    PROFILE_RETRY_DELAY = 1.0
    LOGIN_TIMEOUT_SECONDS = 10

    # Admin dashboard fan-out
    DASHBOARD_WORKERS = 4

    # Security settings
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = 3600  # CSRF token expires after 1 hour
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    PERMANENT_SESSION_LIFETIME = timedelta(
        hours=int(os.environ.get('SESSION_TIMEOUT_HOURS', 8))
    )

    # Timezone
    TIMEZONE = 'Europe/Paris'

    # Application settings
    APP_NAME = 'Locauto'
    APP_VERSION = '1.0.0'

    @classmethod
    def validate(cls) -> None:
        """Validate that the backend connection parameters are set."""
        if not cls.BACKEND_URL:
            raise ValueError("BACKEND_URL environment variable must be set")
        if not cls.BACKEND_API_KEY:
            raise ValueError("BACKEND_API_KEY environment variable must be set")
        if not cls.BACKEND_URL.startswith(('sqlite:///', 'http://', 'https://')):
            raise ValueError("BACKEND_URL must start with sqlite:///, http:// or https://")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    TESTING = False
    SESSION_COOKIE_SECURE = False
    WTF_CSRF_SSL_STRICT = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = os.environ.get('SESSION_COOKIE_SECURE', 'true').lower() == 'true'
    WTF_CSRF_SSL_STRICT = SESSION_COOKIE_SECURE

    SECRET_KEY = os.environ.get('SECRET_KEY') or Config.SECRET_KEY

    # URL scheme preference (follows SESSION_COOKIE_SECURE setting)
    PREFERRED_URL_SCHEME = 'https' if SESSION_COOKIE_SECURE else 'http'

    @classmethod
    def validate(cls) -> None:
        """Validate that required production environment variables are set."""
        super().validate()
        secret_key = os.environ.get('SECRET_KEY')
        if not secret_key:
            raise ValueError("SECRET_KEY environment variable must be set in production")
        if len(secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters in production")


class TestConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    DEBUG = True
    WTF_CSRF_ENABLED = False  # Disable CSRF for tests
    BACKEND_URL = 'sqlite:///:memory:'
    BACKEND_API_KEY = 'test-api-key'
    REQUIRE_EMAIL_CONFIRMATION = True
    AUTH_RETRY_DELAY = 0
    PROFILE_RETRY_DELAY = 0
    MAPS_API_KEY = None
    SECRET_KEY = 'test-secret-key'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'test': TestConfig,
    'default': DevelopmentConfig
}
