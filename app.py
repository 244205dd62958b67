"""
Locauto - Vehicle Rental Service
Flask application factory and initialization
"""

import os
import click
import logging
from flask import Flask, g
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Import configuration
from config import config

# Import extensions
from extensions import login_manager, csrf

# Import backend factory
from gateway import create_backend


def create_app(config_name=None):
    """
    Application factory for Flask app.

    Args:
        config_name: Configuration name ('development', 'production', 'test')

    Returns:
        Flask application instance

    Raises:
        ValueError: if the backend connection parameters are missing
    """
    # Determine config
    if config_name is None:
        config_name = os.environ.get('LOCAUTO_ENV', 'development')

    # Validate required settings before anything else
    config[config_name].validate()

    # Create Flask app
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])

    # Configure logging
    configure_logging(app)

    # Initialize extensions
    initialize_extensions(app)

    # Connect the backend
    initialize_backend(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_cli_commands(app)

    # Register teardown handlers
    register_teardown_handlers(app)

    return app


def initialize_extensions(app):
    """Initialize Flask extensions."""
    # Initialize Flask-Login
    login_manager.init_app(app)
    # Initialize CSRF Protection
    csrf.init_app(app)


def initialize_backend(app):
    """Create the shared backend and start the audit trail subscriber."""
    from utils.audit import register_audit_subscriber

    backend = create_backend(
        app.config['BACKEND_URL'],
        app.config['BACKEND_API_KEY'],
        timeout=app.config['BACKEND_REQUEST_TIMEOUT'],
        require_email_confirmation=app.config['REQUIRE_EMAIL_CONFIRMATION'],
        session_ttl=app.config['SESSION_TTL_SECONDS'],
    )
    app.extensions['backend'] = backend
    register_audit_subscriber(backend)
    app.logger.info(f'Backend connected: {type(backend).__name__}')


def register_blueprints(app):
    """Register Flask blueprints."""
    # Import blueprints
    from blueprints.auth.routes import auth_bp
    from blueprints.booking.routes import booking_bp
    from blueprints.admin.routes import admin_bp
    from blueprints.api.routes import api_bp

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(booking_bp, url_prefix='/booking')
    app.register_blueprint(admin_bp, url_prefix='/admin')
    app.register_blueprint(api_bp, url_prefix='/api')

    # Set default route
    @app.route('/')
    def index():
        """Service entry point."""
        from flask_login import current_user
        from utils.api_response import api_success

        return api_success(data={
            'app': app.config.get('APP_NAME'),
            'version': app.config.get('APP_VERSION'),
            'authenticated': current_user.is_authenticated,
        })


def register_error_handlers(app):
    """Register error handlers."""
    from gateway import GatewayError
    from utils.api_response import api_error
    from utils.errors import RentalError
    from utils.messages import MESSAGES

    @app.errorhandler(RentalError)
    def rental_error(error):
        """Handle domain errors raised by services."""
        return api_error(error.message, status=error.status_code, **error.extra())

    @app.errorhandler(GatewayError)
    def gateway_error(error):
        """Backend failures not handled by a service."""
        app.logger.error(f'Backend error: {error.message} ({error.code})')
        return api_error(MESSAGES['network_error'], status=503)

    @app.errorhandler(404)
    def not_found_error(error):
        """Handle 404 errors."""
        return api_error(MESSAGES['not_found'], status=404)

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        app.logger.error(f'Internal error: {error}')
        return api_error(MESSAGES['server_error'], status=500)

    @app.errorhandler(403)
    def forbidden_error(error):
        """Handle 403 errors."""
        return api_error(MESSAGES['access_denied'], status=403)


def register_cli_commands(app):
    """Register Flask CLI commands."""

    @app.cli.command('init-db')
    @click.option('--no-seed', is_flag=True, help='Create the schema without demo data.')
    def init_db_command(no_seed):
        """Initialize the local backend with schema and seed data."""
        from gateway.local import LocalBackend

        backend = app.extensions['backend']
        if not isinstance(backend, LocalBackend):
            click.echo('init-db only applies to the local (sqlite) backend.', err=True)
            raise SystemExit(1)

        click.echo('Initializing database...')
        backend.reset(seed=not no_seed)
        click.echo('Database initialized successfully!')

    @app.cli.command('create-admin')
    @click.argument('username')
    @click.argument('email')
    @click.password_option()
    def create_admin_command(username, email, password):
        """Create a confirmed administrator account (local backend)."""
        from gateway import GatewayError, Query
        from gateway.local import LocalBackend

        backend = app.extensions['backend']
        if not isinstance(backend, LocalBackend):
            click.echo('create-admin only applies to the local (sqlite) backend.', err=True)
            raise SystemExit(1)

        email = email.strip().lower()
        try:
            auth = backend.auth({})
            user = auth.sign_up(email, password, {'username': username, 'full_name': username})
            auth.verify_email(backend.confirmation_token(email))
            backend.table('profiles').update({'role': 'admin'}, Query().eq('user_id', user.id))
            click.echo(f'Administrator created successfully! ID: {user.id}')
        except GatewayError as e:
            click.echo(f'Error creating administrator: {e.message}', err=True)


def register_teardown_handlers(app):
    """Register teardown handlers."""

    @app.teardown_appcontext
    def teardown_session_manager(error):
        """Detach the request's session manager from the auth client."""
        manager = g.pop('session_manager', None)
        if manager is not None:
            manager.close()


def configure_logging(app):
    """Configure application logging."""
    if not app.debug and not app.testing:
        # Production logging
        if not os.path.exists('logs'):
            os.mkdir('logs')

        file_handler = logging.FileHandler('logs/rental.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s %(name)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        # Module loggers (gateway, services) go to the same file
        logging.getLogger().addHandler(file_handler)
        logging.getLogger().setLevel(logging.INFO)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Locauto startup')
    else:
        # Development logging
        app.logger.setLevel(logging.DEBUG)


# Create application instance for development server
if __name__ == '__main__':
    app = create_app()
    # host='0.0.0.0' allows access from other devices on the network
    app.run(host='0.0.0.0', debug=True)
