# __init__.py
"""
Application factory for the club attendance service.
This module creates and configures the Flask application using the application factory pattern.
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from club_attendance.config import config_by_name, validate_production_config
from club_attendance.extensions import init_extensions, check_database_health, csrf, db

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(threadName)s : %(message)s'

# Named service loggers that should follow the app's level and handlers
SERVICE_LOGGERS = (
    'attendance_session_service',
    'check_in_service',
    'check_in',
    'qr_code_service',
    'auth_service',
    'token_codec',
)


def setup_logging(app):
    """
    Configure structured logging for the application.

    Args:
        app: Flask application instance
    """
    log_format = logging.Formatter(LOG_FORMAT)
    level = logging.DEBUG if app.debug else getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(),
                                                    logging.INFO)

    app.logger.setLevel(level)
    for name in SERVICE_LOGGERS:
        logging.getLogger(name).setLevel(level)

    # Under pytest, records propagate to the root logger for capture
    if app.testing:
        return

    handlers = []

    # File handler with rotation
    if app.config.get('LOG_TO_FILE', True):
        log_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, 'logs')
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'app.log'),
            maxBytes=1024 * 1024 * 10,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(log_format)
        file_handler.setLevel(logging.INFO)
        handlers.append(file_handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_format)
    console_handler.setLevel(level)
    handlers.append(console_handler)

    for handler in handlers:
        app.logger.addHandler(handler)

    for name in SERVICE_LOGGERS:
        service_logger = logging.getLogger(name)
        service_logger.handlers = list(handlers)
        service_logger.propagate = False

    # Forcefully suppress SQLAlchemy logs
    sa_logger = logging.getLogger('sqlalchemy.engine')
    sa_logger.setLevel(logging.WARNING)
    sa_logger.propagate = False


def register_blueprints(app):
    """
    Register all application blueprints.

    Args:
        app: Flask application instance
    """
    # Import blueprints here to avoid circular imports
    from .controllers.auth import auth_bp
    from .controllers.check_in import check_in_bp

    # JSON API used by mobile and SPA clients
    csrf.exempt(auth_bp)
    csrf.exempt(check_in_bp)

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(check_in_bp, url_prefix='/attendance')

    app.logger.info("All blueprints registered successfully")


def register_error_handlers(app):
    """
    Register global error handlers.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({'success': False, 'error': e.name, 'message': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        app.logger.error(f"Unhandled exception: {str(e)}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'An unexpected error occurred',
            'message': str(e) if app.debug else 'Internal server error'
        }), 500


def register_shell_context(app):
    """
    Register shell context for flask shell command.

    Args:
        app: Flask application instance
    """

    @app.shell_context_processor
    def make_shell_context():
        from club_attendance.models import (
            User, Club, Membership, Event, AttendanceSession, AttendanceRecord
        )
        from club_attendance.extensions import token_codec
        return {
            'db': db,
            'User': User,
            'Club': Club,
            'Membership': Membership,
            'Event': Event,
            'AttendanceSession': AttendanceSession,
            'AttendanceRecord': AttendanceRecord,
            'token_codec': token_codec
        }


def register_health_checks(app):
    """
    Register health check endpoints.

    Args:
        app: Flask application instance
    """

    @app.route('/health')
    def health_check():
        """Basic health check endpoint."""
        return jsonify({
            'status': 'ok',
            'timestamp': datetime.now().isoformat(),
            'version': app.config.get('VERSION', '1.0.0')
        })

    @app.route('/health/database')
    def database_health_check():
        """Database health check endpoint."""
        healthy, message = check_database_health()

        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'message': message,
            'timestamp': datetime.now().isoformat()
        }), 200 if healthy else 503


def create_app(config_name=None, overrides=None):
    """
    Application factory function.

    Args:
        config_name (str): Configuration name ('development', 'production', 'testing')
        overrides (dict): Settings applied on top of the named configuration

    Returns:
        Flask: Configured Flask application instance
    """
    # Load environment variables
    load_dotenv()

    # Create Flask application
    app = Flask(__name__)

    # Load configuration
    config_name = config_name or os.environ.get('FLASK_ENV', 'development')
    app.config.from_object(config_by_name[config_name])
    if overrides:
        app.config.from_mapping(overrides)

    if config_name == 'production':
        validate_production_config(app)

    # Setup logging first
    setup_logging(app)
    app.logger.info(f"Starting application with config: {config_name}")

    # Initialize extensions
    init_extensions(app)

    # Register components
    register_blueprints(app)
    register_error_handlers(app)
    register_shell_context(app)
    register_health_checks(app)

    # Register CLI commands
    from .cli import register_cli_commands
    register_cli_commands(app)

    app.logger.info("Application factory completed successfully")

    return app
