# extensions.py
"""
Flask extensions initialization.
This file initializes all Flask extensions to avoid circular imports.
Extensions are initialized here and then bound to the app in the application factory.
"""

import logging

from flask import jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect
from flask_login import LoginManager
from sqlalchemy import text

from club_attendance.services.token_codec import AttendanceTokenCodec

# Initialize extensions without app binding
db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
login_manager = LoginManager()
token_codec = AttendanceTokenCodec()

logger = logging.getLogger(__name__)


def check_database_health():
    """
    Check if the database connection is healthy.
    This function requires an active Flask application context.

    Returns:
        tuple: (bool, str) indicating health status and message
    """
    try:
        with db.engine.connect() as connection:
            connection.execute(text("SELECT 1")).fetchone()
        return True, "Database connection is healthy"

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False, f"Database connection failed: {e.__class__.__name__}"


def init_extensions(app):
    """
    Initialize all extensions with proper order and configuration.

    Args:
        app: Flask application instance
    """
    # Step 1: Initialize database first (required by other extensions)
    db.init_app(app)
    migrate.init_app(app, db)

    # Step 2: Initialize Flask-Login (requires SECRET_KEY from config)
    login_manager.init_app(app)
    login_manager.session_protection = 'basic'

    # Step 3: Initialize CSRF protection (after login manager)
    csrf.init_app(app)

    # Step 4: Bind the attendance token codec to its secret
    token_codec.init_app(app)

    # Step 5: Define user_loader callback (requires db and User model)
    @login_manager.user_loader
    def load_user(user_id):
        # Import here to avoid circular imports
        from club_attendance.models import User

        return db.session.get(User, int(user_id))

    # API clients get JSON instead of a login redirect
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'message': 'Authentication required'}), 401

    app.logger.info("Extensions initialized successfully in correct order")
