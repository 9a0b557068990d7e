import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

# Only used when ATTENDANCE_TOKEN_SECRET is unset outside production.
DEV_TOKEN_SECRET = 'dev-attendance-secret-change-me'


class Config:
    """Base configuration class with all settings as static attributes."""

    # Core configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key-here'
    DEBUG = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    VERSION = '1.0.0'

    # Session cookie settings
    PERMANENT_SESSION_LIFETIME = timedelta(hours=2)
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_REFRESH_EACH_REQUEST = True

    # Remember me settings
    REMEMBER_COOKIE_DURATION = timedelta(days=7)
    REMEMBER_COOKIE_SECURE = True
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'

    # Database configuration
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///club_attendance.db'

    # Disable track modifications for performance
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_pre_ping": True,  # Check connection health before use
    }

    # Logging
    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(BASE_DIR, 'logs')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_TO_FILE = True

    # Attendance tokens (QR)
    ATTENDANCE_TOKEN_SECRET = os.environ.get('ATTENDANCE_TOKEN_SECRET')
    ATTENDANCE_TOKEN_TTL = int(os.environ.get('ATTENDANCE_TOKEN_TTL', 30))  # seconds

    # Attendance sessions
    ATTENDANCE_SESSION_TTL = int(os.environ.get('ATTENDANCE_SESSION_TTL', 180))  # seconds
    ATTENDANCE_SESSION_TTL_MAX = 3600
    ATTENDANCE_ROTATION_INTERVAL = 25  # seconds between client token refreshes
    ATTENDANCE_LATE_GRACE_MINUTES = 5  # after event start
    ATTENDANCE_CODE_ENABLED = True

    # QR rendering
    QR_BOX_SIZE = 10
    QR_BORDER = 4

    # Site settings
    SITE_NAME = 'Club Attendance'


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SQLALCHEMY_ECHO = os.environ.get('SQL_DEBUG', 'false').lower() == 'true'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False

    # Required settings, checked by validate_production_config at startup
    REQUIRED_SETTINGS = ('SECRET_KEY', 'SQLALCHEMY_DATABASE_URI', 'ATTENDANCE_TOKEN_SECRET')

    SECRET_KEY = os.environ.get('SECRET_KEY')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_recycle": 3600,
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
    }


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    WTF_CSRF_ENABLED = False
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    LOG_TO_FILE = False

    # Deterministic secret for token tests
    ATTENDANCE_TOKEN_SECRET = 'test-attendance-secret'


# Configuration dictionary
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def validate_production_config(app):
    """
    Refuse to start a production app with missing secrets.

    Args:
        app: Flask application instance

    Raises:
        ValueError: if a required setting is empty
    """
    missing = [key for key in ProductionConfig.REQUIRED_SETTINGS if not app.config.get(key)]
    if missing:
        raise ValueError(f"Missing required production settings: {', '.join(missing)}")
