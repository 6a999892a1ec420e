"""Configuration module for the Session Attendance service."""
import os
from datetime import timedelta


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"

    # Check-in tokens
    CHECK_IN_TOKEN_TTL_MINUTES = int(os.environ.get('CHECK_IN_TOKEN_TTL_MINUTES', 15))
    CHECK_IN_URL_TEMPLATE = os.environ.get('CHECK_IN_URL_TEMPLATE') or '/attendance/{token}'

    # Check-in window
    DEFAULT_GRACE_MINUTES = int(os.environ.get('DEFAULT_GRACE_MINUTES', 10))
    CHECK_IN_OPENS_BEFORE_MINUTES = 30
    CHECK_IN_DEFAULT_DURATION_MINUTES = 120

    # Attendance views
    ATTENDANCE_POLL_INTERVAL_SECONDS = 5
    ATTENDANCE_CACHE_SECONDS = 5
    REDIS_URL = os.environ.get('REDIS_URL') or None

    # Deposits
    DEFAULT_DEPOSIT_AMOUNT = int(os.environ.get('DEFAULT_DEPOSIT_AMOUNT', 50000))

    # Pagination
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        'sqlite:///session_attendance_dev.db'
    SQLALCHEMY_ECHO = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    # Enhanced security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Stricter limits
    RATELIMIT_DEFAULT = "100 per day, 20 per hour"


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)
    RATELIMIT_ENABLED = False
    REDIS_URL = None


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration by name."""
    return config.get(config_name or os.environ.get('FLASK_ENV', 'default'), DevelopmentConfig)
