"""Testing configuration."""
from datetime import timedelta


class TestingConfig:
    """Testing configuration class."""

    # Basic Flask config
    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret-key-of-sufficient-length'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    CORS_ORIGINS = ["*"]

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    CHECKIN_RATE_LIMIT = "1000 per minute"

    # Attendance rules
    ANOMALY_WINDOW_SECONDS = 300
    ANOMALY_DISTANCE_METERS = 1000
    MAX_GEOFENCE_RADIUS_METERS = 5000
    PASSCODE_MIN_LENGTH = 4
    PASSCODE_MAX_LENGTH = 32

    # Reports
    REPORT_FOLDER = '/tmp/geoattend_test_reports'

    # Logging
    LOG_LEVEL = 'WARNING'
