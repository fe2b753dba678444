"""Development configuration."""
import os
from datetime import timedelta


class DevelopmentConfig:
    """Development configuration class."""

    # Basic Flask config
    DEBUG = True
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DEV_DATABASE_URL', 'sqlite:///geoattend_dev.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    CHECKIN_RATE_LIMIT = "30 per minute"

    # Attendance rules
    ANOMALY_WINDOW_SECONDS = 300
    ANOMALY_DISTANCE_METERS = 1000
    MAX_GEOFENCE_RADIUS_METERS = 5000
    PASSCODE_MIN_LENGTH = 4
    PASSCODE_MAX_LENGTH = 32

    # Reports
    REPORT_FOLDER = 'uploads'

    # Logging
    LOG_LEVEL = 'DEBUG'
