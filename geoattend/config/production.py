"""Production configuration."""
import os
from datetime import timedelta


class ProductionConfig:
    """Production configuration class."""

    # Basic Flask config
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)

    # CORS
    CORS_ORIGINS = [o for o in os.getenv('CORS_ORIGINS', '*').split(',') if o]

    # Rate Limiting
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    CHECKIN_RATE_LIMIT = "10 per minute"

    # Attendance rules
    ANOMALY_WINDOW_SECONDS = int(os.getenv('ANOMALY_WINDOW_SECONDS', 300))
    ANOMALY_DISTANCE_METERS = float(os.getenv('ANOMALY_DISTANCE_METERS', 1000))
    MAX_GEOFENCE_RADIUS_METERS = 2000
    PASSCODE_MIN_LENGTH = 6
    PASSCODE_MAX_LENGTH = 32

    # Reports
    REPORT_FOLDER = '/app/uploads'

    # Logging
    LOG_LEVEL = 'INFO'
