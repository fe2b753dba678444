"""Geofenced Attendance Service - Application Factory."""
import logging
import os

from flask import Flask, current_app, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from geoattend.config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Attendance engine
    setup_engine(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Geofenced Attendance Service',
            'version': '1.0.0'
        })

    return app


def get_engine():
    """Attendance engine of the current application."""
    return current_app.extensions['attendance']


def setup_engine(app: Flask) -> None:
    """Build the attendance engine with database-backed collaborators."""
    from geoattend.services.device_binding_service import UserDeviceStore
    from geoattend.services.engine import build_engine
    from geoattend.services.report_service import user_directory
    from geoattend.services.roster_service import CourseRoster

    app.extensions['attendance'] = build_engine(
        app.config,
        device_store=UserDeviceStore(),
        roster=CourseRoster(),
        directory=user_directory
    )


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from geoattend.api.auth import auth_bp
    from geoattend.api.sessions import sessions_bp
    from geoattend.api.admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from geoattend.services.errors import AttendanceError
    from geoattend.utils.helpers import handle_error
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error('Unhandled error: %s', error)
        return handle_error('Server error', 500)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.getLogger('geoattend').setLevel(level)

    if not app.debug and not app.testing:
        if not os.path.exists('logs'):
            os.mkdir('logs')

        file_handler = logging.FileHandler('logs/app.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)
        logging.getLogger('geoattend').addHandler(file_handler)

        app.logger.setLevel(level)
        app.logger.info('Geofenced Attendance Service startup')


def setup_database(app: Flask) -> None:
    """Register models with the metadata."""
    with app.app_context():
        from geoattend.models import User, UserRole, Course  # noqa: F401


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('create-user')
    @click.option('--role', type=click.Choice(['student', 'lecturer', 'admin']), default='student')
    def create_user(role):
        """Create a user interactively."""
        from geoattend.models.user import User, UserRole

        email = click.prompt('Email')
        name = click.prompt('Name')
        password = click.prompt('Password', hide_input=True, confirmation_prompt=True)

        user = User(email=email.lower().strip(), name=name, role=UserRole(role))
        if user.is_student():
            matric_number = click.prompt('Matric number (e.g. 23/208CSC/586)').strip().upper()
            if not User.is_valid_matric_number(matric_number):
                raise click.BadParameter('Matric number must look like 23/208CSC/586')
            user.matric_number = matric_number
            user.department = click.prompt('Department')
        user.set_password(password)

        try:
            user.save()
            click.echo(f'{role.title()} created: {user.email}')
        except Exception as e:
            db.session.rollback()
            click.echo(f'Error creating user: {str(e)}')

