"""Custom decorators for authorization."""
from functools import wraps

from flask import g
from flask_jwt_extended import get_jwt_identity

from geoattend.models.user import User, UserRole
from geoattend.utils.helpers import error_response


def current_user() -> User:
    """User loaded by the role decorators for this request."""
    return g.current_user


def _role_required(role: UserRole, label: str):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            current_user_id = get_jwt_identity()
            user = User.get_by_id(int(current_user_id))

            if not user or not user.is_active:
                return error_response("User not found", 404)

            if user.role != role:
                return error_response(f"{label} access required", 403)

            g.current_user = user
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def student_required(f):
    """Decorator to require student role."""
    return _role_required(UserRole.STUDENT, "Student")(f)


def lecturer_required(f):
    """Decorator to require lecturer role."""
    return _role_required(UserRole.LECTURER, "Lecturer")(f)


def admin_required(f):
    """Decorator to require admin role."""
    return _role_required(UserRole.ADMIN, "Admin")(f)
