"""Authentication service for issuing access tokens."""
from typing import Optional, Tuple

from flask_jwt_extended import create_access_token

from geoattend import db
from geoattend.models.user import User
from geoattend.utils.helpers import utcnow
from geoattend.utils.validators import Validator


class AuthService:
    @staticmethod
    def login(email: str, password: str) -> Tuple[Optional[dict], Optional[str]]:
        """Authenticate user and return an access token.

        Logging in never touches the user's bound device: device changes
        go through the admin rebind endpoint.
        """
        if not email or not password:
            return None, "Email and password are required"

        if not Validator.validate_email(email):
            return None, "Invalid email format"

        user = User.query.filter_by(email=email.lower().strip()).first()

        if not user or not user.check_password(password):
            return None, "Invalid email or password"

        if not user.is_active:
            return None, "Account is deactivated"

        user.last_login = utcnow()
        db.session.commit()

        access_token = create_access_token(
            identity=str(user.id),
            additional_claims={'role': user.role.value}
        )

        return {
            "access_token": access_token,
            "user": user.to_dict()
        }, None

    @staticmethod
    def get_user_by_id(user_id) -> Optional[User]:
        """Get user by ID."""
        try:
            return User.get_by_id(int(user_id))
        except (TypeError, ValueError):
            return None
