"""User model for authentication and device binding."""
import re
from enum import Enum

from werkzeug.security import generate_password_hash, check_password_hash

from geoattend import db
from geoattend.models.base import BaseModel

MATRIC_NUMBER_PATTERN = re.compile(r'^\d{2}/[A-Z0-9]+/\d{3,}$')


class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'student'
    LECTURER = 'lecturer'
    ADMIN = 'admin'


class User(BaseModel):
    """User model for all system users."""

    __tablename__ = 'users'

    # Basic Information
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)

    # Student details
    matric_number = db.Column(db.String(50), unique=True, nullable=True, index=True)  # 23/208CSC/586
    department = db.Column(db.String(100), nullable=True)

    # Bound device, unset until the first check-in
    device_id = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    @staticmethod
    def is_valid_matric_number(value: str) -> bool:
        return bool(value) and bool(MATRIC_NUMBER_PATTERN.match(value))

    def set_password(self, password: str) -> None:
        """Set user password with hashing."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Check if provided password matches user's password."""
        return check_password_hash(self.password_hash, password)

    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    def to_dict(self, exclude: list = None) -> dict:
        """Public profile; never includes the password hash."""
        return super().to_dict(exclude=list(exclude or []) + ['password_hash'])

    def __repr__(self) -> str:
        return f'<User {self.email}>'
