"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .course import Course, course_students

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'Course', 'course_students'
]
