"""Course roster collaborators used for auto-enrollment."""
import logging
from typing import Dict, Set

logger = logging.getLogger(__name__)


class InMemoryRoster:
    """Course id -> enrolled student ids, kept in process memory."""

    def __init__(self, courses: Dict[str, Set[str]] = None):
        self.courses: Dict[str, Set[str]] = {k: set(v) for k, v in (courses or {}).items()}

    def is_enrolled(self, course_id: str, student_id: str) -> bool:
        return student_id in self.courses.get(course_id, set())

    def notify_auto_enroll(self, course_id: str, student_id: str) -> None:
        self.courses.setdefault(course_id, set()).add(student_id)


class CourseRoster:
    """Roster backed by the ``Course`` model."""

    def is_enrolled(self, course_id: str, student_id: str) -> bool:
        from geoattend.models.course import Course

        course = Course.query.filter_by(course_id=course_id).first()
        if course is None:
            return False
        return course.has_student(int(student_id))

    def notify_auto_enroll(self, course_id: str, student_id: str) -> None:
        from geoattend import db
        from geoattend.models.course import Course
        from geoattend.models.user import User

        course = Course.query.filter_by(course_id=course_id).first()
        if course is None:
            raise LookupError(f'Course not found: {course_id}')
        student = User.get_by_id(int(student_id))
        if student is None:
            raise LookupError(f'Student not found: {student_id}')

        if not course.has_student(student.id):
            try:
                course.students.append(student)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            logger.info('Enrolled student %s in course %s', student_id, course_id)
