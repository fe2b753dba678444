"""Course model holding the enrollment roster."""
from geoattend import db
from geoattend.models.base import BaseModel

course_students = db.Table(
    'course_students',
    db.Column('course_id', db.Integer, db.ForeignKey('courses.id'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('users.id'), primary_key=True)
)


class Course(BaseModel):
    """Course with its enrolled students."""

    __tablename__ = 'courses'

    course_id = db.Column(db.String(50), unique=True, nullable=False, index=True)  # CSC201
    name = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(100), nullable=False)
    lecturer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    # Relationships
    lecturer = db.relationship('User', foreign_keys=[lecturer_id], backref='courses_taught')
    students = db.relationship('User', secondary=course_students, lazy='select', backref='courses')

    def has_student(self, user_id: int) -> bool:
        return any(student.id == user_id for student in self.students)

    def __repr__(self):
        return f'<Course {self.course_id}>'
