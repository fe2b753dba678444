"""Shared fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from flask_jwt_extended import create_access_token

from geoattend import create_app, db
from geoattend.models.course import Course
from geoattend.models.user import User, UserRole
from geoattend.services.engine import build_engine
from geoattend.services.geo_service import Coordinates
from geoattend.services.roster_service import InMemoryRoster
from geoattend.services.session_registry import Geofence, TimeWindow

# Lagos, radius 45m
CENTER = Coordinates(6.5244, 3.3792)
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for engine tests."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def roster():
    return InMemoryRoster({'CSC201': {'enrolled-student'}})


@pytest.fixture
def engine(clock, roster):
    """Engine with in-memory collaborators and a fake clock."""
    return build_engine(roster=roster, clock=clock)


@pytest.fixture
def make_session(engine, clock):
    """Create a session starting now and lasting an hour."""
    def _make(passcode='LAG-101', center=CENTER, radius=45.0, owner='lecturer-1',
              course_id='CSC201', minutes=60):
        return engine.registry.create(
            owner=owner,
            geofence=Geofence(center, radius),
            passcode=passcode,
            window=TimeWindow(clock.now, clock.now + timedelta(minutes=minutes)),
            course_id=course_id,
            course_name='Data Structures',
            department='Computer Science'
        )
    return _make


# =================== FLASK APP ===================

@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def _user(email, name, role, password='password123', **kwargs):
    user = User(email=email, name=name, role=role, **kwargs)
    user.set_password(password)
    return user.save()


@pytest.fixture
def lecturer(app):
    return _user('lecturer@example.com', 'Dr. Ada Obi', UserRole.LECTURER)


@pytest.fixture
def other_lecturer(app):
    return _user('lecturer2@example.com', 'Dr. Tunde Bello', UserRole.LECTURER)


@pytest.fixture
def student(app):
    return _user(
        'student@example.com', 'Chidi Okeke', UserRole.STUDENT,
        matric_number='23/208CSC/586', department='Computer Science'
    )


@pytest.fixture
def second_student(app):
    return _user(
        'student2@example.com', 'Amaka Eze', UserRole.STUDENT,
        matric_number='23/208CSC/587', department='Computer Science'
    )


@pytest.fixture
def admin(app):
    return _user('admin@example.com', 'Admin', UserRole.ADMIN)


@pytest.fixture
def course(app, lecturer):
    course = Course(course_id='CSC201', name='Data Structures',
                    department='Computer Science', lecturer_id=lecturer.id)
    return course.save()


def auth_headers(user, device_id=None):
    token = create_access_token(identity=str(user.id), additional_claims={'role': user.role.value})
    headers = {'Authorization': f'Bearer {token}'}
    if device_id:
        headers['X-Device-Id'] = device_id
    return headers


def session_payload(passcode='LAG-101', latitude=6.5244, longitude=3.3792, radius=45,
                    course_id='CSC201', start=None, end=None):
    now = datetime.now(timezone.utc)
    start = start or now - timedelta(minutes=1)
    end = end or now + timedelta(hours=1)
    return {
        'course_id': course_id,
        'course_name': 'Data Structures',
        'department': 'Computer Science',
        'location': {'latitude': latitude, 'longitude': longitude},
        'radius': radius,
        'passcode': passcode,
        'start_time': start.isoformat(),
        'end_time': end.isoformat()
    }
