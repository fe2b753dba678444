"""Tests for the check-in decision procedure."""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from geoattend.services.errors import (
    AlreadyMarked, AttendanceError, DeviceMismatch, OutsideGeofence,
    SessionClosed, SessionNotFound, SessionNotFoundOrExpired, ValidationError
)
from geoattend.services.attendance_service import CheckInRequest, MANUAL_REASON
from geoattend.services.geo_service import Coordinates, distance_meters
from geoattend.services.session_registry import AttendanceStatus

from conftest import CENTER, T0

INSIDE = Coordinates(6.5245, 3.3792)   # about 11m from CENTER
OUTSIDE = Coordinates(6.5300, 3.3792)  # about 620m from CENTER
FAR_CENTER = Coordinates(6.5244 + 2000 / 111195, 3.3792)


def checkin(student='s1', device='phone-a', coords=INSIDE, passcode='LAG-101', at=None):
    return CheckInRequest(passcode=passcode, student_id=student, device_id=device,
                          coordinates=coords, request_time=at)


def test_checkin_inside_geofence_is_accepted(engine, make_session):
    session_id = make_session()
    outcome = engine.validator.submit(checkin())

    assert outcome.session_id == session_id
    assert outcome.record.status == AttendanceStatus.VALID
    assert outcome.record.reason is None
    assert 11.0 < outcome.distance < 11.3

    attendees = engine.registry.get(session_id).attendees
    assert [r.student_id for r in attendees] == ['s1']
    assert attendees[0].device_id == 'phone-a'


def test_checkin_outside_geofence_reports_distance(engine, make_session):
    session_id = make_session()
    with pytest.raises(OutsideGeofence) as exc:
        engine.validator.submit(checkin(coords=OUTSIDE))

    assert 615 < exc.value.distance < 630
    assert exc.value.to_dict()['distance'] == round(exc.value.distance, 2)
    assert engine.registry.get(session_id).attendees == []


def test_geofence_boundary_is_inclusive(engine, make_session):
    exact = distance_meters(INSIDE, CENTER)
    make_session(radius=exact)
    assert engine.validator.submit(checkin()).record.status == AttendanceStatus.VALID


def test_just_past_the_boundary_is_rejected(engine, make_session):
    exact = distance_meters(INSIDE, CENTER)
    make_session(radius=exact - 1e-6)
    with pytest.raises(OutsideGeofence):
        engine.validator.submit(checkin())


def test_retry_after_success_is_already_marked(engine, make_session):
    session_id = make_session()
    engine.validator.submit(checkin())
    with pytest.raises(AlreadyMarked):
        engine.validator.submit(checkin())
    assert len(engine.registry.get(session_id).attendees) == 1


def test_device_mismatch_is_a_hard_stop(engine, make_session):
    make_session(passcode='FIRST')
    second = make_session(passcode='SECOND')

    engine.validator.submit(checkin(passcode='FIRST', device='phone-a'))
    with pytest.raises(DeviceMismatch):
        engine.validator.submit(checkin(passcode='SECOND', device='phone-b'))

    assert engine.registry.get(second).attendees == []
    assert engine.devices.binding('s1') == 'phone-a'


def test_device_check_runs_before_geofence_check(engine, make_session):
    make_session()
    engine.devices.check_and_bind('s1', 'phone-a')
    with pytest.raises(DeviceMismatch):
        engine.validator.submit(checkin(device='phone-b', coords=OUTSIDE))


def test_first_checkin_binds_device(engine, make_session):
    make_session()
    engine.validator.submit(checkin(device='phone-z'))
    assert engine.devices.binding('s1') == 'phone-z'


def test_request_after_end_time_is_expired(engine, make_session, clock):
    make_session(minutes=60)
    with pytest.raises(SessionNotFoundOrExpired):
        engine.validator.submit(checkin(at=clock.now + timedelta(minutes=61)))


def test_request_before_start_time_is_rejected(engine, make_session, clock):
    make_session()
    with pytest.raises(SessionNotFoundOrExpired):
        engine.validator.submit(checkin(at=clock.now - timedelta(minutes=1)))


def test_stale_request_time_cannot_commit_after_the_session_ended(engine, make_session, clock):
    session_id = make_session(minutes=60)
    clock.advance(hours=2)

    with pytest.raises(SessionNotFoundOrExpired):
        engine.validator.submit(checkin(at=T0 + timedelta(minutes=10)))
    assert engine.registry.get(session_id).attendees == []


def test_naive_request_time_is_read_as_utc(engine, make_session, clock):
    make_session()
    at = clock.now + timedelta(minutes=5)

    outcome = engine.validator.submit(checkin(at=at.replace(tzinfo=None)))
    assert outcome.record.timestamp == at


def test_unknown_or_closed_passcode_is_rejected(engine, make_session):
    session_id = make_session()
    with pytest.raises(SessionNotFoundOrExpired):
        engine.validator.submit(checkin(passcode='NOPE'))

    engine.registry.close(session_id, 'lecturer-1')
    with pytest.raises(SessionNotFoundOrExpired):
        engine.validator.submit(checkin())


def test_invalid_coordinates_are_a_validation_error(engine, make_session):
    make_session()
    with pytest.raises(ValidationError):
        engine.validator.submit(checkin(coords=Coordinates(120, 3.3)))


def test_rejections_are_distinguishable(engine, make_session):
    make_session()
    codes = set()
    for request in (checkin(passcode='NOPE'), checkin(coords=OUTSIDE)):
        with pytest.raises(AttendanceError) as exc:
            engine.validator.submit(request)
        codes.add(exc.value.code)
    assert codes == {'session_not_found_or_expired', 'outside_geofence'}


def test_rapid_location_change_is_flagged_not_blocked(engine, make_session, clock):
    make_session(passcode='NEAR1')
    far = make_session(passcode='FAR01', center=FAR_CENTER)

    engine.validator.submit(checkin(passcode='NEAR1', coords=CENTER))
    clock.advance(minutes=2)
    outcome = engine.validator.submit(checkin(passcode='FAR01', coords=FAR_CENTER))

    assert outcome.flagged
    assert outcome.record.reason == 'rapid location change'
    stored = engine.registry.get(far).attendees[0]
    assert stored.status == AttendanceStatus.FLAGGED


def test_slow_travel_is_not_flagged(engine, make_session, clock):
    make_session(passcode='NEAR1')
    make_session(passcode='FAR01', center=FAR_CENTER)

    engine.validator.submit(checkin(passcode='NEAR1', coords=CENTER))
    clock.advance(minutes=10)
    outcome = engine.validator.submit(checkin(passcode='FAR01', coords=FAR_CENTER))

    assert outcome.record.status == AttendanceStatus.VALID


def test_unenrolled_student_is_auto_enrolled(engine, make_session, roster):
    make_session()
    outcome = engine.validator.submit(checkin(student='newcomer'))
    assert outcome.enrolled
    assert roster.is_enrolled('CSC201', 'newcomer')


def test_enrolled_student_is_not_re_enrolled(engine, make_session):
    make_session()
    assert not engine.validator.submit(checkin(student='enrolled-student')).enrolled


def test_roster_failure_does_not_undo_checkin(engine, make_session):
    class BrokenRoster:
        def is_enrolled(self, course_id, student_id):
            return False

        def notify_auto_enroll(self, course_id, student_id):
            raise ConnectionError('roster unavailable')

    engine.validator.roster = BrokenRoster()
    session_id = make_session()

    outcome = engine.validator.submit(checkin())
    assert not outcome.enrolled
    assert len(engine.registry.get(session_id).attendees) == 1


def test_manual_attendance(engine, make_session):
    session_id = make_session()
    outcome = engine.validator.mark_manual(session_id, 'lecturer-1', 's9')

    assert outcome.record.device_id == 'manual'
    assert outcome.record.coordinates is None
    assert outcome.record.reason == MANUAL_REASON
    assert outcome.record.status == AttendanceStatus.VALID

    with pytest.raises(AlreadyMarked):
        engine.validator.mark_manual(session_id, 'lecturer-1', 's9')
    with pytest.raises(SessionNotFound):
        engine.validator.mark_manual(session_id, 'lecturer-2', 's10')


def test_manual_attendance_blocked_after_report(engine, make_session):
    session_id = make_session()
    engine.registry.close(session_id, 'lecturer-1')
    engine.registry.mark_report_generated(session_id)
    with pytest.raises(SessionClosed):
        engine.validator.mark_manual(session_id, 'lecturer-1', 's9', reason='Late arrival')


def test_concurrent_retries_commit_exactly_once(engine, make_session):
    session_id = make_session()
    attempts = 24
    barrier = threading.Barrier(attempts)

    def attempt(_):
        barrier.wait()
        try:
            engine.validator.submit(checkin())
            return 'ok'
        except AlreadyMarked:
            return 'already'

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        results = list(pool.map(attempt, range(attempts)))

    assert results.count('ok') == 1
    assert results.count('already') == attempts - 1
    assert len(engine.registry.get(session_id).attendees) == 1


def test_concurrent_distinct_students_all_commit(engine, make_session):
    session_id = make_session()
    students = [f'student-{i}' for i in range(32)]
    barrier = threading.Barrier(len(students))

    def attempt(student):
        barrier.wait()
        return engine.validator.submit(checkin(student=student, device=f'dev-{student}'))

    with ThreadPoolExecutor(max_workers=len(students)) as pool:
        outcomes = list(pool.map(attempt, students))

    assert len(outcomes) == len(students)
    attendees = engine.registry.get(session_id).attendees
    assert sorted(r.student_id for r in attendees) == sorted(students)
