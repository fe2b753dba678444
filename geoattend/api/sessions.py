"""Attendance session API: lecturer session lifecycle and student check-in."""
from flask import Blueprint, Response, current_app, request

from flask_jwt_extended import jwt_required

from geoattend import get_engine, limiter
from geoattend.models.user import User, UserRole
from geoattend.services.attendance_service import CheckInRequest
from geoattend.services.errors import InvalidGeofence, ValidationError
from geoattend.services.geo_service import Coordinates
from geoattend.services.session_registry import Geofence, TimeWindow
from geoattend.utils.decorators import current_user, lecturer_required, student_required
from geoattend.utils.helpers import error_response, success_response
from geoattend.utils.validators import Validator

sessions_bp = Blueprint('sessions', __name__)


def _checkin_limit() -> str:
    return current_app.config.get('CHECKIN_RATE_LIMIT', '30 per minute')


def _owner() -> str:
    return str(current_user().id)


@sessions_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Session service is running')


# =================== LECTURER ===================

@sessions_bp.route('', methods=['POST'])
@jwt_required()
@lecturer_required
def create_session():
    """Create a geofenced session."""
    data = request.get_json(silent=True) or {}
    Validator.require_fields(data, [
        'course_id', 'course_name', 'department', 'location',
        'radius', 'passcode', 'start_time', 'end_time'
    ])

    try:
        center = Coordinates.from_dict(data['location'])
        radius = Validator.require_float(data, 'radius')
    except ValidationError as e:
        raise InvalidGeofence(e.message)

    window = TimeWindow(
        start_time=Validator.require_timestamp(data, 'start_time'),
        end_time=Validator.require_timestamp(data, 'end_time')
    )

    engine = get_engine()
    session_id = engine.registry.create(
        owner=_owner(),
        geofence=Geofence(center, radius),
        passcode=str(data['passcode']).strip(),
        window=window,
        course_id=Validator.optional_text(data, 'course_id', 50),
        course_name=Validator.optional_text(data, 'course_name'),
        department=Validator.optional_text(data, 'department', 100)
    )

    session = engine.registry.get(session_id)
    return success_response(data=session.to_dict(), message='Session created', status_code=201)


@sessions_bp.route('/active', methods=['GET'])
@jwt_required()
@lecturer_required
def active_sessions():
    """Lecturer's sessions that are still live."""
    sessions = get_engine().registry.list_for_owner(_owner(), active=True)
    return success_response(data=[s.to_dict(include_attendees=False) for s in sessions])


@sessions_bp.route('/closed', methods=['GET'])
@jwt_required()
@lecturer_required
def closed_sessions():
    """Lecturer's closed or expired sessions."""
    sessions = get_engine().registry.list_for_owner(_owner(), active=False)
    return success_response(data=[s.to_dict(include_attendees=False) for s in sessions])


@sessions_bp.route('/<session_id>/close', methods=['PATCH'])
@jwt_required()
@lecturer_required
def close_session(session_id):
    """Close a session and write its CSV report."""
    engine = get_engine()
    session = engine.registry.close(session_id, _owner())

    if not session.attendees:
        engine.registry.mark_report_generated(session_id)
        return success_response(message='Session closed, no attendees to export')

    path = engine.reports.write_csv(session, current_app.config['REPORT_FOLDER'])
    engine.registry.mark_report_generated(session_id)
    current_app.logger.info('CSV generated for session %s at %s', session_id, path)

    return success_response(
        data={'csv_url': f'/api/sessions/{session_id}/report.csv'},
        message='Session closed and report generated'
    )


@sessions_bp.route('/<session_id>/attendees', methods=['GET'])
@jwt_required()
@lecturer_required
def session_attendees(session_id):
    """Preview a session's attendees."""
    engine = get_engine()
    session = engine.registry.get_owned(session_id, _owner())

    attendees = []
    for row, record in zip(engine.reports.rows(session), session.attendees):
        attendees.append({
            'student_id': record.student_id,
            'name': row['Name'],
            'department': row['Department'],
            'matric_number': row['Matric Number'],
            'timestamp': row['Timestamp'],
            'status': record.status.value,
            'reason': record.reason
        })

    return success_response(data={'attendees': attendees})


@sessions_bp.route('/<session_id>/manual-attendance', methods=['POST'])
@jwt_required()
@lecturer_required
def manual_attendance(session_id):
    """Mark a student present by matric number."""
    data = request.get_json(silent=True) or {}
    Validator.require_fields(data, ['matric_number'])

    student = User.query.filter_by(
        matric_number=str(data['matric_number']).strip(),
        role=UserRole.STUDENT
    ).first()
    if not student:
        return error_response('Student not found', 404)

    outcome = get_engine().validator.mark_manual(
        session_id,
        owner=_owner(),
        student_id=str(student.id),
        reason=Validator.optional_text(data, 'reason')
    )
    return success_response(data=outcome.to_dict(), message='Attendance marked successfully')


@sessions_bp.route('/<session_id>/report.csv', methods=['GET'])
@jwt_required()
@lecturer_required
@limiter.limit("10 per 15 minutes")
def download_report(session_id):
    """Download the attendee list as CSV."""
    engine = get_engine()
    session = engine.registry.get_owned(session_id, _owner())

    filename = f'session_{session.course_id or session.id}_attendees.csv'
    return Response(
        engine.reports.to_csv(session),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )


@sessions_bp.route('/cleanup', methods=['DELETE'])
@jwt_required()
@lecturer_required
def cleanup_sessions():
    """Delete the lecturer's expired sessions."""
    removed = get_engine().registry.purge_expired(_owner())
    return success_response(data={'deleted': removed}, message=f'{removed} expired sessions deleted')


# =================== STUDENT ===================

@sessions_bp.route('/attend', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit(_checkin_limit)
def attend():
    """Check in to a live session by passcode."""
    data = request.get_json(silent=True) or {}
    device_id = request.headers.get('X-Device-Id') or data.get('device_id')
    if not device_id:
        return error_response('Device ID is required', 400)
    Validator.require_fields(data, ['passcode', 'location'])

    outcome = get_engine().validator.submit(CheckInRequest(
        passcode=str(data['passcode']).strip(),
        student_id=str(current_user().id),
        device_id=str(device_id),
        coordinates=Coordinates.from_dict(data['location'])
    ))

    message = 'Attendance marked successfully'
    if outcome.flagged:
        message = 'Attendance marked and flagged for review'
    return success_response(data=outcome.to_dict(), message=message)
