"""Admin API: flagged record review, device administration, statistics."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from geoattend import get_engine
from geoattend.models.user import User, UserRole
from geoattend.services.errors import ValidationError
from geoattend.services.session_registry import AttendanceStatus, REVIEW_DECISIONS
from geoattend.utils.decorators import admin_required, current_user
from geoattend.utils.helpers import error_response, success_response, utcnow
from geoattend.utils.validators import Validator

admin_bp = Blueprint('admin', __name__)


def _find_student(student_id: int):
    user = User.get_by_id(student_id)
    if not user or not user.is_student():
        return None
    return user


@admin_bp.route('/flagged', methods=['GET'])
@jwt_required()
@admin_required
def flagged_records():
    """Records waiting for review."""
    flagged = []
    for session in get_engine().registry.all_sessions():
        for record in session.attendees:
            if record.status == AttendanceStatus.FLAGGED:
                entry = record.to_dict()
                entry['session_id'] = session.id
                entry['course_id'] = session.course_id
                flagged.append(entry)

    flagged.sort(key=lambda r: r['timestamp'])
    return success_response(data=flagged)


@admin_bp.route('/sessions/<session_id>/records/<student_id>/review', methods=['POST'])
@jwt_required()
@admin_required
def review_record(session_id, student_id):
    """Approve or reject a flagged record."""
    data = request.get_json(silent=True) or {}
    Validator.require_fields(data, ['decision'])

    try:
        decision = AttendanceStatus(str(data['decision']).lower())
    except ValueError:
        decision = None
    if decision not in REVIEW_DECISIONS:
        raise ValidationError('decision must be "valid" or "rejected"')

    record = get_engine().registry.review_record(
        session_id,
        student_id,
        decision,
        reviewer=str(current_user().id),
        note=Validator.optional_text(data, 'note', 500)
    )
    return success_response(data=record.to_dict(), message=f'Record marked {decision.value}')


@admin_bp.route('/devices/<int:student_id>', methods=['GET'])
@jwt_required()
@admin_required
def get_device(student_id):
    """Show a student's bound device."""
    student = _find_student(student_id)
    if not student:
        return error_response('Student not found', 404)

    device_id = get_engine().devices.binding(str(student.id))
    return success_response(data={
        'student_id': student.id,
        'name': student.name,
        'device_id': device_id,
        'last_used': student.updated_at.isoformat() if student.updated_at else None
    })


@admin_bp.route('/devices/<int:student_id>', methods=['PUT'])
@jwt_required()
@admin_required
def rebind_device(student_id):
    """Bind a student to a replacement device."""
    data = request.get_json(silent=True) or {}
    Validator.require_fields(data, ['device_id'])

    student = _find_student(student_id)
    if not student:
        return error_response('Student not found', 404)

    previous = get_engine().devices.rebind(
        str(student.id), str(data['device_id']), admin=str(current_user().id)
    )
    current_app.logger.info('Device rebind for student %s', student.id)
    return success_response(
        data={'student_id': student.id, 'device_id': data['device_id'], 'previous_device_id': previous},
        message='Device rebound'
    )


@admin_bp.route('/devices/<int:student_id>', methods=['DELETE'])
@jwt_required()
@admin_required
def unbind_device(student_id):
    """Clear a binding; the next check-in binds afresh."""
    student = _find_student(student_id)
    if not student:
        return error_response('Student not found', 404)

    previous = get_engine().devices.unbind(str(student.id), admin=str(current_user().id))
    return success_response(data={'student_id': student.id, 'previous_device_id': previous},
                            message='Device unbound')


@admin_bp.route('/sessions/finalize', methods=['POST'])
@jwt_required()
@admin_required
def finalize_sessions():
    """Write reports for every ended session that has none yet."""
    engine = get_engine()
    reports = engine.reports.finalize_expired(engine.registry, current_app.config['REPORT_FOLDER'])
    current_app.logger.info('Finalized %d sessions', len(reports))
    return success_response(
        data=[{'session_id': sid, 'report': path} for sid, path in reports.items()],
        message=f'{len(reports)} sessions finalized'
    )


@admin_bp.route('/stats', methods=['GET'])
@jwt_required()
@admin_required
def stats():
    """Dashboard statistics."""
    engine = get_engine()
    data = engine.reports.stats(engine.registry.all_sessions(), utcnow())
    data['total_users'] = User.query.count()
    data['inactive_students_today'] = max(
        User.query.filter_by(role=UserRole.STUDENT).count() - data['active_students_today'],
        0
    )
    return success_response(data=data)
