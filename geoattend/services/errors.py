"""Error taxonomy for the attendance engine."""
from typing import Any, Dict, Optional


class AttendanceError(Exception):
    """Base class for every failure the engine reports to a caller."""

    code = 'attendance_error'
    status_code = 400
    default_message = 'Attendance error'

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the API error payload."""
        payload = {
            'error': True,
            'code': self.code,
            'message': self.message,
            'status_code': self.status_code
        }
        payload.update(self.details)
        return payload


# =================== VALIDATION ===================

class ValidationError(AttendanceError):
    """Caller-fixable input problem."""
    code = 'validation_error'
    default_message = 'Invalid input'


class InvalidWindow(ValidationError):
    code = 'invalid_window'
    default_message = 'End time must be after start time'


class InvalidGeofence(ValidationError):
    code = 'invalid_geofence'
    default_message = 'Invalid geofence'


class InvalidPasscode(ValidationError):
    code = 'invalid_passcode'
    default_message = 'Invalid passcode format'


class DuplicatePasscode(ValidationError):
    code = 'duplicate_passcode'
    status_code = 409
    default_message = 'Passcode is already used by a live session'


# =================== REJECTION ===================

class CheckInRejected(AttendanceError):
    """Check-in declined; no attendance record was written."""
    code = 'checkin_rejected'


class SessionNotFoundOrExpired(CheckInRejected):
    code = 'session_not_found_or_expired'
    status_code = 404
    default_message = 'Session not found or expired'


class DeviceMismatch(CheckInRejected):
    code = 'device_mismatch'
    status_code = 403
    default_message = 'Device ID mismatch. Cannot mark attendance from this device.'


class OutsideGeofence(CheckInRejected):
    code = 'outside_geofence'
    default_message = 'Outside geofence'

    def __init__(self, distance: float, radius: float):
        super().__init__(
            f'Outside geofence ({distance:.2f}m away, allowed {radius:.2f}m)',
            distance=round(distance, 2),
            radius=radius
        )
        self.distance = distance
        self.radius = radius


class AlreadyMarked(CheckInRejected):
    code = 'already_marked'
    status_code = 409
    default_message = 'Attendance already marked'


# =================== REGISTRY ===================

class SessionNotFound(AttendanceError):
    code = 'session_not_found'
    status_code = 404
    default_message = 'Session not found'


class DuplicateAttendee(AttendanceError):
    code = 'duplicate_attendee'
    status_code = 409
    default_message = 'Student already recorded for this session'


class SessionClosed(AttendanceError):
    code = 'session_closed'
    status_code = 409
    default_message = 'Session is closed'


# =================== REVIEW ===================

class RecordNotFound(AttendanceError):
    code = 'record_not_found'
    status_code = 404
    default_message = 'Attendance record not found'


class InvalidReviewTransition(AttendanceError):
    code = 'invalid_review_transition'
    status_code = 409
    default_message = 'Only flagged records can be reviewed'
