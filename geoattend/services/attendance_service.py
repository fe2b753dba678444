"""Attendance check-in validation."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from geoattend.services.anomaly_service import AnomalyDetector
from geoattend.services.device_binding_service import BindingOutcome, DeviceBindingPolicy
from geoattend.services.errors import (
    AlreadyMarked, DeviceMismatch, DuplicateAttendee, OutsideGeofence,
    SessionClosed, SessionNotFoundOrExpired, ValidationError
)
from geoattend.services.geo_service import Coordinates, GeoService
from geoattend.services.session_registry import (
    AttendanceRecord, AttendanceStatus, Session, SessionRegistry
)
from geoattend.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

MANUAL_DEVICE_ID = 'manual'
MANUAL_REASON = 'Manual entry by lecturer'


@dataclass(frozen=True)
class CheckInRequest:
    """A student's check-in attempt."""
    passcode: str
    student_id: str
    device_id: str
    coordinates: Coordinates
    request_time: Optional[datetime] = None


@dataclass(frozen=True)
class AttendanceOutcome:
    """Result of an accepted check-in."""
    session_id: str
    record: AttendanceRecord
    distance: Optional[float]
    enrolled: bool

    @property
    def flagged(self) -> bool:
        return self.record.status == AttendanceStatus.FLAGGED

    def to_dict(self) -> Dict:
        return {
            'session_id': self.session_id,
            'status': self.record.status.value,
            'reason': self.record.reason,
            'distance': round(self.distance, 2) if self.distance is not None else None,
            'timestamp': self.record.timestamp.isoformat(),
            'enrolled': self.enrolled
        }


class AttendanceValidator:
    """
    Decides whether a check-in is accepted, rejected or flagged.

    Steps, stopping at the first rejection:
    1. live session lookup by passcode, within its time window
    2. device binding (hard stop on mismatch)
    3. geofence containment, boundary inclusive
    4. duplicate check
    5. rapid-travel anomaly check (flags, never blocks)
    6. commit under the session's lock
    7. best-effort auto-enrollment in the session's course
    """

    def __init__(
        self,
        registry: SessionRegistry,
        devices: DeviceBindingPolicy,
        anomalies: AnomalyDetector,
        roster=None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.registry = registry
        self.devices = devices
        self.anomalies = anomalies
        self.roster = roster
        self.clock = clock

    def submit(self, request: CheckInRequest) -> AttendanceOutcome:
        """Validate and record a check-in, raising a ``CheckInRejected`` on refusal."""
        if not request.passcode or not request.student_id or not request.device_id:
            raise ValidationError('passcode, student_id and device_id are required')
        GeoService.validate(request.coordinates)
        at = as_utc(request.request_time) if request.request_time else self.clock()

        session = self.registry.find_live_by_passcode(request.passcode, at)
        if session is None or not session.is_open(at):
            logger.info('Session not found or expired: %s', request.passcode)
            raise SessionNotFoundOrExpired()

        if self.devices.check_and_bind(request.student_id, request.device_id) == BindingOutcome.MISMATCH:
            raise DeviceMismatch()

        distance = session.geofence.distance_to(request.coordinates)
        if distance > session.geofence.radius:
            logger.info(
                'Outside geofence: student %s %.2fm away from session %s',
                request.student_id, distance, session.id
            )
            raise OutsideGeofence(distance, session.geofence.radius)

        if session.has_attendee(request.student_id):
            logger.info('Attendance already marked for %s in session %s', request.student_id, session.id)
            raise AlreadyMarked()

        verdict = self.anomalies.detect(request.student_id, request.coordinates, at)
        record = AttendanceRecord(
            student_id=request.student_id,
            device_id=request.device_id,
            coordinates=request.coordinates,
            timestamp=at,
            status=AttendanceStatus.FLAGGED if verdict.suspicious else AttendanceStatus.VALID,
            reason=verdict.reason
        )

        self._commit(session, record, manual=False)
        logger.info(
            'Attendance marked for %s in session %s (%s)',
            request.student_id, session.id, record.status.value
        )

        enrolled = self._auto_enroll(session, request.student_id)
        return AttendanceOutcome(session.id, record, distance, enrolled)

    def mark_manual(
        self,
        session_id: str,
        owner: str,
        student_id: str,
        reason: Optional[str] = None
    ) -> AttendanceOutcome:
        """Lecturer-entered attendance, bypassing location and device checks."""
        session = self.registry.get_owned(session_id, owner)
        if session.has_attendee(student_id):
            raise AlreadyMarked('Student already marked as attended')

        record = AttendanceRecord(
            student_id=student_id,
            device_id=MANUAL_DEVICE_ID,
            coordinates=None,
            timestamp=self.clock(),
            status=AttendanceStatus.VALID,
            reason=reason or MANUAL_REASON
        )
        self._commit(session, record, manual=True)
        logger.info('Manually marked attendance for %s in session %s', student_id, session_id)

        enrolled = self._auto_enroll(session, student_id)
        return AttendanceOutcome(session.id, record, None, enrolled)

    def _commit(self, session: Session, record: AttendanceRecord, manual: bool) -> None:
        try:
            self.registry.append_attendee(session.id, record, manual=manual)
        except DuplicateAttendee:
            raise AlreadyMarked()
        except SessionClosed as e:
            if manual:
                raise
            raise SessionNotFoundOrExpired() from e

    def _auto_enroll(self, session: Session, student_id: str) -> bool:
        """Ask the roster to enroll the student; failures never undo the check-in."""
        if self.roster is None or not session.course_id:
            return False
        try:
            if self.roster.is_enrolled(session.course_id, student_id):
                return False
            self.roster.notify_auto_enroll(session.course_id, student_id)
            return True
        except Exception as e:
            logger.warning(
                'Auto-enroll of %s in course %s failed: %s',
                student_id, session.course_id, e
            )
            return False
