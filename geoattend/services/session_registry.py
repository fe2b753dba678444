"""Session registry with per-session exclusive mutation."""
import logging
import math
import re
import secrets
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional

from geoattend.services.errors import (
    DuplicateAttendee, DuplicatePasscode, InvalidGeofence, InvalidPasscode,
    InvalidReviewTransition, InvalidWindow, RecordNotFound, SessionClosed,
    SessionNotFound
)
from geoattend.services.geo_service import Coordinates, GeoService
from geoattend.utils.helpers import isoformat, utcnow
from geoattend.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

PASSCODE_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')


class AttendanceStatus(Enum):
    """Status of a single attendance record."""
    VALID = 'valid'
    FLAGGED = 'flagged'
    REJECTED = 'rejected'


# Review decisions a flagged record may move to
REVIEW_DECISIONS = (AttendanceStatus.VALID, AttendanceStatus.REJECTED)


@dataclass(frozen=True)
class Geofence:
    """Circular region around a center point."""
    center: Coordinates
    radius: float  # meters

    def distance_to(self, coords: Coordinates) -> float:
        return GeoService.distance_meters(coords, self.center)

    def to_dict(self) -> Dict:
        return {'center': self.center.to_dict(), 'radius': self.radius}


@dataclass(frozen=True)
class TimeWindow:
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class ReviewEntry:
    """Audit entry appended every time a record is reviewed."""
    reviewer: str
    from_status: AttendanceStatus
    to_status: AttendanceStatus
    note: Optional[str]
    at: datetime

    def to_dict(self) -> Dict:
        return {
            'reviewer': self.reviewer,
            'from': self.from_status.value,
            'to': self.to_status.value,
            'note': self.note,
            'at': isoformat(self.at)
        }


@dataclass
class AttendanceRecord:
    """One student's attendance in one session."""
    student_id: str
    device_id: str
    coordinates: Optional[Coordinates]
    timestamp: datetime
    status: AttendanceStatus = AttendanceStatus.VALID
    reason: Optional[str] = None
    history: List[ReviewEntry] = field(default_factory=list)

    def __post_init__(self):
        if self.status == AttendanceStatus.FLAGGED and not self.reason:
            raise ValueError('Flagged records must carry a reason')

    def copy(self) -> 'AttendanceRecord':
        return replace(self, history=list(self.history))

    def to_dict(self) -> Dict:
        return {
            'student_id': self.student_id,
            'device_id': self.device_id,
            'location': self.coordinates.to_dict() if self.coordinates else None,
            'timestamp': isoformat(self.timestamp),
            'status': self.status.value,
            'reason': self.reason,
            'history': [entry.to_dict() for entry in self.history]
        }


@dataclass
class Session:
    """A time-boxed, geofenced attendance session."""
    id: str
    owner: str
    geofence: Geofence
    passcode: str
    start_time: datetime
    end_time: datetime
    course_id: Optional[str] = None
    course_name: Optional[str] = None
    department: Optional[str] = None
    created_at: Optional[datetime] = None
    attendees: List[AttendanceRecord] = field(default_factory=list)
    closed: bool = False
    report_generated: bool = False

    def is_live(self, at: datetime) -> bool:
        """Live sessions hold their passcode: not closed and not yet ended."""
        return not self.closed and self.end_time > at

    def is_open(self, at: datetime) -> bool:
        """Open sessions accept check-ins."""
        return self.is_live(at) and self.start_time <= at

    def has_ended(self, at: datetime) -> bool:
        return self.closed or self.end_time <= at

    def attendee(self, student_id: str) -> Optional[AttendanceRecord]:
        for record in self.attendees:
            if record.student_id == student_id:
                return record
        return None

    def has_attendee(self, student_id: str) -> bool:
        return self.attendee(student_id) is not None

    def snapshot(self) -> 'Session':
        """Detached copy safe to hand out to callers."""
        return replace(self, attendees=[record.copy() for record in self.attendees])

    def to_dict(self, include_attendees: bool = True) -> Dict:
        data = {
            'id': self.id,
            'owner': self.owner,
            'course_id': self.course_id,
            'course_name': self.course_name,
            'department': self.department,
            'geofence': self.geofence.to_dict(),
            'passcode': self.passcode,
            'start_time': isoformat(self.start_time),
            'end_time': isoformat(self.end_time),
            'created_at': isoformat(self.created_at),
            'closed': self.closed,
            'report_generated': self.report_generated,
            'attendee_count': len(self.attendees)
        }
        if include_attendees:
            data['attendees'] = [record.to_dict() for record in self.attendees]
        return data


class SessionRegistry:
    """
    Arena of sessions keyed by id.

    Every mutation of a session happens while holding that session's lock;
    passcode uniqueness is enforced under a lock keyed by the passcode, and
    the per-student "latest check-in" index under a lock keyed by the
    student. Lock order is always session -> student, and passcode locks
    are never held together with a session lock.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        passcode_min_length: int = 4,
        passcode_max_length: int = 32,
        max_radius_meters: Optional[float] = None
    ):
        self.clock = clock
        self.passcode_min_length = passcode_min_length
        self.passcode_max_length = passcode_max_length
        self.max_radius_meters = max_radius_meters

        self._sessions: Dict[str, Session] = {}
        self._by_passcode: Dict[str, List[str]] = {}
        self._latest_by_student: Dict[str, AttendanceRecord] = {}

        self._session_locks = KeyedLock()
        self._passcode_locks = KeyedLock()
        self._student_locks = KeyedLock()

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[Session]:
        """Hold a session's lock and yield it, unless it was purged meanwhile."""
        with self._session_locks.hold(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound()
            yield session

    # =================== VALIDATION ===================

    def _validate_geofence(self, geofence: Geofence) -> None:
        if not isinstance(geofence.center, Coordinates) or not GeoService.is_valid(geofence.center):
            raise InvalidGeofence('Invalid geofence center coordinates')
        try:
            radius = float(geofence.radius)
        except (TypeError, ValueError):
            raise InvalidGeofence('Invalid radius')
        if not math.isfinite(radius) or radius <= 0:
            raise InvalidGeofence('Radius must be greater than zero')
        if self.max_radius_meters and radius > self.max_radius_meters:
            raise InvalidGeofence(f'Radius must not exceed {self.max_radius_meters}m')

    def _validate_passcode(self, passcode: str) -> None:
        if not isinstance(passcode, str) or not PASSCODE_PATTERN.match(passcode):
            raise InvalidPasscode('Passcode may only contain letters, digits, "-" and "_"')
        if not self.passcode_min_length <= len(passcode) <= self.passcode_max_length:
            raise InvalidPasscode(
                f'Passcode must be {self.passcode_min_length}-{self.passcode_max_length} characters'
            )

    # =================== LIFECYCLE ===================

    def create(
        self,
        owner: str,
        geofence: Geofence,
        passcode: str,
        window: TimeWindow,
        course_id: Optional[str] = None,
        course_name: Optional[str] = None,
        department: Optional[str] = None
    ) -> str:
        """Create a session and return its id."""
        if window.end_time <= window.start_time:
            raise InvalidWindow()
        self._validate_geofence(geofence)
        self._validate_passcode(passcode)

        now = self.clock()
        session = Session(
            id=secrets.token_hex(12),
            owner=owner,
            geofence=Geofence(geofence.center, float(geofence.radius)),
            passcode=passcode,
            start_time=window.start_time,
            end_time=window.end_time,
            course_id=course_id,
            course_name=course_name,
            department=department,
            created_at=now
        )

        with self._passcode_locks.hold(passcode):
            for other_id in self._by_passcode.get(passcode, []):
                other = self._sessions.get(other_id)
                if other is not None and other.is_live(now):
                    raise DuplicatePasscode()
            self._sessions[session.id] = session
            self._by_passcode.setdefault(passcode, []).append(session.id)

        logger.info('Session created: %s for course %s by %s', session.id, course_id, owner)
        return session.id

    def get(self, session_id: str) -> Session:
        """Return a snapshot of a session or raise ``SessionNotFound``."""
        with self._locked(session_id) as session:
            return session.snapshot()

    def get_owned(self, session_id: str, owner: str) -> Session:
        session = self.get(session_id)
        if session.owner != owner:
            raise SessionNotFound()
        return session

    def find_live_by_passcode(self, passcode: str, at: Optional[datetime] = None) -> Optional[Session]:
        """Return the live session holding ``passcode``, if any."""
        at = at or self.clock()
        for session_id in list(self._by_passcode.get(passcode, [])):
            session = self._sessions.get(session_id)
            if session is None:
                continue
            with self._session_locks.hold(session_id):
                if session.is_live(at):
                    return session.snapshot()
        return None

    def close(self, session_id: str, owner: str) -> Session:
        """Close a session, freezing its window. Closing twice is a no-op."""
        with self._locked(session_id) as session:
            if session.owner != owner:
                raise SessionNotFound()
            if not session.closed:
                now = self.clock()
                if session.end_time > now:
                    session.end_time = now
                session.closed = True
                logger.info('Session closed: %s (%d attendees)', session_id, len(session.attendees))
            return session.snapshot()

    # =================== ATTENDEES ===================

    def append_attendee(self, session_id: str, record: AttendanceRecord, manual: bool = False) -> None:
        """
        Append a record to a session.

        Check-ins are refused once the session is closed, or when either the
        current time or ``record.timestamp`` is at or past its end time.
        Manual entries are only refused once the session's report has been
        generated.
        """
        with self._locked(session_id) as session:
            if manual:
                if session.report_generated:
                    raise SessionClosed('Cannot modify attendance for a session with a generated report')
            elif (session.closed
                  or self.clock() >= session.end_time
                  or record.timestamp >= session.end_time):
                raise SessionClosed()

            if session.has_attendee(record.student_id):
                raise DuplicateAttendee()

            stored = record.copy()
            session.attendees.append(stored)

            if stored.coordinates is not None:
                with self._student_locks.hold(stored.student_id):
                    latest = self._latest_by_student.get(stored.student_id)
                    if latest is None or latest.timestamp <= stored.timestamp:
                        self._latest_by_student[stored.student_id] = stored

    def attendees(self, session_id: str, owner: str) -> List[AttendanceRecord]:
        return self.get_owned(session_id, owner).attendees

    def latest_record_for_student(self, student_id: str) -> Optional[AttendanceRecord]:
        """Most recent located check-in of a student across all sessions."""
        with self._student_locks.hold(student_id):
            latest = self._latest_by_student.get(student_id)
            return latest.copy() if latest else None

    def review_record(
        self,
        session_id: str,
        student_id: str,
        decision: AttendanceStatus,
        reviewer: str,
        note: Optional[str] = None
    ) -> AttendanceRecord:
        """Move a flagged record to valid or rejected, keeping its audit trail."""
        if decision not in REVIEW_DECISIONS:
            raise InvalidReviewTransition(f'Cannot review a record into {decision.value}')

        with self._locked(session_id) as session:
            record = session.attendee(student_id)
            if record is None:
                raise RecordNotFound()
            if record.status != AttendanceStatus.FLAGGED:
                raise InvalidReviewTransition()

            record.history.append(ReviewEntry(
                reviewer=reviewer,
                from_status=record.status,
                to_status=decision,
                note=note,
                at=self.clock()
            ))
            record.status = decision
            logger.info('Record %s/%s reviewed by %s: %s', session_id, student_id, reviewer, decision.value)
            return record.copy()

    # =================== LISTING & HOUSEKEEPING ===================

    def all_sessions(self) -> List[Session]:
        sessions = []
        for session_id in list(self._sessions):
            try:
                sessions.append(self.get(session_id))
            except SessionNotFound:
                continue
        return sessions

    def list_for_owner(self, owner: str, active: bool = True, at: Optional[datetime] = None) -> List[Session]:
        """Active (live) or ended sessions of one lecturer, oldest first."""
        at = at or self.clock()
        sessions = [s for s in self.all_sessions() if s.owner == owner]
        if active:
            sessions = [s for s in sessions if s.is_live(at)]
        else:
            sessions = [s for s in sessions if s.has_ended(at)]
        return sorted(sessions, key=lambda s: s.start_time)

    def mark_report_generated(self, session_id: str) -> None:
        with self._locked(session_id) as session:
            session.report_generated = True

    def finalize_expired(self, at: Optional[datetime] = None) -> List[str]:
        """Mark every ended session without a report as reported."""
        at = at or self.clock()
        finalized = []
        for session_id, session in list(self._sessions.items()):
            with self._session_locks.hold(session_id):
                if session.has_ended(at) and not session.report_generated:
                    session.report_generated = True
                    finalized.append(session_id)
        if finalized:
            logger.info('Finalized %d expired sessions', len(finalized))
        return finalized

    def purge_expired(self, owner: str, at: Optional[datetime] = None) -> int:
        """Delete an owner's sessions whose end time has passed."""
        at = at or self.clock()
        removed = 0
        for session_id, session in list(self._sessions.items()):
            if session.owner != owner:
                continue
            with self._session_locks.hold(session_id):
                if session.end_time >= at or self._sessions.get(session_id) is not session:
                    continue
                del self._sessions[session_id]
                self._forget_latest(session)
            with self._passcode_locks.hold(session.passcode):
                ids = self._by_passcode.get(session.passcode, [])
                if session_id in ids:
                    ids.remove(session_id)
                if not ids:
                    self._by_passcode.pop(session.passcode, None)
            removed += 1
        logger.info('Deleted %d expired sessions for lecturer %s', removed, owner)
        return removed

    def _forget_latest(self, session: Session) -> None:
        for record in session.attendees:
            with self._student_locks.hold(record.student_id):
                if self._latest_by_student.get(record.student_id) is record:
                    del self._latest_by_student[record.student_id]

    def __len__(self) -> int:
        return len(self._sessions)
