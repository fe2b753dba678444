"""Attendance reports and dashboard statistics."""
import os
from datetime import datetime, time, timezone
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd

from geoattend.services.session_registry import AttendanceStatus, Session

REPORT_COLUMNS = ['Name', 'Department', 'Matric Number', 'Timestamp', 'Status', 'Reason']


def user_directory(student_id: str) -> Optional[Dict]:
    """Look a student up in the ``User`` table."""
    from geoattend.models.user import User

    try:
        user = User.get_by_id(int(student_id))
    except (TypeError, ValueError):
        return None
    if user is None:
        return None
    return {
        'name': user.name,
        'department': user.department,
        'matric_number': user.matric_number
    }


class ReportService:
    """Builds exportable attendee lists from finalized sessions."""

    def __init__(self, directory: Callable[[str], Optional[Dict]] = None):
        self.directory = directory or (lambda student_id: None)

    def rows(self, session: Session) -> List[Dict]:
        rows = []
        for record in session.attendees:
            student = self.directory(record.student_id) or {}
            rows.append({
                'Name': student.get('name') or 'Unknown',
                'Department': student.get('department') or 'N/A',
                'Matric Number': student.get('matric_number') or 'N/A',
                'Timestamp': record.timestamp.isoformat() if record.timestamp else 'N/A',
                'Status': record.status.value,
                'Reason': record.reason or ''
            })
        return rows

    def to_dataframe(self, session: Session) -> pd.DataFrame:
        return pd.DataFrame(self.rows(session), columns=REPORT_COLUMNS)

    def to_csv(self, session: Session) -> str:
        """Render the session's attendee list as CSV text."""
        return self.to_dataframe(session).to_csv(index=False)

    def write_csv(self, session: Session, folder: str) -> str:
        """Write the CSV report into ``folder`` and return its path."""
        os.makedirs(folder, exist_ok=True)
        path = os.path.join(folder, f'session_{session.id}_attendees.csv')
        self.to_dataframe(session).to_csv(path, index=False)
        return path

    def finalize_expired(self, registry, folder: str, at: Optional[datetime] = None) -> Dict[str, Optional[str]]:
        """
        Mark every ended, unreported session as reported and write its CSV.

        Returns a map of session id to report path, ``None`` for sessions
        without attendees.
        """
        reports = {}
        for session_id in registry.finalize_expired(at):
            session = registry.get(session_id)
            reports[session_id] = self.write_csv(session, folder) if session.attendees else None
        return reports

    @staticmethod
    def stats(sessions: Iterable[Session], at: datetime) -> Dict:
        """Check-ins today, flagged entries and distinct active students."""
        day_start = datetime.combine(at.date(), time.min, tzinfo=at.tzinfo or timezone.utc)

        records = [record for session in sessions for record in session.attendees]
        today = [r for r in records if r.timestamp >= day_start]

        return {
            'check_ins_today': len(today),
            'flagged_entries': len([r for r in records if r.status == AttendanceStatus.FLAGGED]),
            'rejected_entries': len([r for r in records if r.status == AttendanceStatus.REJECTED]),
            'active_students_today': len({r.student_id for r in today})
        }
