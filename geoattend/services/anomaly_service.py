"""Rapid-travel anomaly heuristic."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from geoattend.services.geo_service import Coordinates, GeoService

logger = logging.getLogger(__name__)

RAPID_LOCATION_CHANGE = 'rapid location change'


@dataclass(frozen=True)
class Verdict:
    suspicious: bool
    reason: Optional[str] = None

    @property
    def clean(self) -> bool:
        return not self.suspicious


CLEAN = Verdict(suspicious=False)


class AnomalyDetector:
    """
    Flags a check-in when the student's previous check-in was recent and far away.

    A suspicious verdict never blocks the check-in; it only marks the
    resulting record for human review.
    """

    def __init__(self, history, window_seconds: float = 300, distance_meters: float = 1000):
        # history only needs latest_record_for_student(student_id)
        self.history = history
        self.window_seconds = window_seconds
        self.distance_meters = distance_meters

    def detect(self, student_id: str, new_coord: Coordinates, new_time: datetime) -> Verdict:
        previous = self.history.latest_record_for_student(student_id)
        if previous is None or previous.coordinates is None:
            return CLEAN

        elapsed = abs((new_time - previous.timestamp).total_seconds())
        if elapsed >= self.window_seconds:
            return CLEAN

        distance = GeoService.distance_meters(previous.coordinates, new_coord)
        if distance > self.distance_meters:
            logger.warning(
                'Rapid location change for student %s: %.0fm in %.0fs',
                student_id, distance, elapsed
            )
            return Verdict(suspicious=True, reason=RAPID_LOCATION_CHANGE)
        return CLEAN
