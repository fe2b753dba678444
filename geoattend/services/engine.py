"""Wiring of the attendance engine's services."""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from geoattend.services.anomaly_service import AnomalyDetector
from geoattend.services.attendance_service import AttendanceValidator
from geoattend.services.device_binding_service import DeviceBindingPolicy
from geoattend.services.report_service import ReportService
from geoattend.services.session_registry import SessionRegistry
from geoattend.utils.helpers import utcnow


@dataclass
class AttendanceEngine:
    registry: SessionRegistry
    devices: DeviceBindingPolicy
    anomalies: AnomalyDetector
    validator: AttendanceValidator
    reports: ReportService


def build_engine(
    config: Optional[Dict] = None,
    device_store=None,
    roster=None,
    directory: Callable[[str], Optional[Dict]] = None,
    clock: Callable[[], datetime] = utcnow
) -> AttendanceEngine:
    """Build an engine from a Flask-style config mapping."""
    config = config or {}

    registry = SessionRegistry(
        clock=clock,
        passcode_min_length=config.get('PASSCODE_MIN_LENGTH', 4),
        passcode_max_length=config.get('PASSCODE_MAX_LENGTH', 32),
        max_radius_meters=config.get('MAX_GEOFENCE_RADIUS_METERS')
    )
    devices = DeviceBindingPolicy(device_store)
    anomalies = AnomalyDetector(
        registry,
        window_seconds=config.get('ANOMALY_WINDOW_SECONDS', 300),
        distance_meters=config.get('ANOMALY_DISTANCE_METERS', 1000)
    )
    validator = AttendanceValidator(registry, devices, anomalies, roster=roster, clock=clock)

    return AttendanceEngine(
        registry=registry,
        devices=devices,
        anomalies=anomalies,
        validator=validator,
        reports=ReportService(directory)
    )
