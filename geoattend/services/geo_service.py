"""Great-circle distance and coordinate checks."""
import math
from dataclasses import dataclass
from typing import Any, Dict

from geoattend.services.errors import ValidationError

EARTH_RADIUS_METERS = 6371000


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {'latitude': self.latitude, 'longitude': self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Coordinates':
        """Build from a ``{'latitude': ..., 'longitude': ...}`` mapping."""
        if not isinstance(data, dict):
            raise ValidationError('Location must be an object with latitude and longitude')
        try:
            coords = cls(float(data['latitude']), float(data['longitude']))
        except KeyError as e:
            raise ValidationError(f'Missing required field: {e.args[0]}')
        except (TypeError, ValueError):
            raise ValidationError('Invalid location coordinates')
        GeoService.validate(coords)
        return coords


class GeoService:
    """Service for distance computation between GPS points."""

    @staticmethod
    def is_valid(coords: Coordinates) -> bool:
        """Check that latitude and longitude are finite and within range."""
        lat, lng = coords.latitude, coords.longitude
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return False
        return -90 <= lat <= 90 and -180 <= lng <= 180

    @staticmethod
    def validate(coords: Coordinates) -> Coordinates:
        """Raise ``ValidationError`` for out-of-range coordinates."""
        if not GeoService.is_valid(coords):
            raise ValidationError('Invalid location coordinates')
        return coords

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate distance between two GPS points in meters."""
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon / 2) ** 2)
        # Rounding can push a a hair past 1 for antipodal points
        a = min(1.0, a)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_METERS * c

    @staticmethod
    def distance_meters(a: Coordinates, b: Coordinates) -> float:
        """Haversine distance between two coordinates in meters."""
        if a == b:
            return 0.0
        return GeoService.calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def distance_meters(a: Coordinates, b: Coordinates) -> float:
    return GeoService.distance_meters(a, b)
