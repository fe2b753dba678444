"""Validation utilities for request payloads."""
import re
from datetime import datetime
from typing import Any, Dict, List

from geoattend.services.errors import ValidationError
from geoattend.utils.helpers import parse_timestamp


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format."""
        if not email:
            return False
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        return bool(re.match(pattern, email))

    @staticmethod
    def require_fields(data: Dict, required_fields: List[str]) -> None:
        """Raise ``ValidationError`` naming the first missing field."""
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')
        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                raise ValidationError(f"Missing required field: {field}")

    @staticmethod
    def require_timestamp(data: Dict, field: str) -> datetime:
        value = parse_timestamp(data.get(field))
        if value is None:
            raise ValidationError(f"Invalid {field}")
        return value

    @staticmethod
    def require_float(data: Dict, field: str) -> float:
        try:
            return float(data[field])
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Invalid {field}")

    @staticmethod
    def optional_text(data: Dict, field: str, max_length: int = 255) -> Any:
        value = data.get(field)
        if value is None:
            return None
        value = str(value).strip()
        if len(value) > max_length:
            raise ValidationError(f"{field} is too long")
        return value or None
