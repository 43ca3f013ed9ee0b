import uuid
from typing import Optional

from ..errors import NotFoundError, ValidationError


def to_uuid(value, field: str = "id", missing_is_not_found: bool = False) -> uuid.UUID:
    """Parse a path/body identifier; malformed ids are reported like missing records for path lookups."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        if missing_is_not_found:
            raise NotFoundError(f"{field} not found")
        raise ValidationError(f"Invalid {field}")


def to_uuid_or_none(value, field: str = "id") -> Optional[uuid.UUID]:
    if value in (None, "", "null", "undefined"):
        return None
    return to_uuid(value, field)
