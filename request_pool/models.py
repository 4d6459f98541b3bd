"""
Pool enums and serialization helpers.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class PoolStatus(str, Enum):
    """Rental request pool membership."""
    ACTIVE = 'ACTIVE'
    MATCHED = 'MATCHED'
    EXPIRED = 'EXPIRED'
    CANCELLED = 'CANCELLED'


# Terminal transitions accepted by remove_from_pool
REMOVAL_REASONS = {PoolStatus.MATCHED, PoolStatus.EXPIRED, PoolStatus.CANCELLED}


class MatchStatus(str, Enum):
    """Landlord response to a match."""
    PENDING = 'PENDING'
    OFFERED = 'OFFERED'
    DECLINED = 'DECLINED'


class UserRole(str, Enum):
    TENANT = 'TENANT'
    LANDLORD = 'LANDLORD'
    ADMIN = 'ADMIN'


def serialize_for_json(obj: Any) -> Any:
    """Recursive serialization for JSON (datetime -> ISO string, Enum -> value)."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, dict):
        return {k: serialize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_for_json(item) for item in obj]
    return obj


def normalize_location(value: Optional[str]) -> str:
    """Case- and whitespace-insensitive form used for location matching."""
    if not value:
        return ''
    return ' '.join(str(value).split()).casefold()


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Accept datetime or ISO string (cached payloads carry strings).

    Aware values are converted to naive UTC, the stored format.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
