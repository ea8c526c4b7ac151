from datetime import datetime, timezone as dt_timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationFailed


@lru_cache(maxsize=256)
def _load_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def is_valid_zone(name) -> bool:
    if not name or not isinstance(name, str):
        return False
    try:
        _load_zone(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def get_zone(name: str, field: str = "timezone") -> ZoneInfo:
    if not is_valid_zone(name):
        raise ValidationFailed(
            f"Unknown timezone: {name!r}.",
            detail={field: ["Must be an IANA timezone name such as 'America/New_York'."]},
        )
    return _load_zone(name)


def offset_hours(name, at: datetime | None = None) -> float | None:
    """UTC offset of a named zone at ``at`` (default now), in hours."""
    if not is_valid_zone(name):
        return None
    moment = at or datetime.now(dt_timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt_timezone.utc)
    offset = moment.astimezone(_load_zone(name)).utcoffset()
    return offset.total_seconds() / 3600
