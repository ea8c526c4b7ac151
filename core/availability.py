"""
Availability expansion and slot generation.

A mentor's availability is a recurring weekly pattern plus date-specific
exceptions, both expressed in the mentor's own timezone. Day-of-week follows
the client convention: 0 is Sunday, 6 is Saturday.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Iterable, List, Optional, Tuple

from .errors import Conflict, ValidationFailed
from .lifecycle import RESERVED_STATUSES
from .timezones import get_zone

logger = logging.getLogger(__name__)


EXCEPTION_BLOCKED = "blocked"
EXCEPTION_OVERRIDE = "override"
EXCEPTION_TYPES = (EXCEPTION_BLOCKED, EXCEPTION_OVERRIDE)

TIME_FORMAT = "%H:%M"


@dataclass(frozen=True)
class TimeRange:
    start: time
    end: time


@dataclass(frozen=True)
class WeeklyAvailabilityBlock:
    day_of_week: int
    start: time
    end: time


@dataclass(frozen=True)
class AvailabilityException:
    date: date
    kind: str
    blocks: Tuple[TimeRange, ...] = ()


@dataclass(frozen=True)
class MentorAvailability:
    mentor_id: str
    timezone: str
    session_durations: Tuple[int, ...]
    buffer_minutes: int = 0
    max_sessions_per_day: Optional[int] = None
    weekly_blocks: Tuple[WeeklyAvailabilityBlock, ...] = ()
    exceptions: Tuple[AvailabilityException, ...] = ()

    @property
    def zone(self):
        return get_zone(self.timezone)

    def exception_for(self, target_date: date) -> Optional[AvailabilityException]:
        for exception in self.exceptions:
            if exception.date == target_date:
                return exception
        return None


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    available: bool = True

    def as_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "available": self.available,
        }


def day_of_week(target_date: date) -> int:
    return target_date.isoweekday() % 7


# Parsing -----------------------------------------------------------------


class _Errors:
    def __init__(self):
        self.items = {}

    def add(self, field: str, message: str):
        self.items.setdefault(field, []).append(message)

    def raise_if_any(self):
        if self.items:
            first_field = next(iter(self.items))
            raise ValidationFailed(
                f"Invalid availability: {first_field}: {self.items[first_field][0]}",
                detail=self.items,
            )


def _parse_time(value, field: str, errors: _Errors) -> Optional[time]:
    if isinstance(value, time):
        return value
    try:
        return datetime.strptime(str(value), TIME_FORMAT).time()
    except (TypeError, ValueError):
        errors.add(field, f"Expected HH:MM, got {value!r}.")
        return None


def _parse_range(raw, field: str, errors: _Errors) -> Optional[Tuple[time, time]]:
    if not isinstance(raw, Mapping):
        errors.add(field, "Must be an object with start_time and end_time.")
        return None
    start = _parse_time(raw.get("start_time", raw.get("startTime")), f"{field}.start_time", errors)
    end = _parse_time(raw.get("end_time", raw.get("endTime")), f"{field}.end_time", errors)
    if start is None or end is None:
        return None
    if end <= start:
        errors.add(field, "end_time must be after start_time.")
        return None
    return start, end


def _parse_weekly_blocks(raw, errors: _Errors) -> Tuple[WeeklyAvailabilityBlock, ...]:
    if raw is None:
        errors.add("weekly_blocks", "This field is required.")
        return ()
    if not isinstance(raw, (list, tuple)):
        errors.add("weekly_blocks", "Must be a list.")
        return ()
    blocks = []
    for index, item in enumerate(raw):
        field = f"weekly_blocks[{index}]"
        parsed = _parse_range(item, field, errors)
        if parsed is None:
            continue
        day = item.get("day_of_week", item.get("dayOfWeek"))
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            errors.add(f"{field}.day_of_week", "Must be an integer between 0 (Sunday) and 6 (Saturday).")
            continue
        blocks.append(WeeklyAvailabilityBlock(day_of_week=day, start=parsed[0], end=parsed[1]))
    return tuple(sorted(blocks, key=lambda block: (block.day_of_week, block.start)))


def _parse_exceptions(raw, errors: _Errors) -> Tuple[AvailabilityException, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        errors.add("exceptions", "Must be a list.")
        return ()
    exceptions = []
    seen_dates = set()
    for index, item in enumerate(raw):
        field = f"exceptions[{index}]"
        if not isinstance(item, Mapping):
            errors.add(field, "Must be an object.")
            continue
        try:
            when = date.fromisoformat(str(item.get("date")))
        except ValueError:
            errors.add(f"{field}.date", "Expected YYYY-MM-DD.")
            continue
        if when in seen_dates:
            errors.add(f"{field}.date", f"Duplicate exception for {when.isoformat()}.")
            continue
        seen_dates.add(when)

        kind = str(item.get("type", "")).strip().lower()
        if kind not in EXCEPTION_TYPES:
            errors.add(f"{field}.type", "Must be 'blocked' or 'override'.")
            continue
        ranges = []
        if kind == EXCEPTION_OVERRIDE:
            raw_blocks = item.get("blocks")
            if not isinstance(raw_blocks, (list, tuple)):
                errors.add(f"{field}.blocks", "Override exceptions need a list of blocks.")
                continue
            for block_index, block in enumerate(raw_blocks):
                parsed = _parse_range(block, f"{field}.blocks[{block_index}]", errors)
                if parsed is not None:
                    ranges.append(TimeRange(start=parsed[0], end=parsed[1]))
        exceptions.append(
            AvailabilityException(
                date=when,
                kind=kind,
                blocks=tuple(sorted(ranges, key=lambda block: block.start)),
            )
        )
    return tuple(sorted(exceptions, key=lambda exception: exception.date))


def _parse_durations(raw, errors: _Errors) -> Tuple[int, ...]:
    if not isinstance(raw, (list, tuple)) or not raw:
        errors.add("session_durations", "Provide at least one session duration in minutes.")
        return ()
    durations = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            errors.add("session_durations", f"Invalid duration {value!r}.")
            continue
        if value not in durations:
            durations.append(value)
    return tuple(durations)


def parse_availability(raw, mentor_id) -> MentorAvailability:
    if not isinstance(raw, Mapping):
        raise ValidationFailed("Availability must be an object.")
    errors = _Errors()

    timezone_name = raw.get("timezone")
    try:
        get_zone(timezone_name)
    except ValidationFailed:
        errors.add("timezone", "Must be an IANA timezone name.")

    buffer_minutes = raw.get("buffer_minutes", raw.get("bufferMinutes", 0))
    if buffer_minutes is None:
        buffer_minutes = 0
    if isinstance(buffer_minutes, bool) or not isinstance(buffer_minutes, int) or buffer_minutes < 0:
        errors.add("buffer_minutes", "Must be a non-negative integer.")

    max_per_day = raw.get("max_sessions_per_day", raw.get("maxSessionsPerDay"))
    if max_per_day is not None and (
        isinstance(max_per_day, bool) or not isinstance(max_per_day, int) or max_per_day < 1
    ):
        errors.add("max_sessions_per_day", "Must be a positive integer or null.")

    durations = _parse_durations(raw.get("session_durations", raw.get("sessionDurations")), errors)
    weekly_blocks = _parse_weekly_blocks(raw.get("weekly_blocks", raw.get("weeklyBlocks")), errors)
    exceptions = _parse_exceptions(raw.get("exceptions"), errors)
    errors.raise_if_any()

    return MentorAvailability(
        mentor_id=str(mentor_id),
        timezone=timezone_name,
        session_durations=durations,
        buffer_minutes=buffer_minutes,
        max_sessions_per_day=max_per_day,
        weekly_blocks=weekly_blocks,
        exceptions=exceptions,
    )


def availability_to_dict(availability: MentorAvailability) -> dict:
    def fmt(value: time) -> str:
        return value.strftime(TIME_FORMAT)

    return {
        "timezone": availability.timezone,
        "session_durations": list(availability.session_durations),
        "buffer_minutes": availability.buffer_minutes,
        "max_sessions_per_day": availability.max_sessions_per_day,
        "weekly_blocks": [
            {"day_of_week": block.day_of_week, "start_time": fmt(block.start), "end_time": fmt(block.end)}
            for block in availability.weekly_blocks
        ],
        "exceptions": [
            {
                "date": exception.date.isoformat(),
                "type": exception.kind,
                "blocks": [
                    {"start_time": fmt(block.start), "end_time": fmt(block.end)}
                    for block in exception.blocks
                ],
            }
            for exception in availability.exceptions
        ],
    }


# Expansion ---------------------------------------------------------------


def expand_blocks(availability: MentorAvailability, target_date: date) -> List[Tuple[datetime, datetime]]:
    """Concrete (start, end) instants that apply on ``target_date``."""
    exception = availability.exception_for(target_date)
    if exception is not None and exception.kind == EXCEPTION_BLOCKED:
        return []
    if exception is not None:
        ranges = [(block.start, block.end) for block in exception.blocks]
    else:
        weekday = day_of_week(target_date)
        ranges = [
            (block.start, block.end)
            for block in availability.weekly_blocks
            if block.day_of_week == weekday
        ]

    zone = availability.zone
    return sorted(
        (_instant(target_date, start, zone), _instant(target_date, end, zone))
        for start, end in ranges
    )


def _instant(target_date: date, local_time: time, zone) -> datetime:
    """UTC instant of a mentor-local wall time. Times inside a DST gap map forward."""
    return datetime.combine(target_date, local_time, tzinfo=zone).astimezone(dt_timezone.utc)


def reserved_sessions(sessions: Iterable) -> list:
    return [session for session in sessions if session.status in RESERVED_STATUSES]


def reserved_on(availability: MentorAvailability, target_date: date, sessions: Iterable) -> list:
    zone = availability.zone
    return [
        session
        for session in reserved_sessions(sessions)
        if session.start.astimezone(zone).date() == target_date
    ]


def daily_cap_reached(availability: MentorAvailability, target_date: date, sessions: Iterable) -> bool:
    cap = availability.max_sessions_per_day
    if not cap:
        return False
    return len(reserved_on(availability, target_date, sessions)) >= cap


def overlaps_with_buffer(start: datetime, end: datetime, session, buffer_minutes: int) -> bool:
    buffer = timedelta(minutes=buffer_minutes)
    return start < session.end + buffer and session.start - buffer < end


def first_conflict(start: datetime, end: datetime, sessions: Iterable, buffer_minutes: int):
    for session in reserved_sessions(sessions):
        if overlaps_with_buffer(start, end, session, buffer_minutes):
            return session
    return None


def _require_duration(availability: MentorAvailability, duration_minutes: int):
    if duration_minutes not in availability.session_durations:
        allowed = ", ".join(str(value) for value in availability.session_durations)
        raise ValidationFailed(
            f"Duration {duration_minutes} is not offered by this mentor.",
            detail={"duration": [f"Choose one of: {allowed}."]},
        )


def candidate_slots(
    availability: MentorAvailability,
    target_date: date,
    duration_minutes: int,
    sessions: Iterable = (),
) -> List[TimeSlot]:
    """Every duration-sized candidate for the date, flagged available or not."""
    _require_duration(availability, duration_minutes)
    sessions = list(sessions)
    if daily_cap_reached(availability, target_date, sessions):
        return []

    duration = timedelta(minutes=duration_minutes)
    step = duration + timedelta(minutes=availability.buffer_minutes)
    zone = availability.zone
    slots = []
    for block_start, block_end in expand_blocks(availability, target_date):
        cursor = block_start
        while cursor + duration <= block_end:
            slot_end = cursor + duration
            conflict = first_conflict(cursor, slot_end, sessions, availability.buffer_minutes)
            slots.append(
                TimeSlot(
                    start=cursor.astimezone(zone),
                    end=slot_end.astimezone(zone),
                    available=conflict is None,
                )
            )
            cursor = cursor + step
    return slots


def generate_slots(
    availability: MentorAvailability,
    target_date: date,
    duration_minutes: int,
    sessions: Iterable = (),
    not_before: Optional[datetime] = None,
) -> List[TimeSlot]:
    slots = [
        slot
        for slot in candidate_slots(availability, target_date, duration_minutes, sessions)
        if slot.available and (not_before is None or slot.start >= not_before)
    ]
    logger.debug(
        "Generated %d slots for mentor %s on %s (%d min)",
        len(slots),
        availability.mentor_id,
        target_date.isoformat(),
        duration_minutes,
    )
    return slots


def next_available_date(
    availability: MentorAvailability,
    start_date: date,
    days: int,
    sessions: Iterable = (),
    not_before: Optional[datetime] = None,
) -> Optional[date]:
    if not availability.weekly_blocks and not availability.exceptions:
        return None
    sessions = list(sessions)
    duration = availability.session_durations[0]
    for offset in range(days):
        target = start_date + timedelta(days=offset)
        if generate_slots(availability, target, duration, sessions, not_before=not_before):
            return target
    return None


# Booking checks ----------------------------------------------------------


def validate_requested_span(availability: MentorAvailability, start: datetime, end: datetime) -> date:
    """Shape checks for a booking request. Returns the mentor-local date."""
    if start.tzinfo is None or end.tzinfo is None:
        raise ValidationFailed("Session times must include a timezone offset.")
    if end <= start:
        raise ValidationFailed("Session end must be after its start.", detail={"end": ["Must be after start."]})
    duration_minutes = (end.astimezone(dt_timezone.utc) - start.astimezone(dt_timezone.utc)).total_seconds() / 60
    if not duration_minutes.is_integer():
        raise ValidationFailed("Session duration must be a whole number of minutes.")
    _require_duration(availability, int(duration_minutes))

    local_date = start.astimezone(availability.zone).date()
    for block_start, block_end in expand_blocks(availability, local_date):
        if block_start <= start and end <= block_end:
            return local_date
    raise ValidationFailed(
        "Requested time is outside the mentor's availability.",
        detail={"start": ["Pick a time inside one of the mentor's availability blocks."]},
    )


def ensure_slot_free(
    availability: MentorAvailability, start: datetime, end: datetime, sessions: Iterable
) -> None:
    """Raised conditions here are only knowable inside the guarded write."""
    sessions = list(sessions)
    local_date = start.astimezone(availability.zone).date()
    if daily_cap_reached(availability, local_date, sessions):
        raise Conflict("The mentor has no more sessions available on this date.")
    clash = first_conflict(start, end, sessions, availability.buffer_minutes)
    if clash is not None:
        raise Conflict(
            "This time was just booked by someone else. Please pick another slot.",
            detail={"conflicting_session": [str(clash.session_id)]},
        )
