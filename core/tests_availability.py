from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

from django.test import SimpleTestCase

from core.availability import (
    availability_to_dict,
    day_of_week,
    ensure_slot_free,
    expand_blocks,
    generate_slots,
    next_available_date,
    parse_availability,
    validate_requested_span,
)
from core.errors import Conflict, ValidationFailed
from core.lifecycle import STATUS_CANCELLED, STATUS_CONFIRMED, STATUS_PENDING, SessionRecord
from core.timezones import get_zone, is_valid_zone


NEW_YORK = ZoneInfo("America/New_York")
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)


def availability(**overrides):
    raw = {
        "timezone": "America/New_York",
        "session_durations": [30],
        "buffer_minutes": 15,
        "max_sessions_per_day": None,
        "weekly_blocks": [{"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}],
        "exceptions": [],
    }
    raw.update(overrides)
    return parse_availability(raw, "42")


def at(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=NEW_YORK)


def booked(start, end, status=STATUS_CONFIRMED, session_id="existing"):
    return SessionRecord(
        session_id=session_id,
        student_id="7",
        mentor_id="42",
        status=status,
        requested_start=start,
        requested_end=end,
    )


def local_starts(slots):
    return [slot.start.astimezone(NEW_YORK).strftime("%H:%M") for slot in slots]


class ParseAvailabilityTests(SimpleTestCase):
    def test_sunday_is_day_zero(self):
        self.assertEqual(day_of_week(date(2030, 1, 6)), 0)
        self.assertEqual(day_of_week(MONDAY), 1)
        self.assertEqual(day_of_week(date(2030, 1, 12)), 6)

    def test_camel_case_payload_is_accepted(self):
        parsed = parse_availability(
            {
                "timezone": "Europe/Berlin",
                "sessionDurations": [30, 60, 30],
                "bufferMinutes": 10,
                "maxSessionsPerDay": 3,
                "weeklyBlocks": [{"dayOfWeek": 3, "startTime": "18:00", "endTime": "20:00"}],
            },
            7,
        )
        self.assertEqual(parsed.mentor_id, "7")
        self.assertEqual(parsed.session_durations, (30, 60))
        self.assertEqual(parsed.max_sessions_per_day, 3)
        self.assertEqual(parsed.weekly_blocks[0].start, time(18, 0))

    def test_invalid_fields_are_collected(self):
        with self.assertRaises(ValidationFailed) as ctx:
            parse_availability(
                {
                    "timezone": "Nowhere/Special",
                    "session_durations": [],
                    "buffer_minutes": -5,
                    "weekly_blocks": [
                        {"day_of_week": 7, "start_time": "09:00", "end_time": "10:00"},
                        {"day_of_week": 2, "start_time": "11:00", "end_time": "10:00"},
                    ],
                },
                "42",
            )
        errors = ctx.exception.detail
        self.assertIn("timezone", errors)
        self.assertIn("session_durations", errors)
        self.assertIn("buffer_minutes", errors)
        self.assertIn("weekly_blocks[0].day_of_week", errors)
        self.assertIn("weekly_blocks[1]", errors)

    def test_exception_rules(self):
        with self.assertRaises(ValidationFailed) as ctx:
            availability(
                exceptions=[
                    {"date": "2030-01-07", "type": "blocked"},
                    {"date": "2030-01-07", "type": "blocked"},
                    {"date": "2030-01-08", "type": "override"},
                    {"date": "2030-01-09", "type": "holiday"},
                    {"date": "not-a-date", "type": "blocked"},
                ]
            )
        errors = ctx.exception.detail
        self.assertIn("exceptions[1].date", errors)
        self.assertIn("exceptions[2].blocks", errors)
        self.assertIn("exceptions[3].type", errors)
        self.assertIn("exceptions[4].date", errors)

    def test_serialized_form_uses_snake_case_and_hh_mm(self):
        payload = availability_to_dict(
            availability(exceptions=[{"date": "2030-01-14", "type": "blocked"}])
        )
        self.assertEqual(
            payload["weekly_blocks"], [{"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}]
        )
        self.assertEqual(payload["exceptions"], [{"date": "2030-01-14", "type": "blocked", "blocks": []}])


class SlotGenerationTests(SimpleTestCase):
    def test_morning_block_with_buffer(self):
        slots = generate_slots(availability(), MONDAY, 30)

        self.assertEqual(local_starts(slots), ["09:00", "09:45", "10:30", "11:15"])
        self.assertLessEqual(slots[-1].end, at(MONDAY, 12))
        for previous, current in zip(slots, slots[1:]):
            self.assertGreaterEqual(current.start - previous.start, timedelta(minutes=45))
        for slot in slots:
            self.assertEqual(slot.end - slot.start, timedelta(minutes=30))

    def test_blocked_exception_wins_over_weekly_block(self):
        blocked = availability(exceptions=[{"date": MONDAY.isoformat(), "type": "blocked"}])
        self.assertEqual(expand_blocks(blocked, MONDAY), [])
        self.assertEqual(generate_slots(blocked, MONDAY, 30), [])

    def test_override_exception_replaces_weekly_blocks(self):
        override = availability(
            exceptions=[
                {
                    "date": MONDAY.isoformat(),
                    "type": "override",
                    "blocks": [{"start_time": "14:00", "end_time": "15:00"}],
                }
            ]
        )
        self.assertEqual(local_starts(generate_slots(override, MONDAY, 30)), ["14:00"])

    def test_override_can_open_a_day_without_weekly_blocks(self):
        override = availability(
            exceptions=[
                {
                    "date": TUESDAY.isoformat(),
                    "type": "override",
                    "blocks": [{"start_time": "08:00", "end_time": "08:30"}],
                }
            ]
        )
        self.assertEqual(local_starts(generate_slots(override, TUESDAY, 30)), ["08:00"])

    def test_no_weekly_block_means_no_slots(self):
        self.assertEqual(generate_slots(availability(), TUESDAY, 30), [])

    def test_existing_sessions_are_padded_by_buffer(self):
        sessions = [
            booked(at(MONDAY, 10), at(MONDAY, 10, 30)),
            booked(at(MONDAY, 11, 15), at(MONDAY, 11, 45), status=STATUS_CANCELLED, session_id="gone"),
        ]
        slots = generate_slots(availability(), MONDAY, 30, sessions)
        self.assertEqual(local_starts(slots), ["09:00", "11:15"])

    def test_daily_cap_closes_the_day(self):
        capped = availability(max_sessions_per_day=1)
        sessions = [booked(at(MONDAY, 9), at(MONDAY, 9, 30), status=STATUS_PENDING)]
        self.assertEqual(generate_slots(capped, MONDAY, 30, sessions), [])

    def test_past_slots_are_dropped(self):
        slots = generate_slots(availability(), MONDAY, 30, not_before=at(MONDAY, 10))
        self.assertEqual(local_starts(slots), ["10:30", "11:15"])

    def test_unknown_duration_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            generate_slots(availability(), MONDAY, 45)

    def test_next_available_date_skips_blocked_days(self):
        av = availability(exceptions=[{"date": "2030-01-14", "type": "blocked"}])
        self.assertEqual(next_available_date(availability(), TUESDAY, 7), date(2030, 1, 14))
        self.assertIsNone(next_available_date(av, TUESDAY, 7))
        self.assertEqual(next_available_date(av, TUESDAY, 14), date(2030, 1, 21))

    def test_next_available_date_without_any_blocks(self):
        self.assertIsNone(next_available_date(availability(weekly_blocks=[]), MONDAY, 30))

    def test_fall_back_day_slots_last_real_hours(self):
        fall_back = date(2025, 11, 2)
        av = availability(
            session_durations=[60],
            buffer_minutes=0,
            weekly_blocks=[{"day_of_week": 0, "start_time": "00:00", "end_time": "03:00"}],
        )
        slots = generate_slots(av, fall_back, 60)

        self.assertEqual(local_starts(slots), ["00:00", "01:00", "01:00", "02:00"])
        for slot in slots:
            elapsed = slot.end.astimezone(dt_timezone.utc) - slot.start.astimezone(dt_timezone.utc)
            self.assertEqual(elapsed, timedelta(minutes=60))
        self.assertEqual(
            slots[-1].end.astimezone(dt_timezone.utc), datetime(2025, 11, 2, 8, 0, tzinfo=dt_timezone.utc)
        )

    def test_spring_forward_gap_is_skipped(self):
        spring_forward = date(2025, 3, 9)
        av = availability(
            session_durations=[60],
            buffer_minutes=0,
            weekly_blocks=[{"day_of_week": 0, "start_time": "01:00", "end_time": "04:00"}],
        )
        self.assertEqual(local_starts(generate_slots(av, spring_forward, 60)), ["01:00", "03:00"])

        gap_start = availability(
            session_durations=[30],
            buffer_minutes=0,
            weekly_blocks=[{"day_of_week": 0, "start_time": "02:30", "end_time": "04:00"}],
        )
        self.assertEqual(local_starts(generate_slots(gap_start, spring_forward, 30)), ["03:30"])


class BookingCheckTests(SimpleTestCase):
    def test_span_inside_a_block_returns_local_date(self):
        self.assertEqual(
            validate_requested_span(availability(), at(MONDAY, 9, 45), at(MONDAY, 10, 15)), MONDAY
        )

    def test_span_must_be_aware_and_offered(self):
        naive = datetime(2030, 1, 7, 9, 0)
        with self.assertRaises(ValidationFailed):
            validate_requested_span(availability(), naive, naive + timedelta(minutes=30))
        with self.assertRaises(ValidationFailed):
            validate_requested_span(availability(), at(MONDAY, 9), at(MONDAY, 10))

    def test_span_outside_blocks_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            validate_requested_span(availability(), at(MONDAY, 11, 45), at(MONDAY, 12, 15))
        with self.assertRaises(ValidationFailed):
            validate_requested_span(availability(), at(TUESDAY, 9), at(TUESDAY, 9, 30))

    def test_overlap_raises_conflict(self):
        sessions = [booked(at(MONDAY, 10), at(MONDAY, 10, 30))]
        with self.assertRaises(Conflict) as ctx:
            ensure_slot_free(availability(), at(MONDAY, 10, 30), at(MONDAY, 11), sessions)
        self.assertEqual(ctx.exception.detail, {"conflicting_session": ["existing"]})

    def test_free_span_passes(self):
        sessions = [booked(at(MONDAY, 10), at(MONDAY, 10, 30))]
        ensure_slot_free(availability(), at(MONDAY, 11), at(MONDAY, 11, 30), sessions)

    def test_daily_cap_raises_conflict(self):
        sessions = [booked(at(MONDAY, 9), at(MONDAY, 9, 30))]
        with self.assertRaises(Conflict):
            ensure_slot_free(
                availability(max_sessions_per_day=1), at(MONDAY, 11), at(MONDAY, 11, 30), sessions
            )


class TimezoneNameTests(SimpleTestCase):
    def test_directory_and_garbage_names_are_not_zones(self):
        for name in ("America", "Europe", "../etc/passwd", "", None, 5):
            with self.subTest(name=name):
                self.assertFalse(is_valid_zone(name))
        self.assertTrue(is_valid_zone("America/New_York"))

    def test_get_zone_rejects_directory_name(self):
        with self.assertRaises(ValidationFailed) as ctx:
            get_zone("America")
        self.assertIn("timezone", ctx.exception.detail)
