from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from django.test import SimpleTestCase, TestCase

from core import scheduling
from core.actors import ROLE_ADMIN, ROLE_MENTOR, ROLE_STUDENT, Actor
from core.availability import parse_availability
from core.errors import AuthorizationDenied, Conflict, InvalidTransition, NotFound, ValidationFailed
from core.lifecycle import (
    ACTION_ACCEPT_RESCHEDULE,
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_DECLINE,
    ACTION_PROPOSE_RESCHEDULE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_DECLINED,
    STATUS_PENDING,
    STATUS_RESCHEDULE_PROPOSED,
    STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    RescheduleOption,
    SessionRecord,
    allowed_actions,
    apply_transition,
    new_session,
)
from core.models import Mentor, MentorAvailability, Session, Student
from core.repositories import DjangoAvailabilityStore, DjangoSessionStore


NEW_YORK = ZoneInfo("America/New_York")
MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=NEW_YORK)

STUDENT = Actor("7", ROLE_STUDENT)
MENTOR = Actor("42", ROLE_MENTOR)


def at(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=NEW_YORK)


OPTION = RescheduleOption(start=at(MONDAY, 11), end=at(MONDAY, 11, 30))


def record(status=STATUS_PENDING, **changes):
    values = dict(
        session_id="s-1",
        student_id="7",
        mentor_id="42",
        status=status,
        requested_start=at(MONDAY, 9),
        requested_end=at(MONDAY, 9, 30),
        reschedule_options=(OPTION,),
    )
    values.update(changes)
    return SessionRecord(**values)


class TransitionTableTests(SimpleTestCase):
    def test_every_status_and_action_pair(self):
        for status in STATUSES:
            for action, transition in TRANSITIONS.items():
                actor = MENTOR if ROLE_MENTOR in transition.roles else STUDENT
                with self.subTest(status=status, action=action):
                    current = record(status)
                    kwargs = {"now": NOW, "reason": "Busy", "options": [OPTION], "option_index": 0}
                    if status in transition.sources:
                        updated = apply_transition(current, action, actor, **kwargs)
                        self.assertEqual(updated.status, transition.target)
                        self.assertEqual(updated.updated_by, actor.user_id)
                        self.assertEqual(updated.updated_at, NOW)
                    else:
                        with self.assertRaises(InvalidTransition):
                            apply_transition(current, action, actor, **kwargs)
                        self.assertEqual(current.status, status)

    def test_terminal_statuses_have_no_way_out(self):
        for status in TERMINAL_STATUSES:
            for actor in (MENTOR, STUDENT):
                self.assertEqual(allowed_actions(record(status), actor), [])

    def test_allowed_actions_per_role(self):
        self.assertEqual(
            allowed_actions(record(STATUS_PENDING), MENTOR),
            [ACTION_CONFIRM, ACTION_DECLINE, ACTION_PROPOSE_RESCHEDULE, ACTION_CANCEL],
        )
        self.assertEqual(allowed_actions(record(STATUS_PENDING), STUDENT), [ACTION_CANCEL])
        self.assertEqual(
            allowed_actions(record(STATUS_RESCHEDULE_PROPOSED), STUDENT),
            [ACTION_ACCEPT_RESCHEDULE, ACTION_CANCEL],
        )
        self.assertEqual(allowed_actions(record(STATUS_PENDING), Actor("1", ROLE_ADMIN)), [])

    def test_student_cannot_decline(self):
        current = record(STATUS_PENDING)
        with self.assertRaises(AuthorizationDenied):
            apply_transition(current, ACTION_DECLINE, STUDENT, now=NOW, reason="No")
        self.assertEqual(current.status, STATUS_PENDING)

    def test_outsiders_are_denied(self):
        for outsider in (Actor("43", ROLE_MENTOR), Actor("8", ROLE_STUDENT), Actor("1", ROLE_ADMIN)):
            with self.subTest(outsider=outsider):
                with self.assertRaises(AuthorizationDenied):
                    apply_transition(record(), ACTION_CANCEL, outsider, now=NOW)

    def test_unknown_action(self):
        with self.assertRaises(InvalidTransition):
            apply_transition(record(), "archive", MENTOR, now=NOW)

    def test_confirm_copies_requested_span(self):
        confirmed = apply_transition(record(), ACTION_CONFIRM, MENTOR, now=NOW)
        self.assertEqual(confirmed.confirmed_start, at(MONDAY, 9))
        self.assertEqual(confirmed.confirmed_end, at(MONDAY, 9, 30))

    def test_decline_needs_a_reason(self):
        with self.assertRaises(ValidationFailed):
            apply_transition(record(), ACTION_DECLINE, MENTOR, now=NOW, reason="   ")
        declined = apply_transition(record(), ACTION_DECLINE, MENTOR, now=NOW, reason=" Travelling ")
        self.assertEqual(declined.status, STATUS_DECLINED)
        self.assertEqual(declined.mentor_response_reason, "Travelling")

    def test_reschedule_needs_valid_options(self):
        with self.assertRaises(ValidationFailed):
            apply_transition(record(), ACTION_PROPOSE_RESCHEDULE, MENTOR, now=NOW, options=[])
        backwards = RescheduleOption(start=at(MONDAY, 11), end=at(MONDAY, 10))
        with self.assertRaises(ValidationFailed):
            apply_transition(record(), ACTION_PROPOSE_RESCHEDULE, MENTOR, now=NOW, options=[backwards])

    def test_accepting_a_reschedule_replaces_the_span(self):
        proposed = record(STATUS_RESCHEDULE_PROPOSED)
        accepted = apply_transition(proposed, ACTION_ACCEPT_RESCHEDULE, STUDENT, now=NOW, option_index=0)
        self.assertEqual(accepted.status, STATUS_CONFIRMED)
        self.assertEqual(accepted.start, OPTION.start)
        self.assertEqual(accepted.requested_end, OPTION.end)
        self.assertEqual(accepted.reschedule_options, ())

    def test_accepting_an_unknown_option(self):
        for index in (1, -1, True, None):
            with self.subTest(index=index):
                with self.assertRaises(ValidationFailed):
                    apply_transition(
                        record(STATUS_RESCHEDULE_PROPOSED),
                        ACTION_ACCEPT_RESCHEDULE,
                        STUDENT,
                        now=NOW,
                        option_index=index,
                    )

    def test_only_students_create_sessions(self):
        kwargs = dict(
            session_id="s-2",
            mentor_id="42",
            start=at(MONDAY, 9),
            end=at(MONDAY, 9, 30),
            connection_preference="video",
            now=NOW,
        )
        with self.assertRaises(AuthorizationDenied):
            new_session(MENTOR, **kwargs)
        created = new_session(STUDENT, **kwargs)
        self.assertEqual(created.status, STATUS_PENDING)
        self.assertEqual(created.student_id, "7")
        with self.assertRaises(ValidationFailed):
            new_session(STUDENT, **dict(kwargs, connection_preference="pigeon"))


class SessionServiceTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.student = Student.objects.create(full_name="Jordan Lee", email="jordan@example.com")
        cls.other_student = Student.objects.create(full_name="Sam Park", email="sam@example.com")
        cls.mentor = Mentor.objects.create(
            full_name="Dr. Aisha Smith", email="aisha@example.com", timezone="America/New_York"
        )
        cls.inactive_mentor = Mentor.objects.create(
            full_name="Off Duty", email="off@example.com", is_active=False
        )
        DjangoAvailabilityStore().save(
            parse_availability(
                {
                    "timezone": "America/New_York",
                    "session_durations": [30],
                    "buffer_minutes": 15,
                    "weekly_blocks": [{"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}],
                },
                cls.mentor.id,
            ),
            NOW,
        )

    def setUp(self):
        self.student_actor = Actor(self.student.id, ROLE_STUDENT)
        self.mentor_actor = Actor(self.mentor.id, ROLE_MENTOR)

    def request(self, start=None, actor=None, mentor=None):
        start = start or at(MONDAY, 9)
        return scheduling.create_session_request(
            actor or self.student_actor,
            mentor_id=(mentor or self.mentor).id,
            start=start,
            end=start + timedelta(minutes=30),
            connection_preference="video",
            student_timezone="America/Los_Angeles",
            now=NOW,
        )

    def test_request_is_stored_pending(self):
        created = self.request()
        row = Session.objects.get(pk=created.session_id)
        self.assertEqual(row.status, STATUS_PENDING)
        self.assertEqual(row.student_id, self.student.id)
        self.assertEqual(row.mentor_timezone, "America/New_York")
        self.assertEqual(row.updated_by, str(self.student.id))

    def test_overlapping_request_conflicts(self):
        self.request()
        with self.assertRaises(Conflict):
            self.request(at(MONDAY, 9, 15), actor=Actor(self.other_student.id, ROLE_STUDENT))
        self.assertEqual(Session.objects.count(), 1)

    def test_request_checks(self):
        with self.assertRaises(AuthorizationDenied):
            self.request(actor=self.mentor_actor)
        with self.assertRaises(ValidationFailed):
            self.request(mentor=self.inactive_mentor)
        with self.assertRaises(ValidationFailed):
            self.request(at(MONDAY, 13))
        with self.assertRaises(ValidationFailed):
            scheduling.create_session_request(
                self.student_actor,
                mentor_id=self.mentor.id,
                start=at(MONDAY, 9),
                end=at(MONDAY, 9, 30),
                now=at(MONDAY, 10),
            )
        with self.assertRaises(NotFound):
            scheduling.create_session_request(
                self.student_actor, mentor_id=99999, start=at(MONDAY, 9), end=at(MONDAY, 9, 30), now=NOW
            )

    def test_student_decline_leaves_session_pending(self):
        created = self.request()
        with self.assertRaises(AuthorizationDenied):
            scheduling.decline_session(self.student_actor, created.session_id, "Changed my mind", now=NOW)
        self.assertEqual(Session.objects.get(pk=created.session_id).status, STATUS_PENDING)

    def test_reschedule_round_trip(self):
        created = self.request()
        option = RescheduleOption(start=at(MONDAY, 10, 30), end=at(MONDAY, 11))
        scheduling.propose_reschedule(self.mentor_actor, created.session_id, [option], now=NOW)
        row = Session.objects.get(pk=created.session_id)
        self.assertEqual(row.status, STATUS_RESCHEDULE_PROPOSED)
        self.assertEqual(len(row.reschedule_options), 1)

        scheduling.accept_reschedule(self.student_actor, created.session_id, 0, now=NOW)
        row.refresh_from_db()
        self.assertEqual(row.status, STATUS_CONFIRMED)
        self.assertEqual(row.confirmed_start, option.start)
        self.assertEqual(row.requested_start, option.start)
        self.assertEqual(row.reschedule_options, [])

    def test_accepting_a_time_booked_meanwhile_conflicts(self):
        created = self.request()
        option = RescheduleOption(start=at(MONDAY, 11), end=at(MONDAY, 11, 30))
        scheduling.propose_reschedule(self.mentor_actor, created.session_id, [option], now=NOW)

        other = self.request(at(MONDAY, 11), actor=Actor(self.other_student.id, ROLE_STUDENT))
        scheduling.confirm_session(self.mentor_actor, other.session_id, now=NOW)

        with self.assertRaises(Conflict):
            scheduling.accept_reschedule(self.student_actor, created.session_id, 0, now=NOW)
        row = Session.objects.get(pk=created.session_id)
        self.assertEqual(row.status, STATUS_RESCHEDULE_PROPOSED)
        self.assertEqual(row.requested_start, at(MONDAY, 9))
        self.assertEqual(
            Session.objects.filter(mentor=self.mentor, status=STATUS_CONFIRMED).count(), 1
        )

    def test_accepting_a_time_respects_the_daily_cap(self):
        capped = Mentor.objects.create(full_name="Capped", email="capped@example.com")
        DjangoAvailabilityStore().save(
            parse_availability(
                {
                    "timezone": "America/New_York",
                    "session_durations": [30],
                    "max_sessions_per_day": 1,
                    "weekly_blocks": [
                        {"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"},
                        {"day_of_week": 2, "start_time": "09:00", "end_time": "12:00"},
                    ],
                },
                capped.id,
            ),
            NOW,
        )
        tuesday = MONDAY + timedelta(days=1)
        created = self.request(at(tuesday, 9), mentor=capped)
        self.request(at(MONDAY, 9), actor=Actor(self.other_student.id, ROLE_STUDENT), mentor=capped)
        option = RescheduleOption(start=at(MONDAY, 11), end=at(MONDAY, 11, 30))
        scheduling.propose_reschedule(Actor(capped.id, ROLE_MENTOR), created.session_id, [option], now=NOW)

        with self.assertRaises(Conflict):
            scheduling.accept_reschedule(self.student_actor, created.session_id, 0, now=NOW)
        self.assertEqual(Session.objects.get(pk=created.session_id).status, STATUS_RESCHEDULE_PROPOSED)

    def test_availability_rows_default_their_timestamp(self):
        row = MentorAvailability.objects.create(mentor=self.inactive_mentor, timezone="UTC")
        self.assertIsNotNone(row.updated_at)
        self.assertEqual(MentorAvailability._meta.get_field("timezone").max_length, 64)

    def test_cancel_from_reschedule_proposed(self):
        created = self.request()
        scheduling.propose_reschedule(self.mentor_actor, created.session_id, [OPTION], now=NOW)
        cancelled = scheduling.cancel_session(self.student_actor, created.session_id, now=NOW)
        self.assertEqual(cancelled.status, STATUS_CANCELLED)

    def test_stale_write_is_rejected(self):
        created = self.request()
        store = DjangoSessionStore()
        stale = store.get(created.session_id)

        scheduling.confirm_session(self.mentor_actor, created.session_id, now=NOW)
        declined = apply_transition(stale, ACTION_DECLINE, self.mentor_actor, now=NOW, reason="Late")
        with self.assertLogs("core.repositories", level="WARNING"):
            with self.assertRaises(Conflict) as ctx:
                store.compare_and_swap(declined, expected_status=stale.status)
        self.assertEqual(ctx.exception.detail, {"status": [STATUS_CONFIRMED]})
        self.assertEqual(Session.objects.get(pk=created.session_id).status, STATUS_CONFIRMED)

    def test_complete_after_confirm(self):
        created = self.request()
        scheduling.confirm_session(self.mentor_actor, created.session_id, now=NOW)
        completed = scheduling.complete_session(self.mentor_actor, created.session_id, now=NOW)
        self.assertEqual(completed.status, STATUS_COMPLETED)
        with self.assertRaises(InvalidTransition):
            scheduling.cancel_session(self.student_actor, created.session_id, now=NOW)

    def test_unknown_session_is_not_found(self):
        with self.assertRaises(NotFound):
            scheduling.confirm_session(self.mentor_actor, "not-a-uuid", now=NOW)
        with self.assertRaises(NotFound):
            scheduling.get_session(self.mentor_actor, "6f1c1c7e-0000-4000-8000-000000000000")

    def test_notes_are_private_to_the_mentor(self):
        created = self.request()
        note = scheduling.add_session_note(
            self.mentor_actor, created.session_id, "  Went over study plan ", "Share planner", now=NOW
        )
        self.assertEqual(note.note, "Went over study plan")
        with self.assertRaises(AuthorizationDenied):
            scheduling.add_session_note(self.student_actor, created.session_id, "Hi", now=NOW)
        with self.assertRaises(AuthorizationDenied):
            scheduling.list_session_notes(self.student_actor, created.session_id)
        with self.assertRaises(ValidationFailed):
            scheduling.add_session_note(self.mentor_actor, created.session_id, "   ", now=NOW)
        notes = scheduling.list_session_notes(Actor("1", ROLE_ADMIN), created.session_id)
        self.assertEqual([item.note for item in notes], ["Went over study plan"])

    def test_slots_exclude_reserved_time(self):
        self.request()
        slots = scheduling.get_available_slots(self.mentor.id, MONDAY, now=NOW)
        starts = [slot.start.astimezone(NEW_YORK).strftime("%H:%M") for slot in slots]
        self.assertEqual(starts, ["09:45", "10:30", "11:15"])
        self.assertEqual(scheduling.next_available(self.mentor.id, now=NOW), MONDAY)
        self.assertIsNone(scheduling.next_available(self.inactive_mentor.id, now=NOW))

    def test_only_the_owner_saves_availability(self):
        raw = {
            "timezone": "America/New_York",
            "session_durations": [60],
            "weekly_blocks": [{"day_of_week": 2, "start_time": "17:00", "end_time": "19:00"}],
        }
        with self.assertRaises(AuthorizationDenied):
            scheduling.save_mentor_availability(Actor("1", ROLE_ADMIN), self.mentor.id, raw)
        with self.assertRaises(AuthorizationDenied):
            scheduling.save_mentor_availability(
                Actor(self.inactive_mentor.id, ROLE_MENTOR), self.mentor.id, raw
            )
        saved = scheduling.save_mentor_availability(
            Actor(self.inactive_mentor.id, ROLE_MENTOR), self.inactive_mentor.id, raw, now=NOW
        )
        self.assertEqual(saved.session_durations, (60,))
        stored = scheduling.get_mentor_availability(self.inactive_mentor.id)
        self.assertEqual(stored.weekly_blocks[0].day_of_week, 2)
