from dataclasses import replace
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings

from core import scheduling
from core.actors import ROLE_MENTOR, ROLE_STUDENT, Actor
from core.lifecycle import (
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_DECLINED,
    STATUS_PENDING,
    SessionRecord,
)
from core.models import Mentor, Session, Student
from core.notifications import Notifier, reminder_notifications, status_notification
from core.reminders import HORIZON_1H, HORIZON_24H, due_horizons, sweep


NOW = datetime(2030, 3, 4, 15, 0, tzinfo=dt_timezone.utc)


class RecordingNotifier(Notifier):
    sent = []

    def send(self, notification):
        RecordingNotifier.sent.append(notification)


def confirmed(start, session_id="s-1", status=STATUS_CONFIRMED):
    return SessionRecord(
        session_id=session_id,
        student_id="7",
        mentor_id="42",
        status=status,
        requested_start=start,
        requested_end=start + timedelta(minutes=30),
        confirmed_start=start if status == STATUS_CONFIRMED else None,
        confirmed_end=start + timedelta(minutes=30) if status == STATUS_CONFIRMED else None,
    )


class ReminderRuleTests(SimpleTestCase):
    def test_horizons_by_distance(self):
        self.assertEqual(due_horizons(confirmed(NOW + timedelta(hours=30)), NOW), [])
        self.assertEqual(due_horizons(confirmed(NOW + timedelta(hours=23)), NOW), [HORIZON_24H])
        self.assertEqual(
            due_horizons(confirmed(NOW + timedelta(minutes=40)), NOW), [HORIZON_24H, HORIZON_1H]
        )
        self.assertEqual(due_horizons(confirmed(NOW - timedelta(minutes=5)), NOW), [])

    def test_only_confirmed_sessions_get_reminders(self):
        pending = confirmed(NOW + timedelta(minutes=40), status=STATUS_PENDING)
        self.assertEqual(due_horizons(pending, NOW), [])

    def test_sweep_is_idempotent(self):
        sessions = {
            "a": confirmed(NOW + timedelta(hours=2), session_id="a"),
            "b": confirmed(NOW + timedelta(minutes=30), session_id="b"),
        }
        first = sweep(sessions.values(), NOW)
        self.assertEqual(
            [(due.session_id, due.horizon) for due in first],
            [("a", HORIZON_24H), ("b", HORIZON_24H), ("b", HORIZON_1H)],
        )
        self.assertTrue(first[-1].reminders.sent_24h)
        self.assertEqual(first[-1].reminders.scheduled_1h, NOW)

        for due in first:
            sessions[due.session_id] = replace(sessions[due.session_id], reminders=due.reminders)
        self.assertEqual(sweep(sessions.values(), NOW + timedelta(minutes=1)), [])


class NotificationMessageTests(SimpleTestCase):
    def test_cancel_goes_to_the_other_party(self):
        cancelled = confirmed(NOW, status=STATUS_CANCELLED)
        by_student = status_notification(cancelled, ROLE_STUDENT, "Jordan", "Aisha")
        self.assertEqual((by_student.recipient_role, by_student.recipient_id), (ROLE_MENTOR, "42"))
        self.assertIn("cancelled by Jordan", by_student.message)

        by_mentor = status_notification(cancelled, ROLE_MENTOR, "Jordan", "Aisha")
        self.assertEqual(by_mentor.recipient_role, ROLE_STUDENT)

    def test_mentor_decisions_go_to_the_student(self):
        declined = status_notification(confirmed(NOW, status=STATUS_DECLINED), ROLE_MENTOR, "Jordan", "Aisha")
        self.assertEqual(declined.recipient_id, "7")
        self.assertEqual(declined.message, "Aisha declined your session request.")

    def test_student_accepting_a_new_time_tells_the_mentor(self):
        accepted = status_notification(confirmed(NOW), ROLE_STUDENT, "Jordan", "Aisha")
        self.assertEqual(accepted.recipient_role, ROLE_MENTOR)
        self.assertEqual(accepted.message, "Jordan accepted one of your proposed times.")

    def test_reminders_reach_both_participants(self):
        sent = reminder_notifications(confirmed(NOW), HORIZON_1H, "Jordan", "Aisha")
        self.assertEqual([item.recipient_role for item in sent], [ROLE_STUDENT, ROLE_MENTOR])
        self.assertTrue(all("in 1 hour" in item.message for item in sent))


@override_settings(NOTIFIER_BACKEND="core.tests_reminders.RecordingNotifier")
class ReminderSweepServiceTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.student = Student.objects.create(full_name="Jordan Lee", email="jordan@example.com")
        cls.mentor = Mentor.objects.create(full_name="Dr. Aisha Smith", email="aisha@example.com")
        start = NOW + timedelta(minutes=45)
        cls.soon = Session.objects.create(
            student=cls.student,
            mentor=cls.mentor,
            status=STATUS_CONFIRMED,
            requested_start=start,
            requested_end=start + timedelta(minutes=30),
            confirmed_start=start,
            confirmed_end=start + timedelta(minutes=30),
        )
        later = NOW + timedelta(days=3)
        cls.later = Session.objects.create(
            student=cls.student,
            mentor=cls.mentor,
            status=STATUS_CONFIRMED,
            requested_start=later,
            requested_end=later + timedelta(minutes=30),
            confirmed_start=later,
            confirmed_end=later + timedelta(minutes=30),
        )
        cls.unconfirmed = Session.objects.create(
            student=cls.student,
            mentor=cls.mentor,
            status=STATUS_PENDING,
            requested_start=start,
            requested_end=start + timedelta(minutes=30),
        )

    def setUp(self):
        RecordingNotifier.sent = []

    def test_sweep_flags_each_reminder_once(self):
        with self.captureOnCommitCallbacks(execute=True):
            flagged = scheduling.run_reminder_sweep(now=NOW)
        self.assertEqual(
            sorted(due.horizon for due in flagged), [HORIZON_1H, HORIZON_24H]
        )
        self.assertEqual({due.session_id for due in flagged}, {str(self.soon.pk)})

        self.soon.refresh_from_db()
        self.assertTrue(self.soon.reminder_sent_24h)
        self.assertTrue(self.soon.reminder_sent_1h)
        self.assertEqual(self.soon.reminder_scheduled_1h, NOW)
        self.later.refresh_from_db()
        self.assertFalse(self.later.reminder_sent_24h)

        self.assertEqual(len(RecordingNotifier.sent), 4)
        self.assertIn("Dr. Aisha Smith", RecordingNotifier.sent[0].message)

        with self.captureOnCommitCallbacks(execute=True):
            again = scheduling.run_reminder_sweep(now=NOW + timedelta(minutes=5))
        self.assertEqual(again, [])
        self.assertEqual(len(RecordingNotifier.sent), 4)

    def test_command_reports_flagged_reminders(self):
        out = StringIO()
        call_command("send_session_reminders", "--now", NOW.isoformat(), stdout=out)
        self.assertIn("Processed 2 reminders.", out.getvalue())
        self.assertIn(str(self.soon.pk), out.getvalue())

    def test_status_change_notifies_after_commit(self):
        mentor = Actor(self.mentor.pk, ROLE_MENTOR)
        with self.captureOnCommitCallbacks(execute=True):
            scheduling.decline_session(mentor, self.unconfirmed.pk, "Travelling that week", now=NOW)
        self.assertEqual(len(RecordingNotifier.sent), 1)
        self.assertEqual(RecordingNotifier.sent[0].recipient_id, str(self.student.pk))
        self.assertEqual(
            RecordingNotifier.sent[0].message, "Dr. Aisha Smith declined your session request."
        )
