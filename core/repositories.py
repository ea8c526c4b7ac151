import logging
from datetime import datetime
from typing import List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils.dateparse import parse_datetime

from . import availability as rules
from .errors import Conflict, NotFound
from .lifecycle import (
    RESERVED_STATUSES,
    STATUS_CONFIRMED,
    ReminderState,
    RescheduleOption,
    SessionRecord,
)
from .models import Mentor, MentorAvailability, Session, SessionNote
from .profiles import MentorProfile, normalize_mentor_profile
from .storage import (
    AvailabilityStore,
    MentorDirectory,
    SessionNoteRecord,
    SessionNoteStore,
    SessionStore,
)

logger = logging.getLogger(__name__)


LOOKUP_ERRORS = (ValueError, TypeError, DjangoValidationError)


def _options_from_json(raw) -> tuple:
    options = []
    for item in raw or ():
        start = parse_datetime(item.get("start", ""))
        end = parse_datetime(item.get("end", ""))
        if start and end:
            options.append(RescheduleOption(start=start, end=end))
    return tuple(options)


def session_to_record(row: Session) -> SessionRecord:
    return SessionRecord(
        session_id=str(row.pk),
        student_id=str(row.student_id),
        mentor_id=str(row.mentor_id),
        status=row.status,
        requested_start=row.requested_start,
        requested_end=row.requested_end,
        confirmed_start=row.confirmed_start,
        confirmed_end=row.confirmed_end,
        student_timezone=row.student_timezone,
        mentor_timezone=row.mentor_timezone,
        connection_preference=row.connection_preference,
        reschedule_options=_options_from_json(row.reschedule_options),
        student_notes=row.student_notes,
        mentor_response_reason=row.mentor_response_reason,
        reminders=ReminderState(
            sent_24h=row.reminder_sent_24h,
            sent_1h=row.reminder_sent_1h,
            scheduled_24h=row.reminder_scheduled_24h,
            scheduled_1h=row.reminder_scheduled_1h,
        ),
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _mutable_fields(record: SessionRecord) -> dict:
    # Reminder flags are owned by the sweep and written separately.
    return {
        "status": record.status,
        "requested_start": record.requested_start,
        "requested_end": record.requested_end,
        "confirmed_start": record.confirmed_start,
        "confirmed_end": record.confirmed_end,
        "reschedule_options": [option.as_dict() for option in record.reschedule_options],
        "mentor_response_reason": record.mentor_response_reason,
        "updated_by": record.updated_by,
        "updated_at": record.updated_at,
    }


class DjangoSessionStore(SessionStore):
    def _row(self, session_id) -> Session:
        try:
            return Session.objects.get(pk=session_id)
        except (Session.DoesNotExist, *LOOKUP_ERRORS):
            raise NotFound(f"Session {session_id} not found.")

    def get(self, session_id) -> SessionRecord:
        return session_to_record(self._row(session_id))

    def reserved_for_mentor(self, mentor_id) -> List[SessionRecord]:
        rows = Session.objects.filter(mentor_id=mentor_id, status__in=RESERVED_STATUSES)
        return [session_to_record(row) for row in rows]

    def create_guarded(self, record, check) -> SessionRecord:
        with transaction.atomic():
            locked = Mentor.objects.select_for_update().filter(pk=record.mentor_id).first()
            if locked is None:
                raise NotFound(f"Mentor {record.mentor_id} not found.")
            check(self.reserved_for_mentor(record.mentor_id))
            row = Session.objects.create(
                id=record.session_id,
                student_id=record.student_id,
                mentor_id=record.mentor_id,
                student_timezone=record.student_timezone,
                mentor_timezone=record.mentor_timezone,
                connection_preference=record.connection_preference,
                student_notes=record.student_notes,
                created_at=record.created_at,
                **_mutable_fields(record),
            )
        return session_to_record(row)

    def compare_and_swap_guarded(self, record, expected_status, check) -> SessionRecord:
        with transaction.atomic():
            locked = Mentor.objects.select_for_update().filter(pk=record.mentor_id).first()
            if locked is None:
                raise NotFound(f"Mentor {record.mentor_id} not found.")
            others = [
                session
                for session in self.reserved_for_mentor(record.mentor_id)
                if session.session_id != str(record.session_id)
            ]
            check(others)
            return self.compare_and_swap(record, expected_status)

    def compare_and_swap(self, record, expected_status) -> SessionRecord:
        try:
            updated = Session.objects.filter(pk=record.session_id, status=expected_status).update(
                **_mutable_fields(record)
            )
        except LOOKUP_ERRORS:
            raise NotFound(f"Session {record.session_id} not found.")
        if updated:
            return record

        current = Session.objects.filter(pk=record.session_id).values_list("status", flat=True).first()
        if current is None:
            raise NotFound(f"Session {record.session_id} not found.")
        logger.warning(
            "Rejected write to session %s: expected %s, found %s",
            record.session_id,
            expected_status,
            current,
        )
        raise Conflict(
            "This session was changed by someone else. Reload it and try again.",
            detail={"status": [current]},
        )

    def confirmed_starting_between(self, after: datetime, until: datetime) -> List[SessionRecord]:
        window = Q(confirmed_start__gt=after, confirmed_start__lte=until) | Q(
            confirmed_start__isnull=True, requested_start__gt=after, requested_start__lte=until
        )
        rows = Session.objects.filter(window, status=STATUS_CONFIRMED)
        return [session_to_record(row) for row in rows]

    def flag_reminder(self, record: SessionRecord, horizon: str) -> bool:
        sent_field = f"reminder_sent_{horizon}"
        scheduled_field = f"reminder_scheduled_{horizon}"
        updated = Session.objects.filter(
            pk=record.session_id, status=STATUS_CONFIRMED, **{sent_field: False}
        ).update(**{sent_field: True, scheduled_field: getattr(record.reminders, f"scheduled_{horizon}")})
        return bool(updated)


class DjangoAvailabilityStore(AvailabilityStore):
    def get(self, mentor_id) -> Optional[rules.MentorAvailability]:
        try:
            row = MentorAvailability.objects.filter(mentor_id=mentor_id).first()
        except LOOKUP_ERRORS:
            return None
        if row is None:
            return None
        return rules.parse_availability(
            {
                "timezone": row.timezone,
                "session_durations": row.session_durations,
                "buffer_minutes": row.buffer_minutes,
                "max_sessions_per_day": row.max_sessions_per_day,
                "weekly_blocks": row.weekly_blocks,
                "exceptions": row.exceptions,
            },
            mentor_id=row.mentor_id,
        )

    def save(self, availability, now) -> rules.MentorAvailability:
        payload = rules.availability_to_dict(availability)
        MentorAvailability.objects.update_or_create(
            mentor_id=availability.mentor_id,
            defaults={**payload, "updated_at": now},
        )
        return availability


class DjangoSessionNoteStore(SessionNoteStore):
    @staticmethod
    def _to_record(row: SessionNote) -> SessionNoteRecord:
        return SessionNoteRecord(
            note_id=str(row.pk),
            session_id=str(row.session_id),
            mentor_id=str(row.mentor_id),
            note=row.note,
            follow_ups=row.follow_ups,
            created_at=row.created_at,
        )

    def add(self, session_id, mentor_id, note, follow_ups, now) -> SessionNoteRecord:
        row = SessionNote.objects.create(
            session_id=session_id,
            mentor_id=mentor_id,
            note=note,
            follow_ups=follow_ups,
            created_at=now,
        )
        return self._to_record(row)

    def list_for_session(self, session_id) -> List[SessionNoteRecord]:
        return [self._to_record(row) for row in SessionNote.objects.filter(session_id=session_id)]


class DjangoMentorDirectory(MentorDirectory):
    def get(self, mentor_id) -> MentorProfile:
        try:
            mentor = Mentor.objects.get(pk=mentor_id)
        except (Mentor.DoesNotExist, *LOOKUP_ERRORS):
            raise NotFound(f"Mentor {mentor_id} not found.")
        return normalize_mentor_profile(mentor.as_profile_input())

    def candidates(self) -> List[MentorProfile]:
        return [
            normalize_mentor_profile(mentor.as_profile_input())
            for mentor in Mentor.objects.filter(is_active=True).order_by("id")
        ]
