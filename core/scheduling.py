"""
Scheduling and matching services.

Each operation reads through the stores, lets the engine decide, then writes
through a guarded store call. Every operation takes an explicit ``Actor``;
nothing here looks at the request or the logged-in user.
"""
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .actors import ROLE_ADMIN, ROLE_MENTOR, ROLE_STUDENT, Actor
from .availability import (
    MentorAvailability,
    TimeSlot,
    ensure_slot_free,
    first_conflict,
    generate_slots,
    next_available_date,
    parse_availability,
    validate_requested_span,
)
from .errors import AuthorizationDenied, Conflict, ValidationFailed
from .lifecycle import (
    ACTION_ACCEPT_RESCHEDULE,
    ACTION_CANCEL,
    ACTION_COMPLETE,
    ACTION_CONFIRM,
    ACTION_DECLINE,
    ACTION_PROPOSE_RESCHEDULE,
    SessionRecord,
    apply_transition,
    new_session,
)
from .profiles import StudentProfile
from .ranking import MatchRun, match_mentors
from .reminders import HORIZONS, ReminderDue, sweep
from .repositories import (
    DjangoAvailabilityStore,
    DjangoMentorDirectory,
    DjangoSessionNoteStore,
    DjangoSessionStore,
)
from .signals import session_reminder_due, session_requested, session_status_changed
from .storage import (
    AvailabilityStore,
    MentorDirectory,
    SessionNoteRecord,
    SessionNoteStore,
    SessionStore,
)
from .timezones import is_valid_zone

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    sessions: SessionStore
    availability: AvailabilityStore
    notes: SessionNoteStore
    mentors: MentorDirectory


def default_stores() -> Stores:
    return Stores(
        sessions=DjangoSessionStore(),
        availability=DjangoAvailabilityStore(),
        notes=DjangoSessionNoteStore(),
        mentors=DjangoMentorDirectory(),
    )


def _resolve(stores: Optional[Stores], now: Optional[datetime]):
    return stores or default_stores(), now or timezone.now()


# Availability ------------------------------------------------------------


def get_mentor_availability(mentor_id, *, stores: Optional[Stores] = None) -> Optional[MentorAvailability]:
    stores = stores or default_stores()
    stores.mentors.get(mentor_id)
    return stores.availability.get(mentor_id)


def save_mentor_availability(
    actor: Actor, mentor_id, raw, *, stores: Optional[Stores] = None, now: Optional[datetime] = None
) -> MentorAvailability:
    stores, now = _resolve(stores, now)
    if actor.role != ROLE_MENTOR:
        raise AuthorizationDenied("Only mentors can set availability.")
    if not actor.is_mentor(mentor_id):
        raise AuthorizationDenied("You can only edit your own availability.")
    stores.mentors.get(mentor_id)

    availability = parse_availability(raw, mentor_id)
    saved = stores.availability.save(availability, now)
    logger.info(
        "Saved availability for mentor %s: %d weekly blocks, %d exceptions",
        mentor_id,
        len(saved.weekly_blocks),
        len(saved.exceptions),
    )
    return saved


def get_available_slots(
    mentor_id,
    target_date: date,
    duration_minutes: Optional[int] = None,
    *,
    stores: Optional[Stores] = None,
    now: Optional[datetime] = None,
) -> List[TimeSlot]:
    stores, now = _resolve(stores, now)
    availability = get_mentor_availability(mentor_id, stores=stores)
    if availability is None:
        return []
    duration = duration_minutes or availability.session_durations[0]
    sessions = stores.sessions.reserved_for_mentor(mentor_id)
    return generate_slots(availability, target_date, duration, sessions, not_before=now)


def next_available(
    mentor_id,
    *,
    days: Optional[int] = None,
    stores: Optional[Stores] = None,
    now: Optional[datetime] = None,
) -> Optional[date]:
    stores, now = _resolve(stores, now)
    days = days or getattr(settings, "SLOT_LOOKAHEAD_DAYS", 7)
    if days < 1:
        raise ValidationFailed("days must be at least 1.", detail={"days": ["Must be at least 1."]})
    availability = get_mentor_availability(mentor_id, stores=stores)
    if availability is None:
        return None
    start_date = now.astimezone(availability.zone).date()
    sessions = stores.sessions.reserved_for_mentor(mentor_id)
    return next_available_date(availability, start_date, days, sessions, not_before=now)


# Sessions ----------------------------------------------------------------


def create_session_request(
    actor: Actor,
    *,
    mentor_id,
    start: datetime,
    end: datetime,
    connection_preference: str = "chat",
    student_notes: str = "",
    student_timezone: str = "",
    stores: Optional[Stores] = None,
    now: Optional[datetime] = None,
) -> SessionRecord:
    stores, now = _resolve(stores, now)
    if actor.role != ROLE_STUDENT:
        raise AuthorizationDenied("Only students can request sessions.")
    if student_timezone and not is_valid_zone(student_timezone):
        raise ValidationFailed(
            f"Unknown timezone: {student_timezone!r}.", detail={"student_timezone": ["Unknown timezone."]}
        )

    mentor = stores.mentors.get(mentor_id)
    if not mentor.is_active:
        raise ValidationFailed("This mentor is not accepting sessions.", detail={"mentor": ["Mentor is inactive."]})
    availability = stores.availability.get(mentor_id)
    if availability is None:
        raise ValidationFailed(
            "This mentor has not published availability yet.", detail={"mentor": ["No availability."]}
        )
    validate_requested_span(availability, start, end)
    if start <= now:
        raise ValidationFailed("Sessions must start in the future.", detail={"start": ["Must be in the future."]})

    record = new_session(
        actor,
        session_id=uuid.uuid4(),
        mentor_id=mentor.mentor_id,
        start=start,
        end=end,
        connection_preference=connection_preference,
        now=now,
        student_timezone=student_timezone,
        mentor_timezone=availability.timezone,
        student_notes=student_notes,
    )

    def check(reserved):
        ensure_slot_free(availability, start, end, reserved)

    created = stores.sessions.create_guarded(record, check)
    logger.info(
        "Session %s requested by student %s with mentor %s at %s",
        created.session_id,
        created.student_id,
        created.mentor_id,
        created.requested_start.isoformat(),
    )
    transaction.on_commit(lambda: session_requested.send(sender=SessionRecord, record=created))
    return created


def get_session(actor: Actor, session_id, *, stores: Optional[Stores] = None) -> SessionRecord:
    stores = stores or default_stores()
    record = stores.sessions.get(session_id)
    if not (actor.is_admin or actor.is_mentor(record.mentor_id) or actor.is_student(record.student_id)):
        raise AuthorizationDenied("You can only view your own sessions.")
    return record


def transition_session(
    actor: Actor,
    session_id,
    action: str,
    *,
    reason: Optional[str] = None,
    options=None,
    option_index: Optional[int] = None,
    stores: Optional[Stores] = None,
    now: Optional[datetime] = None,
) -> SessionRecord:
    stores, now = _resolve(stores, now)
    current = stores.sessions.get(session_id)
    updated = apply_transition(
        current,
        action,
        actor,
        now=now,
        reason=reason,
        options=options,
        option_index=option_index,
    )
    if action == ACTION_ACCEPT_RESCHEDULE:
        availability = stores.availability.get(updated.mentor_id)
        saved = stores.sessions.compare_and_swap_guarded(
            updated, current.status, _accepted_time_check(availability, updated)
        )
    else:
        saved = stores.sessions.compare_and_swap(updated, expected_status=current.status)
    logger.info(
        "Session %s: %s -> %s by %s %s",
        saved.session_id,
        current.status,
        saved.status,
        actor.role,
        actor.user_id,
    )
    transaction.on_commit(
        lambda: session_status_changed.send(
            sender=SessionRecord, record=saved, previous_status=current.status, actor=actor
        )
    )
    return saved


def _accepted_time_check(availability: Optional[MentorAvailability], record: SessionRecord):
    def check(others):
        if availability is not None:
            ensure_slot_free(availability, record.start, record.end, others)
        elif first_conflict(record.start, record.end, others, 0) is not None:
            raise Conflict("This time was just booked by someone else. Please pick another option.")

    return check


def confirm_session(actor, session_id, **kwargs):
    return transition_session(actor, session_id, ACTION_CONFIRM, **kwargs)


def decline_session(actor, session_id, reason, **kwargs):
    return transition_session(actor, session_id, ACTION_DECLINE, reason=reason, **kwargs)


def propose_reschedule(actor, session_id, options, **kwargs):
    return transition_session(actor, session_id, ACTION_PROPOSE_RESCHEDULE, options=options, **kwargs)


def accept_reschedule(actor, session_id, option_index, **kwargs):
    return transition_session(
        actor, session_id, ACTION_ACCEPT_RESCHEDULE, option_index=option_index, **kwargs
    )


def cancel_session(actor, session_id, **kwargs):
    return transition_session(actor, session_id, ACTION_CANCEL, **kwargs)


def complete_session(actor, session_id, **kwargs):
    return transition_session(actor, session_id, ACTION_COMPLETE, **kwargs)


# Notes -------------------------------------------------------------------


def add_session_note(
    actor: Actor,
    session_id,
    note: str,
    follow_ups: str = "",
    *,
    stores: Optional[Stores] = None,
    now: Optional[datetime] = None,
) -> SessionNoteRecord:
    stores, now = _resolve(stores, now)
    record = stores.sessions.get(session_id)
    if not actor.is_mentor(record.mentor_id):
        raise AuthorizationDenied("Only the session's mentor can add notes.")
    note = (note or "").strip()
    if not note:
        raise ValidationFailed("Note cannot be empty.", detail={"note": ["This field is required."]})
    return stores.notes.add(record.session_id, record.mentor_id, note, (follow_ups or "").strip(), now)


def list_session_notes(actor: Actor, session_id, *, stores: Optional[Stores] = None) -> List[SessionNoteRecord]:
    stores = stores or default_stores()
    record = stores.sessions.get(session_id)
    if not (actor.is_admin or actor.is_mentor(record.mentor_id)):
        raise AuthorizationDenied("Session notes are private to the mentor.")
    return stores.notes.list_for_session(record.session_id)


# Reminders ---------------------------------------------------------------


def run_reminder_sweep(*, stores: Optional[Stores] = None, now: Optional[datetime] = None) -> List[ReminderDue]:
    stores, now = _resolve(stores, now)
    horizon_end = now + max(window for _name, window, _flag, _scheduled in HORIZONS)
    candidates = {
        record.session_id: record
        for record in stores.sessions.confirmed_starting_between(now, horizon_end)
    }

    flagged = []
    for due in sweep(candidates.values(), now):
        marked = replace(candidates[due.session_id], reminders=due.reminders)
        if not stores.sessions.flag_reminder(marked, due.horizon):
            logger.warning("Reminder %s for session %s was already flagged", due.horizon, due.session_id)
            continue
        logger.info("Flagged %s reminder for session %s", due.horizon, due.session_id)
        flagged.append(due)
        transaction.on_commit(
            lambda marked=marked, horizon=due.horizon: session_reminder_due.send(
                sender=SessionRecord, record=marked, horizon=horizon
            )
        )
    logger.info("Reminder sweep at %s flagged %d reminders", now.isoformat(), len(flagged))
    return flagged


# Matching ----------------------------------------------------------------


def matching_defaults() -> dict:
    return {
        "weights": getattr(settings, "MATCHING_WEIGHTS", None) or None,
        "threshold": getattr(settings, "MATCHING_SCORE_THRESHOLD", None),
        "min_results": getattr(settings, "MATCHING_MIN_RESULTS", None),
        "max_results": getattr(settings, "MATCHING_MAX_RESULTS", None),
    }


def recommend_for_student(
    actor: Actor,
    student: StudentProfile,
    *,
    stores: Optional[Stores] = None,
    now: Optional[datetime] = None,
) -> MatchRun:
    stores, now = _resolve(stores, now)
    if actor.role not in (ROLE_STUDENT, ROLE_ADMIN):
        raise AuthorizationDenied("Only students and admins can request recommendations.")
    if actor.role == ROLE_STUDENT and not actor.is_student(student.student_id):
        raise AuthorizationDenied("You can only request recommendations for yourself.")
    return match_mentors(student, stores.mentors.candidates(), at=now, **matching_defaults())
