from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Sequence, Tuple

from .actors import ROLE_MENTOR, ROLE_STUDENT, Actor
from .errors import AuthorizationDenied, InvalidTransition, ValidationFailed


STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_DECLINED = "declined"
STATUS_RESCHEDULE_PROPOSED = "reschedule_proposed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"

STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_DECLINED,
    STATUS_RESCHEDULE_PROPOSED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
)
TERMINAL_STATUSES = frozenset({STATUS_DECLINED, STATUS_CANCELLED, STATUS_COMPLETED})
RESERVED_STATUSES = frozenset({STATUS_PENDING, STATUS_CONFIRMED, STATUS_RESCHEDULE_PROPOSED})

CONNECTION_PREFERENCES = ("chat", "phone", "video", "other")

ACTION_CONFIRM = "confirm"
ACTION_DECLINE = "decline"
ACTION_PROPOSE_RESCHEDULE = "propose_reschedule"
ACTION_ACCEPT_RESCHEDULE = "accept_reschedule"
ACTION_CANCEL = "cancel"
ACTION_COMPLETE = "complete"


@dataclass(frozen=True)
class Transition:
    action: str
    sources: frozenset
    target: str
    roles: frozenset


TRANSITIONS = {
    ACTION_CONFIRM: Transition(
        ACTION_CONFIRM, frozenset({STATUS_PENDING}), STATUS_CONFIRMED, frozenset({ROLE_MENTOR})
    ),
    ACTION_DECLINE: Transition(
        ACTION_DECLINE, frozenset({STATUS_PENDING}), STATUS_DECLINED, frozenset({ROLE_MENTOR})
    ),
    ACTION_PROPOSE_RESCHEDULE: Transition(
        ACTION_PROPOSE_RESCHEDULE,
        frozenset({STATUS_PENDING}),
        STATUS_RESCHEDULE_PROPOSED,
        frozenset({ROLE_MENTOR}),
    ),
    ACTION_ACCEPT_RESCHEDULE: Transition(
        ACTION_ACCEPT_RESCHEDULE,
        frozenset({STATUS_RESCHEDULE_PROPOSED}),
        STATUS_CONFIRMED,
        frozenset({ROLE_STUDENT}),
    ),
    ACTION_CANCEL: Transition(
        ACTION_CANCEL,
        frozenset({STATUS_PENDING, STATUS_CONFIRMED, STATUS_RESCHEDULE_PROPOSED}),
        STATUS_CANCELLED,
        frozenset({ROLE_MENTOR, ROLE_STUDENT}),
    ),
    ACTION_COMPLETE: Transition(
        ACTION_COMPLETE, frozenset({STATUS_CONFIRMED}), STATUS_COMPLETED, frozenset({ROLE_MENTOR})
    ),
}


@dataclass(frozen=True)
class RescheduleOption:
    start: datetime
    end: datetime

    def as_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class ReminderState:
    sent_24h: bool = False
    sent_1h: bool = False
    scheduled_24h: Optional[datetime] = None
    scheduled_1h: Optional[datetime] = None


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    student_id: str
    mentor_id: str
    status: str
    requested_start: datetime
    requested_end: datetime
    confirmed_start: Optional[datetime] = None
    confirmed_end: Optional[datetime] = None
    student_timezone: str = ""
    mentor_timezone: str = ""
    connection_preference: str = "chat"
    reschedule_options: Tuple[RescheduleOption, ...] = ()
    student_notes: str = ""
    mentor_response_reason: str = ""
    reminders: ReminderState = field(default_factory=ReminderState)
    updated_by: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def start(self) -> datetime:
        return self.confirmed_start or self.requested_start

    @property
    def end(self) -> datetime:
        return self.confirmed_end or self.requested_end


def _participant_role(session: SessionRecord, actor: Actor) -> Optional[str]:
    if actor.is_mentor(session.mentor_id):
        return ROLE_MENTOR
    if actor.is_student(session.student_id):
        return ROLE_STUDENT
    return None


def authorize(session: SessionRecord, actor: Actor, transition: Transition) -> None:
    role = _participant_role(session, actor)
    if role is None:
        raise AuthorizationDenied("You can only manage your own sessions.")
    if role not in transition.roles:
        who = " or ".join(sorted(transition.roles))
        raise AuthorizationDenied(f"Only the session's {who} can {transition.action.replace('_', ' ')}.")


def allowed_actions(session: SessionRecord, actor: Actor) -> list:
    role = _participant_role(session, actor)
    if role is None:
        return []
    return [
        action
        for action, transition in TRANSITIONS.items()
        if role in transition.roles and session.status in transition.sources
    ]


def _validate_options(options) -> Tuple[RescheduleOption, ...]:
    if not options:
        raise ValidationFailed(
            "At least one reschedule option is required.",
            detail={"options": ["Provide at least one option."]},
        )
    parsed = []
    for index, option in enumerate(options):
        if option.start.tzinfo is None or option.end.tzinfo is None:
            raise ValidationFailed(
                "Reschedule options must include a timezone offset.",
                detail={"options": [f"Option {index} is missing a timezone offset."]},
            )
        if option.end <= option.start:
            raise ValidationFailed(
                "Each reschedule option must end after it starts.",
                detail={"options": [f"Option {index} ends before it starts."]},
            )
        parsed.append(option)
    return tuple(parsed)


def apply_transition(
    session: SessionRecord,
    action: str,
    actor: Actor,
    *,
    now: datetime,
    reason: Optional[str] = None,
    options: Optional[Sequence[RescheduleOption]] = None,
    option_index: Optional[int] = None,
) -> SessionRecord:
    """Return the session as it should look after ``action``.

    Pure: the caller is responsible for writing the result conditionally on
    ``session.status`` being unchanged.
    """
    transition = TRANSITIONS.get(action)
    if transition is None:
        raise InvalidTransition(f"Unknown session action: {action!r}.")
    authorize(session, actor, transition)
    if session.status not in transition.sources:
        raise InvalidTransition(
            f"Cannot {action.replace('_', ' ')} a session that is {session.status}.",
            detail={"status": [session.status]},
        )

    changes = {"status": transition.target, "updated_at": now, "updated_by": actor.user_id}
    if action == ACTION_CONFIRM:
        changes["confirmed_start"] = session.requested_start
        changes["confirmed_end"] = session.requested_end
    elif action == ACTION_DECLINE:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed("A reason is required to decline.", detail={"reason": ["This field is required."]})
        changes["mentor_response_reason"] = reason
    elif action == ACTION_PROPOSE_RESCHEDULE:
        changes["reschedule_options"] = _validate_options(options)
    elif action == ACTION_ACCEPT_RESCHEDULE:
        available = session.reschedule_options
        if isinstance(option_index, bool) or not isinstance(option_index, int) or not (
            0 <= option_index < len(available)
        ):
            raise ValidationFailed(
                "Invalid reschedule option.",
                detail={"option_index": [f"Must be between 0 and {len(available) - 1}."]},
            )
        chosen = available[option_index]
        changes.update(
            requested_start=chosen.start,
            requested_end=chosen.end,
            confirmed_start=chosen.start,
            confirmed_end=chosen.end,
            reschedule_options=(),
        )
    return replace(session, **changes)


def new_session(
    actor: Actor,
    *,
    session_id: str,
    mentor_id,
    start: datetime,
    end: datetime,
    connection_preference: str,
    now: datetime,
    student_timezone: str = "",
    mentor_timezone: str = "",
    student_notes: str = "",
) -> SessionRecord:
    if actor.role != ROLE_STUDENT:
        raise AuthorizationDenied("Only students can request sessions.")
    if connection_preference not in CONNECTION_PREFERENCES:
        raise ValidationFailed(
            f"Unknown connection preference {connection_preference!r}.",
            detail={"connection_preference": [f"Choose one of: {', '.join(CONNECTION_PREFERENCES)}."]},
        )
    if end <= start:
        raise ValidationFailed("Session end must be after its start.", detail={"end": ["Must be after start."]})
    return SessionRecord(
        session_id=str(session_id),
        student_id=actor.user_id,
        mentor_id=str(mentor_id),
        status=STATUS_PENDING,
        requested_start=start,
        requested_end=end,
        student_timezone=student_timezone,
        mentor_timezone=mentor_timezone,
        connection_preference=connection_preference,
        student_notes=student_notes,
        updated_by=actor.user_id,
        created_at=now,
        updated_at=now,
    )
