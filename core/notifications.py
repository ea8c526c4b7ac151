import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from .actors import ROLE_MENTOR, ROLE_STUDENT
from .lifecycle import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_DECLINED,
    STATUS_RESCHEDULE_PROPOSED,
    SessionRecord,
)
from .reminders import HORIZON_1H

logger = logging.getLogger(__name__)


DEFAULT_NOTIFIER = "core.notifications.LoggingNotifier"


@dataclass(frozen=True)
class Notification:
    session_id: str
    recipient_role: str
    recipient_id: str
    recipient_name: str
    message: str


class Notifier:
    """Delivery backend. Subclasses override ``send``."""

    def send(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def send(self, notification: Notification) -> None:
        logger.info(
            "[Session %s] To %s: %s",
            notification.session_id,
            notification.recipient_name or notification.recipient_id,
            notification.message,
        )


def get_notifier() -> Notifier:
    backend = getattr(settings, "NOTIFIER_BACKEND", "") or DEFAULT_NOTIFIER
    return import_string(backend)()


def request_notification(record: SessionRecord, student_name: str, mentor_name: str) -> Notification:
    return Notification(
        session_id=record.session_id,
        recipient_role=ROLE_MENTOR,
        recipient_id=record.mentor_id,
        recipient_name=mentor_name or "Mentor",
        message=f"New session request from {student_name or 'a student'}.",
    )


def status_notification(
    record: SessionRecord, changed_by_role: str, student_name: str, mentor_name: str
) -> Optional[Notification]:
    mentor_name = mentor_name or "Mentor"
    student_name = student_name or "Student"
    to_student = {
        STATUS_CONFIRMED: f"{mentor_name} accepted your session request!",
        STATUS_DECLINED: f"{mentor_name} declined your session request.",
        STATUS_RESCHEDULE_PROPOSED: f"{mentor_name} proposed alternative times for your session.",
        STATUS_COMPLETED: f"Your session with {mentor_name} has been marked complete.",
    }

    if record.status == STATUS_CANCELLED:
        by_mentor = changed_by_role == ROLE_MENTOR
        return Notification(
            session_id=record.session_id,
            recipient_role=ROLE_STUDENT if by_mentor else ROLE_MENTOR,
            recipient_id=record.student_id if by_mentor else record.mentor_id,
            recipient_name=student_name if by_mentor else mentor_name,
            message=f"Session {record.session_id} has been cancelled by "
            f"{mentor_name if by_mentor else student_name}.",
        )
    if record.status == STATUS_CONFIRMED and changed_by_role == ROLE_STUDENT:
        return Notification(
            session_id=record.session_id,
            recipient_role=ROLE_MENTOR,
            recipient_id=record.mentor_id,
            recipient_name=mentor_name,
            message=f"{student_name} accepted one of your proposed times.",
        )
    message = to_student.get(record.status)
    if message is None:
        return None
    return Notification(
        session_id=record.session_id,
        recipient_role=ROLE_STUDENT,
        recipient_id=record.student_id,
        recipient_name=student_name,
        message=message,
    )


def reminder_notifications(
    record: SessionRecord, horizon: str, student_name: str, mentor_name: str
) -> list:
    when = "in 1 hour" if horizon == HORIZON_1H else "within 24 hours"
    start = record.start.isoformat()
    return [
        Notification(
            session_id=record.session_id,
            recipient_role=ROLE_STUDENT,
            recipient_id=record.student_id,
            recipient_name=student_name or "Student",
            message=f"Reminder: your session with {mentor_name or 'your mentor'} starts {when} ({start}).",
        ),
        Notification(
            session_id=record.session_id,
            recipient_role=ROLE_MENTOR,
            recipient_id=record.mentor_id,
            recipient_name=mentor_name or "Mentor",
            message=f"Reminder: your session with {student_name or 'your student'} starts {when} ({start}).",
        ),
    ]
