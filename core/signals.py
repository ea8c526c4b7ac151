from django.dispatch import Signal, receiver

from .models import Mentor, Student
from .notifications import (
    get_notifier,
    reminder_notifications,
    request_notification,
    status_notification,
)


# Sent once the write they describe has committed.
session_requested = Signal()
session_status_changed = Signal()
session_reminder_due = Signal()


def _participant_names(record):
    student_name = (
        Student.objects.filter(pk=record.student_id).values_list("full_name", flat=True).first()
    )
    mentor_name = (
        Mentor.objects.filter(pk=record.mentor_id).values_list("full_name", flat=True).first()
    )
    return student_name or "", mentor_name or ""


@receiver(session_requested)
def notify_session_requested(sender, record, **kwargs):
    student_name, mentor_name = _participant_names(record)
    get_notifier().send(request_notification(record, student_name, mentor_name))


@receiver(session_status_changed)
def notify_status_change(sender, record, previous_status, actor, **kwargs):
    if record.status == previous_status:
        return
    student_name, mentor_name = _participant_names(record)
    notification = status_notification(record, actor.role, student_name, mentor_name)
    if notification is not None:
        get_notifier().send(notification)


@receiver(session_reminder_due)
def notify_reminder(sender, record, horizon, **kwargs):
    student_name, mentor_name = _participant_names(record)
    notifier = get_notifier()
    for notification in reminder_notifications(record, horizon, student_name, mentor_name):
        notifier.send(notification)
