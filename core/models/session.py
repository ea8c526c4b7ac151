import uuid

from django.db import models
from django.utils import timezone

from .mentor import Mentor
from .student import Student


class Session(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("confirmed", "Confirmed"),
        ("declined", "Declined"),
        ("reschedule_proposed", "Reschedule Proposed"),
        ("cancelled", "Cancelled"),
        ("completed", "Completed"),
    ]
    CONNECTION_CHOICES = [
        ("chat", "Chat"),
        ("phone", "Phone"),
        ("video", "Video"),
        ("other", "Other"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="sessions"
    )
    mentor = models.ForeignKey(
        Mentor, on_delete=models.CASCADE, related_name="sessions"
    )
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default="pending")
    requested_start = models.DateTimeField()
    requested_end = models.DateTimeField()
    confirmed_start = models.DateTimeField(null=True, blank=True)
    confirmed_end = models.DateTimeField(null=True, blank=True)
    student_timezone = models.CharField(max_length=64, blank=True)
    mentor_timezone = models.CharField(max_length=64, blank=True)
    connection_preference = models.CharField(
        max_length=20, choices=CONNECTION_CHOICES, default="chat"
    )
    reschedule_options = models.JSONField(default=list, blank=True)
    student_notes = models.TextField(blank=True)
    mentor_response_reason = models.TextField(blank=True)
    reminder_sent_24h = models.BooleanField(default=False)
    reminder_sent_1h = models.BooleanField(default=False)
    reminder_scheduled_24h = models.DateTimeField(null=True, blank=True)
    reminder_scheduled_1h = models.DateTimeField(null=True, blank=True)
    updated_by = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-requested_start", "-created_at"]
        indexes = [
            models.Index(fields=["mentor", "status"], name="core_sess_mentor_status_idx"),
            models.Index(fields=["status", "confirmed_start"], name="core_sess_status_start_idx"),
        ]

    def __str__(self) -> str:
        return f"Session {self.id} ({self.student_id} -> {self.mentor_id})"


class SessionNote(models.Model):
    session = models.ForeignKey(
        Session, on_delete=models.CASCADE, related_name="notes"
    )
    mentor = models.ForeignKey(
        Mentor, on_delete=models.CASCADE, related_name="session_notes"
    )
    note = models.TextField()
    follow_ups = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"Note {self.id} on session {self.session_id}"
