from django.db import models
from django.utils import timezone as dj_timezone

from .mentor import Mentor


class MentorAvailability(models.Model):
    mentor = models.OneToOneField(
        Mentor, on_delete=models.CASCADE, related_name="availability"
    )
    timezone = models.CharField(max_length=64)
    session_durations = models.JSONField(default=list, blank=True)
    buffer_minutes = models.PositiveSmallIntegerField(default=0)
    max_sessions_per_day = models.PositiveSmallIntegerField(null=True, blank=True)
    weekly_blocks = models.JSONField(default=list, blank=True)
    exceptions = models.JSONField(default=list, blank=True)
    updated_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        verbose_name_plural = "mentor availability"

    def __str__(self) -> str:
        return f"Availability for mentor {self.mentor_id}"
