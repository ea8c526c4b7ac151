from django.db import models


class Mentor(models.Model):
    NEURO_EXPERIENCE_CHOICES = [
        ('experienced', 'Experienced'),
        ('some_experience', 'Some experience'),
        ('no_experience', 'No experience'),
        ('self_identified', 'Self-identified'),
    ]

    full_name = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    bio = models.TextField(blank=True)
    current_role = models.CharField(max_length=150, blank=True)
    timezone = models.CharField(max_length=64, blank=True)
    focus_areas = models.JSONField(default=list, blank=True)
    expertise_areas = models.JSONField(default=list, blank=True)
    mentee_age_range = models.JSONField(default=list, blank=True)
    communication_methods = models.JSONField(default=list, blank=True)
    availability_slots = models.JSONField(default=list, blank=True)
    mentoring_approach = models.JSONField(default=list, blank=True)
    neurodivergence_experience = models.CharField(
        max_length=32, choices=NEURO_EXPERIENCE_CHOICES, blank=True
    )
    current_mentees = models.PositiveSmallIntegerField(default=0)
    max_mentees = models.PositiveSmallIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True, null=True, blank=True)

    def __str__(self) -> str:
        return self.full_name

    def as_profile_input(self) -> dict:
        return {
            'mentor_id': self.pk,
            'full_name': self.full_name,
            'timezone': self.timezone or None,
            'focus_areas': self.focus_areas,
            'expertise_areas': self.expertise_areas,
            'mentee_age_range': self.mentee_age_range,
            'communication_methods': self.communication_methods,
            'availability_slots': self.availability_slots,
            'mentoring_approach': self.mentoring_approach,
            'neurodivergence_experience': self.neurodivergence_experience or None,
            'current_mentees': self.current_mentees,
            'max_mentees': self.max_mentees,
            'is_active': self.is_active,
        }
