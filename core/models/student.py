from django.db import models


class Student(models.Model):
    GRADE_CHOICES = [
        ('middle_school', 'Middle School'),
        ('high_school', 'High School'),
        ('college', 'College'),
        ('other', 'Other'),
    ]
    GUIDANCE_CHOICES = [
        ('step_by_step', 'Step by step'),
        ('open_discussion', 'Open discussion'),
        ('visual_examples', 'Visual examples'),
        ('trial_error', 'Trial and error'),
    ]
    FREQUENCY_CHOICES = [
        ('weekly', 'Weekly'),
        ('biweekly', 'Every two weeks'),
        ('monthly', 'Monthly'),
        ('as_needed', 'As needed'),
    ]

    full_name = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    age = models.PositiveSmallIntegerField(null=True, blank=True)
    grade_level = models.CharField(max_length=20, choices=GRADE_CHOICES, blank=True)
    timezone = models.CharField(max_length=64, blank=True)
    support_goals = models.JSONField(default=list, blank=True)
    learning_styles = models.JSONField(default=list, blank=True)
    communication_methods = models.JSONField(default=list, blank=True)
    meeting_frequency = models.CharField(max_length=20, choices=FREQUENCY_CHOICES, blank=True)
    mentor_traits = models.JSONField(default=list, blank=True)
    guidance_style = models.CharField(max_length=32, choices=GUIDANCE_CHOICES, blank=True)
    neurodivergence = models.CharField(max_length=32, default='prefer_not_to_say')
    availability_slots = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True, null=True, blank=True)

    def __str__(self) -> str:
        return self.full_name

    def as_profile_input(self) -> dict:
        return {
            'student_id': self.pk,
            'full_name': self.full_name,
            'age': self.age,
            'grade_level': self.grade_level or None,
            'timezone': self.timezone or None,
            'support_goals': self.support_goals,
            'learning_styles': self.learning_styles,
            'communication_methods': self.communication_methods,
            'meeting_frequency': self.meeting_frequency or None,
            'mentor_traits': self.mentor_traits,
            'guidance_style': self.guidance_style or None,
            'neurodivergence': self.neurodivergence or None,
            'availability_slots': self.availability_slots,
        }
