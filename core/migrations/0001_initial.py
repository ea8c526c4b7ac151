import uuid

import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Mentor",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("full_name", models.CharField(max_length=150)),
                ("email", models.EmailField(max_length=254, unique=True)),
                ("bio", models.TextField(blank=True)),
                ("current_role", models.CharField(blank=True, max_length=150)),
                ("timezone", models.CharField(blank=True, max_length=64)),
                ("focus_areas", models.JSONField(blank=True, default=list)),
                ("expertise_areas", models.JSONField(blank=True, default=list)),
                ("mentee_age_range", models.JSONField(blank=True, default=list)),
                ("communication_methods", models.JSONField(blank=True, default=list)),
                ("availability_slots", models.JSONField(blank=True, default=list)),
                ("mentoring_approach", models.JSONField(blank=True, default=list)),
                (
                    "neurodivergence_experience",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("experienced", "Experienced"),
                            ("some_experience", "Some experience"),
                            ("no_experience", "No experience"),
                            ("self_identified", "Self-identified"),
                        ],
                        max_length=32,
                    ),
                ),
                ("current_mentees", models.PositiveSmallIntegerField(default=0)),
                ("max_mentees", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True, null=True)),
            ],
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("full_name", models.CharField(max_length=150)),
                ("email", models.EmailField(max_length=254, unique=True)),
                ("age", models.PositiveSmallIntegerField(blank=True, null=True)),
                (
                    "grade_level",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("middle_school", "Middle School"),
                            ("high_school", "High School"),
                            ("college", "College"),
                            ("other", "Other"),
                        ],
                        max_length=20,
                    ),
                ),
                ("timezone", models.CharField(blank=True, max_length=64)),
                ("support_goals", models.JSONField(blank=True, default=list)),
                ("learning_styles", models.JSONField(blank=True, default=list)),
                ("communication_methods", models.JSONField(blank=True, default=list)),
                (
                    "meeting_frequency",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("weekly", "Weekly"),
                            ("biweekly", "Every two weeks"),
                            ("monthly", "Monthly"),
                            ("as_needed", "As needed"),
                        ],
                        max_length=20,
                    ),
                ),
                ("mentor_traits", models.JSONField(blank=True, default=list)),
                (
                    "guidance_style",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("step_by_step", "Step by step"),
                            ("open_discussion", "Open discussion"),
                            ("visual_examples", "Visual examples"),
                            ("trial_error", "Trial and error"),
                        ],
                        max_length=32,
                    ),
                ),
                ("neurodivergence", models.CharField(default="prefer_not_to_say", max_length=32)),
                ("availability_slots", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True, null=True)),
            ],
        ),
        migrations.CreateModel(
            name="UserProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "role",
                    models.CharField(
                        choices=[("student", "Student"), ("mentor", "Mentor"), ("admin", "Admin")],
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=models.deletion.CASCADE,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="MentorAvailability",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("timezone", models.CharField(max_length=64)),
                ("session_durations", models.JSONField(blank=True, default=list)),
                ("buffer_minutes", models.PositiveSmallIntegerField(default=0)),
                ("max_sessions_per_day", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("weekly_blocks", models.JSONField(blank=True, default=list)),
                ("exceptions", models.JSONField(blank=True, default=list)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "mentor",
                    models.OneToOneField(
                        on_delete=models.deletion.CASCADE,
                        related_name="availability",
                        to="core.mentor",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "mentor availability",
            },
        ),
        migrations.CreateModel(
            name="Session",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("declined", "Declined"),
                            ("reschedule_proposed", "Reschedule Proposed"),
                            ("cancelled", "Cancelled"),
                            ("completed", "Completed"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                ("requested_start", models.DateTimeField()),
                ("requested_end", models.DateTimeField()),
                ("confirmed_start", models.DateTimeField(blank=True, null=True)),
                ("confirmed_end", models.DateTimeField(blank=True, null=True)),
                ("student_timezone", models.CharField(blank=True, max_length=64)),
                ("mentor_timezone", models.CharField(blank=True, max_length=64)),
                (
                    "connection_preference",
                    models.CharField(
                        choices=[("chat", "Chat"), ("phone", "Phone"), ("video", "Video"), ("other", "Other")],
                        default="chat",
                        max_length=20,
                    ),
                ),
                ("reschedule_options", models.JSONField(blank=True, default=list)),
                ("student_notes", models.TextField(blank=True)),
                ("mentor_response_reason", models.TextField(blank=True)),
                ("reminder_sent_24h", models.BooleanField(default=False)),
                ("reminder_sent_1h", models.BooleanField(default=False)),
                ("reminder_scheduled_24h", models.DateTimeField(blank=True, null=True)),
                ("reminder_scheduled_1h", models.DateTimeField(blank=True, null=True)),
                ("updated_by", models.CharField(blank=True, max_length=64)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "mentor",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="sessions",
                        to="core.mentor",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="sessions",
                        to="core.student",
                    ),
                ),
            ],
            options={
                "ordering": ["-requested_start", "-created_at"],
                "indexes": [
                    models.Index(fields=["mentor", "status"], name="core_sess_mentor_status_idx"),
                    models.Index(fields=["status", "confirmed_start"], name="core_sess_status_start_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SessionNote",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("note", models.TextField()),
                ("follow_ups", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "mentor",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="session_notes",
                        to="core.mentor",
                    ),
                ),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="notes",
                        to="core.session",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
    ]
