import random

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from core.availability import parse_availability
from core.models import Mentor, Student, UserProfile
from core.repositories import DjangoAvailabilityStore


SEED_DOMAIN = "mentormatch.local"
SEED_PASSWORD = "password123"

SAMPLE_STUDENT = {
    "full_name": "Jordan Lee",
    "age": 17,
    "grade_level": "high_school",
    "timezone": "America/Los_Angeles",
    "support_goals": ["academic_support", "career_guidance"],
    "learning_styles": ["visual"],
    "communication_methods": ["text", "video"],
    "meeting_frequency": "weekly",
    "mentor_traits": ["patient", "structured"],
    "guidance_style": "step_by_step",
    "neurodivergence": "adhd",
    "availability_slots": ["tue_evening", "thu_evening"],
}

SAMPLE_MENTORS = [
    {
        "full_name": "Dr. Aisha Smith",
        "timezone": "America/Los_Angeles",
        "focus_areas": ["academic_support", "executive_functioning"],
        "communication_methods": ["text", "video"],
        "availability_slots": ["tue_evening"],
        "mentoring_approach": ["structured_guidance"],
        "mentee_age_range": ["high_school", "college"],
        "neurodivergence_experience": "experienced",
        "max_mentees": 4,
        "current_mentees": 2,
    },
    {
        "full_name": "Marcus Williams",
        "timezone": "America/New_York",
        "focus_areas": ["career_guidance", "social_emotional"],
        "communication_methods": ["video", "audio"],
        "availability_slots": ["wed_evening"],
        "mentoring_approach": ["open_discussion"],
        "mentee_age_range": ["high_school"],
        "neurodivergence_experience": "some_experience",
        "max_mentees": 3,
        "current_mentees": 3,
    },
]

FIRST_NAMES = ["Priya", "Sam", "Ana", "Kai", "Meera", "Noah", "Lena", "Omar"]
LAST_NAMES = ["Rivera", "Chen", "Patel", "Okafor", "Nguyen", "Garcia", "Kim", "Ali"]
SUPPORT_GOALS = [
    "academic_support",
    "career_guidance",
    "social_emotional",
    "executive_functioning",
    "college_prep",
]
COMMUNICATION = ["text", "video", "audio", "in_person"]
SLOT_TAGS = ["mon_evening", "tue_evening", "wed_evening", "thu_evening", "sat_morning", "sun_afternoon"]
APPROACHES = ["structured_guidance", "open_discussion", "hands_on", "collaborative_problem_solving"]
GUIDANCE = ["step_by_step", "open_discussion", "visual_examples", "trial_error"]
TIMEZONES = ["America/Los_Angeles", "America/Denver", "America/Chicago", "America/New_York"]
AGE_BUCKETS = ["middle_school", "high_school", "college", "adult"]
NEURO_EXPERIENCE = ["experienced", "some_experience", "no_experience", "self_identified"]


def weekday_evening_availability(tz_name):
    return {
        "timezone": tz_name,
        "session_durations": [30, 45, 60],
        "buffer_minutes": 15,
        "max_sessions_per_day": 3,
        "weekly_blocks": [
            {"day_of_week": day, "start_time": "17:00", "end_time": "20:00"}
            for day in (1, 2, 3, 4)
        ]
        + [{"day_of_week": 6, "start_time": "09:00", "end_time": "12:00"}],
        "exceptions": [],
    }


class Command(BaseCommand):
    help = "Seed sample students, mentors and mentor availability."

    def add_arguments(self, parser):
        parser.add_argument(
            "--count",
            type=int,
            default=10,
            help="Number of extra random students and mentors to create (default: 10).",
        )

    def _user(self, email, role):
        User = get_user_model()
        user = User.objects.create_user(username=email, email=email, password=SEED_PASSWORD)
        UserProfile.objects.create(user=user, role=role)
        return user

    @transaction.atomic
    def handle(self, *args, **options):
        count = options["count"]
        User = get_user_model()
        random.seed(42)

        Student.objects.filter(email__endswith=f"@{SEED_DOMAIN}").delete()
        Mentor.objects.filter(email__endswith=f"@{SEED_DOMAIN}").delete()
        User.objects.filter(email__endswith=f"@{SEED_DOMAIN}").delete()

        store = DjangoAvailabilityStore()
        now = timezone.now()

        email = f"jordan.lee@{SEED_DOMAIN}"
        self._user(email, "student")
        Student.objects.create(email=email, **SAMPLE_STUDENT)

        mentors = []
        for index, payload in enumerate(SAMPLE_MENTORS, start=1):
            email = f"sample-mentor{index}@{SEED_DOMAIN}"
            self._user(email, "mentor")
            mentors.append(Mentor.objects.create(email=email, **payload))

        for i in range(count):
            email = f"student{i + 1}@{SEED_DOMAIN}"
            self._user(email, "student")
            Student.objects.create(
                full_name=f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
                email=email,
                age=random.randint(12, 24),
                timezone=random.choice(TIMEZONES),
                support_goals=random.sample(SUPPORT_GOALS, k=random.randint(1, 3)),
                communication_methods=random.sample(COMMUNICATION, k=2),
                guidance_style=random.choice(GUIDANCE),
                availability_slots=random.sample(SLOT_TAGS, k=2),
            )

        for i in range(count):
            email = f"mentor{i + 1}@{SEED_DOMAIN}"
            self._user(email, "mentor")
            max_mentees = random.randint(2, 6)
            mentors.append(
                Mentor.objects.create(
                    full_name=f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
                    email=email,
                    bio="I enjoy helping students find their footing.",
                    timezone=random.choice(TIMEZONES),
                    focus_areas=random.sample(SUPPORT_GOALS, k=2),
                    expertise_areas=random.sample(SUPPORT_GOALS, k=1),
                    communication_methods=random.sample(COMMUNICATION, k=2),
                    availability_slots=random.sample(SLOT_TAGS, k=3),
                    mentoring_approach=random.sample(APPROACHES, k=2),
                    mentee_age_range=random.sample(AGE_BUCKETS, k=2),
                    neurodivergence_experience=random.choice(NEURO_EXPERIENCE),
                    max_mentees=max_mentees,
                    current_mentees=random.randint(0, max_mentees),
                )
            )

        for mentor in mentors:
            availability = parse_availability(weekday_evening_availability(mentor.timezone), mentor.id)
            store.save(availability, now)

        self.stdout.write(
            self.style.SUCCESS(
                f"Seeded {count + 1} students and {len(mentors)} mentors (password: {SEED_PASSWORD})."
            )
        )
