from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APITestCase

from core.availability import parse_availability
from core.models import Mentor, Session, SessionNote, Student, UserProfile
from core.repositories import DjangoAvailabilityStore


NEW_YORK = ZoneInfo("America/New_York")

MORNINGS = {
    "timezone": "America/New_York",
    "session_durations": [30],
    "buffer_minutes": 15,
    "weekly_blocks": [{"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}],
    "exceptions": [],
}


def upcoming_monday():
    today = timezone.now().astimezone(NEW_YORK).date()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 7)


def at(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=NEW_YORK)


class LoginTests(APITestCase):
    @classmethod
    def setUpTestData(cls):
        User = get_user_model()
        cls.password = "StudentPass123!"
        cls.student_user = User.objects.create_user(
            username="login_student",
            email="login.student@test.com",
            password=cls.password,
        )
        UserProfile.objects.create(user=cls.student_user, role="student")
        cls.student = Student.objects.create(full_name="Login Student", email=cls.student_user.email)

    def test_login_returns_role_and_profile(self):
        response = self.client.post(
            "/api/login/",
            {"email": "Login.Student@test.com", "password": self.password},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)
        self.assertEqual(response.data["role"], "student")
        self.assertEqual(response.data["profile_id"], self.student.id)

    def test_login_rejects_wrong_password(self):
        response = self.client.post(
            "/api/login/",
            {"email": self.student_user.email, "password": "nope"},
            format="json",
        )
        self.assertEqual(response.status_code, 401)

    def test_login_rejects_unknown_email(self):
        response = self.client.post(
            "/api/login/",
            {"email": "nobody@test.com", "password": self.password},
            format="json",
        )
        self.assertEqual(response.status_code, 401)

    def test_bearer_token_reaches_protected_routes(self):
        login = self.client.post(
            "/api/login/",
            {"email": self.student_user.email, "password": self.password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['access']}")
        response = self.client.get("/api/students/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["id"] for item in response.data], [self.student.id])


class SchedulingApiTestCase(APITestCase):
    @classmethod
    def setUpTestData(cls):
        User = get_user_model()

        def user(username, role):
            account = User.objects.create_user(
                username=username, email=f"{username}@test.com", password="Pass123!"
            )
            UserProfile.objects.create(user=account, role=role)
            return account

        cls.admin_user = user("admin_sched", "admin")
        cls.student_user = user("student_sched", "student")
        cls.other_student_user = user("other_student_sched", "student")
        cls.mentor_user = user("mentor_sched", "mentor")
        cls.other_mentor_user = user("other_mentor_sched", "mentor")

        cls.student = Student.objects.create(
            full_name="Jordan Lee",
            email=cls.student_user.email,
            age=17,
            timezone="America/Los_Angeles",
            support_goals=["academic_support"],
            communication_methods=["video"],
            availability_slots=["tue_evening"],
            guidance_style="step_by_step",
        )
        cls.other_student = Student.objects.create(full_name="Sam Park", email=cls.other_student_user.email)
        cls.mentor = Mentor.objects.create(
            full_name="Dr. Aisha Smith",
            email=cls.mentor_user.email,
            timezone="America/New_York",
            focus_areas=["academic_support"],
            communication_methods=["video"],
            availability_slots=["tue_evening"],
            mentoring_approach=["structured_guidance"],
            max_mentees=4,
            current_mentees=1,
        )
        cls.other_mentor = Mentor.objects.create(
            full_name="Marcus Williams", email=cls.other_mentor_user.email, timezone="America/New_York"
        )
        DjangoAvailabilityStore().save(parse_availability(MORNINGS, cls.mentor.id), timezone.now())
        cls.monday = upcoming_monday()

    def book(self, hour=9, minute=0, user=None):
        self.client.force_authenticate(user=user or self.student_user)
        start = at(self.monday, hour, minute)
        return self.client.post(
            "/api/sessions/",
            {
                "mentor": self.mentor.id,
                "start": start.isoformat(),
                "end": (start + timedelta(minutes=30)).isoformat(),
                "connection_preference": "video",
                "student_notes": "Exam prep",
                "student_timezone": "America/Los_Angeles",
            },
            format="json",
        )

    def act(self, user, session_id, action, payload=None):
        self.client.force_authenticate(user=user)
        return self.client.post(f"/api/sessions/{session_id}/{action}/", payload or {}, format="json")


class SessionApiTests(SchedulingApiTestCase):
    def test_book_confirm_complete(self):
        booked = self.book()
        self.assertEqual(booked.status_code, 201)
        self.assertEqual(booked.data["status"], "pending")
        self.assertEqual(booked.data["mentor_name"], "Dr. Aisha Smith")
        self.assertEqual(booked.data["allowed_actions"], ["cancel"])
        session_id = booked.data["id"]

        confirmed = self.act(self.mentor_user, session_id, "confirm")
        self.assertEqual(confirmed.status_code, 200)
        self.assertEqual(confirmed.data["status"], "confirmed")
        self.assertIsNotNone(confirmed.data["confirmed_start"])
        self.assertEqual(confirmed.data["allowed_actions"], ["cancel", "complete"])

        completed = self.act(self.mentor_user, session_id, "complete")
        self.assertEqual(completed.status_code, 200)
        self.assertEqual(Session.objects.get(pk=session_id).status, "completed")

    def test_double_booking_conflicts(self):
        self.assertEqual(self.book().status_code, 201)
        response = self.book(9, 15, user=self.other_student_user)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["kind"], "conflict")
        self.assertEqual(Session.objects.count(), 1)

    def test_booking_outside_availability_is_rejected(self):
        response = self.book(13)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["kind"], "validation")

    def test_mentor_cannot_book(self):
        response = self.book(user=self.mentor_user)
        self.assertEqual(response.status_code, 403)

    def test_student_cannot_decline(self):
        session_id = self.book().data["id"]
        response = self.act(self.student_user, session_id, "decline", {"reason": "Busy"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["kind"], "authorization")
        self.assertEqual(Session.objects.get(pk=session_id).status, "pending")

    def test_decline_requires_reason(self):
        session_id = self.book().data["id"]
        response = self.act(self.mentor_user, session_id, "decline", {"reason": ""})
        self.assertEqual(response.status_code, 400)
        declined = self.act(self.mentor_user, session_id, "decline", {"reason": "Travelling"})
        self.assertEqual(declined.data["status"], "declined")
        self.assertEqual(declined.data["mentor_response_reason"], "Travelling")

    def test_repeated_transition_is_a_state_error(self):
        session_id = self.book().data["id"]
        self.act(self.mentor_user, session_id, "confirm")
        response = self.act(self.mentor_user, session_id, "confirm")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["kind"], "state")

    def test_reschedule_proposal_and_acceptance(self):
        session_id = self.book().data["id"]
        option = at(self.monday, 11, 15)
        proposed = self.act(
            self.mentor_user,
            session_id,
            "propose-reschedule",
            {"options": [{"start": option.isoformat(), "end": (option + timedelta(minutes=30)).isoformat()}]},
        )
        self.assertEqual(proposed.status_code, 200)
        self.assertEqual(proposed.data["status"], "reschedule_proposed")

        accepted = self.act(self.student_user, session_id, "accept-reschedule", {"option_index": 0})
        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(accepted.data["status"], "confirmed")
        row = Session.objects.get(pk=session_id)
        self.assertEqual(row.confirmed_start, option)

    def test_other_mentor_cannot_touch_session(self):
        session_id = self.book().data["id"]
        response = self.act(self.other_mentor_user, session_id, "confirm")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["kind"], "authorization")

    def test_sessions_are_scoped_to_participants(self):
        session_id = self.book().data["id"]
        self.client.force_authenticate(user=self.other_student_user)
        self.assertEqual(self.client.get("/api/sessions/").data, [])
        self.client.force_authenticate(user=self.mentor_user)
        self.assertEqual([item["id"] for item in self.client.get("/api/sessions/").data], [session_id])
        self.client.force_authenticate(user=self.admin_user)
        listed = self.client.get("/api/sessions/?status=pending")
        self.assertEqual(len(listed.data), 1)
        self.assertEqual(listed.data[0]["allowed_actions"], [])

    def test_notes_are_private_to_the_mentor(self):
        session_id = self.book().data["id"]
        self.client.force_authenticate(user=self.mentor_user)
        created = self.client.post(
            f"/api/sessions/{session_id}/notes/",
            {"note": "Planned revision schedule", "follow_ups": "Share planner"},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(SessionNote.objects.count(), 1)

        self.client.force_authenticate(user=self.student_user)
        hidden = self.client.get(f"/api/sessions/{session_id}/notes/")
        self.assertEqual(hidden.status_code, 403)

        self.client.force_authenticate(user=self.admin_user)
        visible = self.client.get(f"/api/sessions/{session_id}/notes/")
        self.assertEqual(visible.status_code, 200)
        self.assertEqual(visible.data[0]["note"], "Planned revision schedule")

    def test_reminder_sweep_requires_admin(self):
        self.client.force_authenticate(user=self.mentor_user)
        response = self.client.post("/api/sessions/reminder-sweep/", {}, format="json")
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(user=self.admin_user)
        response = self.client.post("/api/sessions/reminder-sweep/", {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["processed"], 0)


class AvailabilityApiTests(SchedulingApiTestCase):
    def test_mentor_reads_and_replaces_own_availability(self):
        self.client.force_authenticate(user=self.mentor_user)
        current = self.client.get(f"/api/mentors/{self.mentor.id}/availability/")
        self.assertEqual(current.status_code, 200)
        self.assertEqual(current.data["session_durations"], [30])

        payload = dict(MORNINGS, session_durations=[30, 60], buffer_minutes=0)
        saved = self.client.put(f"/api/mentors/{self.mentor.id}/availability/", payload, format="json")
        self.assertEqual(saved.status_code, 200)
        self.assertEqual(saved.data["session_durations"], [30, 60])
        self.mentor.availability.refresh_from_db()
        self.assertEqual(self.mentor.availability.buffer_minutes, 0)

    def test_other_mentor_cannot_replace_availability(self):
        self.client.force_authenticate(user=self.other_mentor_user)
        response = self.client.put(f"/api/mentors/{self.mentor.id}/availability/", MORNINGS, format="json")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["kind"], "authorization")

    def test_invalid_availability_reports_fields(self):
        self.client.force_authenticate(user=self.mentor_user)
        response = self.client.put(
            f"/api/mentors/{self.mentor.id}/availability/",
            dict(MORNINGS, timezone="Atlantis/Capital"),
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("timezone", response.data["errors"])

    def test_zone_directory_name_is_a_validation_error(self):
        self.client.force_authenticate(user=self.mentor_user)
        response = self.client.put(
            f"/api/mentors/{self.mentor.id}/availability/",
            dict(MORNINGS, timezone="America"),
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("timezone", response.data["errors"])

    def test_missing_availability_is_not_found(self):
        self.client.force_authenticate(user=self.student_user)
        response = self.client.get(f"/api/mentors/{self.other_mentor.id}/availability/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["kind"], "not_found")

    def test_slots_and_next_available(self):
        self.book()
        self.client.force_authenticate(user=self.student_user)
        slots = self.client.get(f"/api/mentors/{self.mentor.id}/slots/?date={self.monday.isoformat()}")
        self.assertEqual(slots.status_code, 200)
        starts = [item["start"] for item in slots.data["slots"]]
        self.assertNotIn(at(self.monday, 9).isoformat(), starts)
        self.assertIn(at(self.monday, 11, 15).isoformat(), starts)

        found = self.client.get(f"/api/mentors/{self.mentor.id}/next-available/?days=14")
        self.assertEqual(found.status_code, 200)
        self.assertTrue(found.data["has_availability"])
        self.assertIsNotNone(found.data["next_available_date"])

        missing = self.client.get(f"/api/mentors/{self.other_mentor.id}/next-available/")
        self.assertEqual(missing.data, {
            "mentor_id": self.other_mentor.id,
            "has_availability": False,
            "next_available_date": None,
        })

    def test_slots_need_a_date(self):
        self.client.force_authenticate(user=self.student_user)
        response = self.client.get(f"/api/mentors/{self.mentor.id}/slots/")
        self.assertEqual(response.status_code, 400)


class MatchingApiTests(SchedulingApiTestCase):
    def test_match_endpoint_ranks_supplied_profiles(self):
        self.client.force_authenticate(user=self.student_user)
        response = self.client.post(
            "/api/match/",
            {
                "student_profile": {
                    "supportGoals": ["academic_support", "career_guidance"],
                    "timezone": "America/Los_Angeles",
                    "availabilitySlots": ["tue_evening", "thu_evening"],
                    "guidanceStyle": "step_by_step",
                },
                "mentor_profiles": [
                    {
                        "id": "mentor-123",
                        "fullName": "Dr. Aisha Smith",
                        "timezone": "America/Los_Angeles",
                        "focusAreas": ["academic_support", "executive_functioning"],
                        "availabilitySlots": ["tue_evening"],
                        "mentoringApproach": ["structured_guidance"],
                        "maxMentees": 4,
                        "currentMentees": 2,
                    },
                    {
                        "id": "mentor-456",
                        "fullName": "Marcus Williams",
                        "timezone": "America/New_York",
                        "focusAreas": ["career_guidance", "social_emotional"],
                        "availabilitySlots": ["wed_evening"],
                        "mentoringApproach": ["open_discussion"],
                        "maxMentees": 3,
                        "currentMentees": 3,
                    },
                ],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        matches = response.data["matches"]
        self.assertEqual([match["mentor_id"] for match in matches], ["mentor-123"])
        self.assertEqual(matches[0]["breakdown"]["mentoring_style"], 100)
        self.assertEqual(response.data["metadata"]["excluded"], 1)

    def test_unknown_weight_is_rejected(self):
        self.client.force_authenticate(user=self.student_user)
        response = self.client.post(
            "/api/match/",
            {"student_profile": {}, "mentor_profiles": [], "weights": {"charm": 5}},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["kind"], "validation")

    def test_recommendations_for_logged_in_student(self):
        self.client.force_authenticate(user=self.student_user)
        response = self.client.get("/api/mentors/recommended/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["matches"][0]["mentor_id"], str(self.mentor.id))

    def test_admin_needs_student_id_for_recommendations(self):
        self.client.force_authenticate(user=self.admin_user)
        self.assertEqual(self.client.get("/api/mentors/recommended/").status_code, 400)
        response = self.client.get(f"/api/mentors/recommended/?student_id={self.student.id}")
        self.assertEqual(response.status_code, 200)

    def test_mentors_cannot_request_recommendations(self):
        self.client.force_authenticate(user=self.mentor_user)
        self.assertEqual(self.client.get("/api/mentors/recommended/").status_code, 403)


class ProfileApiTests(SchedulingApiTestCase):
    def test_student_profile_tags_are_normalized(self):
        self.client.force_authenticate(user=self.student_user)
        response = self.client.patch(
            f"/api/students/{self.student.id}/",
            {"support_goals": ["Career Guidance", "career-guidance"], "timezone": "Europe/Berlin"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["support_goals"], ["career_guidance"])

    def test_bad_timezone_is_rejected(self):
        self.client.force_authenticate(user=self.student_user)
        response = self.client.patch(
            f"/api/students/{self.student.id}/", {"timezone": "Moon/Base"}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("timezone", response.data)

    def test_student_only_sees_own_profile(self):
        self.client.force_authenticate(user=self.other_student_user)
        response = self.client.get(f"/api/students/{self.student.id}/")
        self.assertEqual(response.status_code, 404)

    def test_mentor_edits_only_own_profile(self):
        self.client.force_authenticate(user=self.other_mentor_user)
        response = self.client.patch(f"/api/mentors/{self.mentor.id}/", {"bio": "Hijacked"}, format="json")
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(user=self.mentor_user)
        response = self.client.patch(f"/api/mentors/{self.mentor.id}/", {"bio": "Study skills"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["bio"], "Study skills")

    def test_only_admins_create_profiles(self):
        payload = {"full_name": "New Student", "email": "new.student@test.com"}
        self.client.force_authenticate(user=self.student_user)
        self.assertEqual(self.client.post("/api/students/", payload, format="json").status_code, 403)
        self.client.force_authenticate(user=self.admin_user)
        self.assertEqual(self.client.post("/api/students/", payload, format="json").status_code, 201)
