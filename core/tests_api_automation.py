from uuid import uuid4
import warnings

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from core.models import UserProfile
from core.schema import PUBLIC_PATHS, TAGS, build_schema


POST_ONLY_PUBLIC_PATHS = {
    "/api/login/",
    "/api/token/refresh/",
}


def concrete_path(path):
    if path.startswith("/api/sessions/"):
        return path.replace("{id}", str(uuid4()))
    return path.replace("{id}", "1")


class ApiAutomationCoverageTests(APITestCase):
    @classmethod
    def setUpTestData(cls):
        User = get_user_model()
        cls.user_without_role = User.objects.create_user(
            username="no_role_automation",
            email="no.role.automation@example.com",
            password="NoRolePass123!",
        )
        cls.admin_user = User.objects.create_user(
            username="admin_automation",
            email="admin.automation@example.com",
            password="AdminPass123!",
        )
        UserProfile.objects.create(user=cls.admin_user, role="admin")

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            cls.schema = build_schema()

    def operations(self):
        for path, methods in self.schema["paths"].items():
            for method in methods:
                yield path, method.upper()

    def test_schema_lists_every_route_group(self):
        paths = set(self.schema["paths"])
        for expected in (
            "/api/login/",
            "/api/match/",
            "/api/mentors/{id}/availability/",
            "/api/mentors/{id}/slots/",
            "/api/mentors/{id}/next-available/",
            "/api/mentors/recommended/",
            "/api/sessions/",
            "/api/sessions/{id}/confirm/",
            "/api/sessions/{id}/propose-reschedule/",
            "/api/sessions/{id}/notes/",
            "/api/sessions/reminder-sweep/",
            "/api/students/",
        ):
            self.assertIn(expected, paths)

    def test_every_operation_is_tagged_and_secured(self):
        known_tags = {name for name, _description in TAGS}
        for path, methods in self.schema["paths"].items():
            for method, operation in methods.items():
                with self.subTest(path=path, method=method):
                    self.assertEqual(len(operation["tags"]), 1)
                    self.assertIn(operation["tags"][0], known_tags)
                    if path in PUBLIC_PATHS:
                        self.assertNotIn("security", operation)
                    else:
                        self.assertEqual(operation["security"], [{"HTTPBearer": []}])

    def test_schema_endpoint_is_public(self):
        response = self.client.get("/api/schema/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("HTTPBearer", response.json()["components"]["securitySchemes"])

    def test_protected_operations_reject_anonymous_requests(self):
        for path, method in self.operations():
            if path in PUBLIC_PATHS:
                continue
            with self.subTest(path=path, method=method):
                response = self.client.generic(
                    method, concrete_path(path), data="{}", content_type="application/json"
                )
                self.assertEqual(response.status_code, 401)

    def test_users_without_an_app_role_are_forbidden(self):
        self.client.force_authenticate(user=self.user_without_role)
        for path, method in self.operations():
            if path in PUBLIC_PATHS:
                continue
            with self.subTest(path=path, method=method):
                response = self.client.generic(
                    method, concrete_path(path), data="{}", content_type="application/json"
                )
                self.assertEqual(response.status_code, 403)

    def test_public_post_routes_validate_their_payload(self):
        for path in POST_ONLY_PUBLIC_PATHS:
            with self.subTest(path=path):
                response = self.client.post(path, {}, format="json")
                self.assertEqual(response.status_code, 400)

    def test_admin_can_list_every_collection(self):
        self.client.force_authenticate(user=self.admin_user)
        for path in ("/api/students/", "/api/mentors/", "/api/sessions/"):
            with self.subTest(path=path):
                self.assertEqual(self.client.get(path).status_code, 200)
