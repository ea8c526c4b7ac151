from rest_framework.permissions import AllowAny
from rest_framework.renderers import JSONOpenAPIRenderer
from rest_framework.response import Response
from rest_framework.schemas.openapi import AutoSchema, SchemaGenerator
from rest_framework.views import APIView


SCHEMA_TITLE = "MentorMatch API"
SCHEMA_DESCRIPTION = "Mentor matching, availability and session scheduling."
SCHEMA_VERSION = "1.0.0"


class MentorMatchAutoSchema(AutoSchema):
    def get_operation_id(self, path, method):
        base = super().get_operation_id(path, method)
        return f"{base}{method.capitalize()}"


PUBLIC_PATHS = {
    "/api/login/",
    "/api/token/refresh/",
    "/api/schema/",
}

TAGS = [
    ("Auth", "Login and token refresh."),
    ("Matching", "Compatibility scoring and mentor recommendations."),
    ("Availability", "Mentor availability, slots and next-available lookups."),
    ("Sessions", "Session booking and lifecycle transitions."),
    ("Profiles", "Student and mentor profiles."),
    ("General", "Other endpoints."),
]
TAG_ORDER = {name: index for index, (name, _description) in enumerate(TAGS)}


def tag_for_path(path: str) -> str:
    if path.startswith("/api/login/") or path.startswith("/api/token/"):
        return "Auth"
    if path.startswith("/api/match/") or path.endswith("/recommended/"):
        return "Matching"
    if path.endswith("/availability/") or path.endswith("/slots/") or path.endswith("/next-available/"):
        return "Availability"
    if path.startswith("/api/sessions/"):
        return "Sessions"
    if path.startswith("/api/students/") or path.startswith("/api/mentors/"):
        return "Profiles"
    return "General"


def build_schema(request=None):
    generator = SchemaGenerator(
        title=SCHEMA_TITLE,
        description=SCHEMA_DESCRIPTION,
        version=SCHEMA_VERSION,
    )
    schema = generator.get_schema(request=request, public=True)
    if not schema:
        return {}

    components = schema.setdefault("components", {})
    components.setdefault("securitySchemes", {})["HTTPBearer"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    schema["tags"] = [{"name": name, "description": description} for name, description in TAGS]

    paths = schema.get("paths", {})
    for path, operations in paths.items():
        for method, operation in operations.items():
            if method.lower() not in {"get", "post", "put", "patch", "delete"}:
                continue
            operation["tags"] = [tag_for_path(path)]
            if path in PUBLIC_PATHS:
                operation.pop("security", None)
            else:
                operation["security"] = [{"HTTPBearer": []}]

    schema["paths"] = {
        path: paths[path]
        for path in sorted(paths, key=lambda item: (TAG_ORDER.get(tag_for_path(item), 99), item))
    }
    return schema


class MentorMatchSchemaView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    renderer_classes = [JSONOpenAPIRenderer]

    def get(self, request, *args, **kwargs):
        return Response(build_schema(request))
