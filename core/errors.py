class SchedulingError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, *, detail: dict | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def as_dict(self) -> dict:
        payload = {"kind": self.kind, "detail": self.message}
        if self.detail:
            payload["errors"] = self.detail
        return payload


class ValidationFailed(SchedulingError):
    kind = "validation"
    status_code = 400


class AuthorizationDenied(SchedulingError):
    kind = "authorization"
    status_code = 403


class InvalidTransition(SchedulingError):
    kind = "state"
    status_code = 409


class NotFound(SchedulingError):
    kind = "not_found"
    status_code = 404


class Conflict(SchedulingError):
    kind = "conflict"
    status_code = 409
