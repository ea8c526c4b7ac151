from __future__ import annotations

from dataclasses import dataclass


ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"
ROLE_MENTOR = "mentor"
APP_ROLES = {ROLE_ADMIN, ROLE_STUDENT, ROLE_MENTOR}


@dataclass(frozen=True)
class Actor:
    """Who is asking. Passed explicitly into every scheduling operation."""

    user_id: str
    role: str

    def __post_init__(self):
        object.__setattr__(self, "user_id", str(self.user_id))

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def is_student(self, student_id) -> bool:
        return self.role == ROLE_STUDENT and self.user_id == str(student_id)

    def is_mentor(self, mentor_id) -> bool:
        return self.role == ROLE_MENTOR and self.user_id == str(mentor_id)
