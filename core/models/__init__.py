from .availability import MentorAvailability
from .mentor import Mentor
from .session import Session, SessionNote
from .student import Student
from .user_profile import UserProfile

__all__ = [
    'Student',
    'Mentor',
    'MentorAvailability',
    'Session',
    'SessionNote',
    'UserProfile',
]
