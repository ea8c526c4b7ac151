"""
Storage boundary for the scheduling services.

The engine never touches the database. Services talk to these interfaces, and
``core.repositories`` provides the Django ORM implementations. Every write that
depends on something previously read is expressed as a guarded operation so
the store can reject it atomically.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from .availability import MentorAvailability
from .lifecycle import SessionRecord
from .profiles import MentorProfile


@dataclass(frozen=True)
class SessionNoteRecord:
    note_id: str
    session_id: str
    mentor_id: str
    note: str
    follow_ups: str
    created_at: datetime

    def as_dict(self) -> dict:
        return {
            "id": self.note_id,
            "session_id": self.session_id,
            "mentor_id": self.mentor_id,
            "note": self.note,
            "follow_ups": self.follow_ups,
            "created_at": self.created_at.isoformat(),
        }


class SessionStore(abc.ABC):
    @abc.abstractmethod
    def get(self, session_id) -> SessionRecord:
        """Return the session or raise ``NotFound``."""

    @abc.abstractmethod
    def reserved_for_mentor(self, mentor_id) -> List[SessionRecord]:
        """Pending, confirmed and reschedule-proposed sessions of a mentor."""

    @abc.abstractmethod
    def create_guarded(
        self, record: SessionRecord, check: Callable[[List[SessionRecord]], None]
    ) -> SessionRecord:
        """Insert ``record`` after ``check`` passes against a fresh read.

        ``check`` receives the mentor's reserved sessions read under the same
        guard as the insert and raises to abort it.
        """

    @abc.abstractmethod
    def compare_and_swap(self, record: SessionRecord, expected_status: str) -> SessionRecord:
        """Persist ``record`` only if the stored status is still ``expected_status``.

        Raises ``Conflict`` when the status moved on, ``NotFound`` when the
        session is gone.
        """

    @abc.abstractmethod
    def compare_and_swap_guarded(
        self,
        record: SessionRecord,
        expected_status: str,
        check: Callable[[List[SessionRecord]], None],
    ) -> SessionRecord:
        """``compare_and_swap`` after ``check`` passes under the booking guard.

        ``check`` receives the mentor's other reserved sessions, read under
        the same guard ``create_guarded`` takes.
        """

    @abc.abstractmethod
    def confirmed_starting_between(self, after: datetime, until: datetime) -> List[SessionRecord]:
        pass

    @abc.abstractmethod
    def flag_reminder(self, record: SessionRecord, horizon: str) -> bool:
        """Copy ``record.reminders`` for ``horizon`` if the flag is still unset.

        Returns whether this call set it.
        """


class AvailabilityStore(abc.ABC):
    @abc.abstractmethod
    def get(self, mentor_id) -> Optional[MentorAvailability]:
        pass

    @abc.abstractmethod
    def save(self, availability: MentorAvailability, now: datetime) -> MentorAvailability:
        pass


class SessionNoteStore(abc.ABC):
    @abc.abstractmethod
    def add(self, session_id, mentor_id, note: str, follow_ups: str, now: datetime) -> SessionNoteRecord:
        pass

    @abc.abstractmethod
    def list_for_session(self, session_id) -> List[SessionNoteRecord]:
        pass


class MentorDirectory(abc.ABC):
    @abc.abstractmethod
    def get(self, mentor_id) -> MentorProfile:
        """Return the mentor's profile or raise ``NotFound``."""

    @abc.abstractmethod
    def candidates(self) -> List[MentorProfile]:
        """Mentor profiles eligible to be considered for matching."""
