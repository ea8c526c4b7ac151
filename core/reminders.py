from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable, List

from .lifecycle import STATUS_CONFIRMED, ReminderState, SessionRecord


HORIZON_24H = "24h"
HORIZON_1H = "1h"

HORIZONS = (
    (HORIZON_24H, timedelta(hours=24), "sent_24h", "scheduled_24h"),
    (HORIZON_1H, timedelta(hours=1), "sent_1h", "scheduled_1h"),
)


@dataclass(frozen=True)
class ReminderDue:
    session_id: str
    horizon: str
    start: datetime
    reminders: ReminderState


def due_horizons(session: SessionRecord, now: datetime) -> List[str]:
    if session.status != STATUS_CONFIRMED:
        return []
    due = []
    for horizon, window, sent_flag, _scheduled in HORIZONS:
        if getattr(session.reminders, sent_flag):
            continue
        if now < session.start <= now + window:
            due.append(horizon)
    return due


def mark_sent(state: ReminderState, horizon: str, now: datetime) -> ReminderState:
    for name, _window, sent_flag, scheduled in HORIZONS:
        if name == horizon:
            return replace(state, **{sent_flag: True, scheduled: now})
    raise ValueError(f"Unknown reminder horizon: {horizon!r}")


def sweep(sessions: Iterable[SessionRecord], now: datetime) -> List[ReminderDue]:
    """Decide which reminders are due. Delivery happens elsewhere."""
    decisions = []
    for session in sessions:
        state = session.reminders
        for horizon in due_horizons(session, now):
            state = mark_sent(state, horizon, now)
            decisions.append(
                ReminderDue(
                    session_id=session.session_id,
                    horizon=horizon,
                    start=session.start,
                    reminders=state,
                )
            )
    return decisions
