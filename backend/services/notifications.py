"""
Post-commit events for the notification layer.

Services queue events on the session while they work. Listeners only see
them after the transaction commits; a rollback discards them.
"""

from dataclasses import dataclass
from typing import Callable, Union

import structlog
from sqlalchemy import event
from sqlalchemy.orm import Session

log = structlog.get_logger(__name__)

_PENDING_KEY = "pending_events"


@dataclass(frozen=True)
class BadgeAwarded:
    account_id: str
    badge_id: str
    name: str
    reward_coins: int


@dataclass(frozen=True)
class StreakMilestone:
    account_id: str
    streak: int
    multiplier: str


Event = Union[BadgeAwarded, StreakMilestone]
Listener = Callable[[Event], None]

_listeners: list[Listener] = []


def subscribe(listener: Listener) -> Listener:
    _listeners.append(listener)
    return listener


def unsubscribe(listener: Listener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def queue_event(db: Session, evt: Event) -> None:
    db.info.setdefault(_PENDING_KEY, []).append(evt)


@event.listens_for(Session, "after_commit")
def _dispatch(session: Session) -> None:
    for evt in session.info.pop(_PENDING_KEY, []):
        for listener in list(_listeners):
            try:
                listener(evt)
            except Exception:
                # The commit already happened; a broken listener must not undo it
                log.exception("notification_listener_failed", event_type=type(evt).__name__)


@event.listens_for(Session, "after_rollback")
def _discard(session: Session) -> None:
    dropped = session.info.pop(_PENDING_KEY, None)
    if dropped:
        log.debug("notifications_discarded", count=len(dropped))
