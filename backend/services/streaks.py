from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

import structlog
from sqlalchemy.orm import Session

from database import atomic
from engine import (
    Clock,
    StreakUpdate,
    apply_outcome,
    streak_multiplier,
    streak_status,
    system_clock,
    trailing_correct,
)
from models import Account
from services.cache import invalidate_on_commit, view_cache
from services.notifications import StreakMilestone, queue_event
from services.repository import Repository

log = structlog.get_logger(__name__)


@dataclass
class StreakInfo:
    account_id: str
    current_streak: int
    best_streak: int
    multiplier: Decimal
    next_multiplier: Decimal
    status: str


@dataclass
class StreakDrift:
    account_id: str
    stored: int
    actual: int


@dataclass
class StreakHistoryEntry:
    day: date
    predictions: int
    correct: int
    ending_streak: int


def record_outcome(db: Session, account: Account, was_correct: bool, clock: Clock = system_clock) -> StreakUpdate:
    """
    Apply one settled wager to the account's streak and counters.

    Runs inside the caller's settlement transaction; the account must already
    be locked.
    """
    update = apply_outcome(account.current_streak, account.best_streak, was_correct)

    account.current_streak = update.new_streak
    account.best_streak = update.best_streak
    account.total_predictions += 1
    if was_correct:
        account.correct_predictions += 1
    account.last_active_date = clock.today()

    if update.milestone:
        queue_event(db, StreakMilestone(
            account_id=account.id,
            streak=update.new_streak,
            multiplier=str(update.new_multiplier),
        ))
        log.info("streak_milestone", account_id=account.id, streak=update.new_streak)
    elif update.broken:
        log.debug("streak_broken", account_id=account.id, previous=update.previous_streak)

    invalidate_on_commit(db, "streak_info", account.id)
    return update


def recalculate_streak(db: Session, account_id: str) -> int:
    """Recount the trailing run of correct wagers and fix the stored streak if it drifted."""
    repo = Repository(db)
    with atomic(db):
        account = repo.account(account_id, lock=True)
        outcomes = [bool(w.is_correct) for w in repo.resolved_wagers(account_id)]
        actual = trailing_correct(outcomes)

        if account.current_streak != actual:
            log.warning(
                "streak_drift_fixed",
                account_id=account_id,
                stored=account.current_streak,
                actual=actual,
            )
            account.current_streak = actual
            account.best_streak = max(account.best_streak, actual)
            invalidate_on_commit(db, "streak_info", account_id)
    return actual


def validate_and_fix_streaks(db: Session) -> list[StreakDrift]:
    repo = Repository(db)
    drifts = []
    for account in repo.accounts_with_streak():
        stored = account.current_streak
        actual = recalculate_streak(db, account.id)
        if stored != actual:
            drifts.append(StreakDrift(account_id=account.id, stored=stored, actual=actual))
    log.info("streaks_validated", fixed=len(drifts))
    return drifts


def streak_info(db: Session, account_id: str) -> StreakInfo:
    def compute():
        account = Repository(db).account(account_id)
        return StreakInfo(
            account_id=account.id,
            current_streak=account.current_streak,
            best_streak=account.best_streak,
            multiplier=streak_multiplier(account.current_streak),
            next_multiplier=streak_multiplier(account.current_streak + 1),
            status=streak_status(account.current_streak),
        )

    return view_cache.get_or_compute("streak_info", (account_id,), compute)


def streak_history(db: Session, account_id: str, days: int = 30, clock: Clock = system_clock) -> list[StreakHistoryEntry]:
    """Per settlement day: wagers settled, how many were correct, and the streak at day end."""
    repo = Repository(db)
    repo.account(account_id)
    since = clock.today() - timedelta(days=days)

    entries: dict[date, StreakHistoryEntry] = {}
    streak = 0
    for wager in reversed(repo.resolved_wagers(account_id)):
        streak = streak + 1 if wager.is_correct else 0
        day = wager.settled_at.date()
        if day < since:
            continue
        entry = entries.setdefault(day, StreakHistoryEntry(day, 0, 0, 0))
        entry.predictions += 1
        entry.correct += int(bool(wager.is_correct))
        entry.ending_streak = streak
    return sorted(entries.values(), key=lambda e: e.day, reverse=True)
