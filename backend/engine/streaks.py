from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .payouts import streak_multiplier


# Streak lengths that are announced to the notification layer
STREAK_MILESTONES = (5, 10, 20, 50, 100)


@dataclass(frozen=True)
class StreakUpdate:
    previous_streak: int
    new_streak: int
    previous_multiplier: Decimal
    new_multiplier: Decimal
    best_streak: int
    broken: bool
    new_best: bool

    @property
    def milestone(self) -> bool:
        return self.new_streak in STREAK_MILESTONES and self.new_streak > self.previous_streak


def apply_outcome(current: int, best: int, was_correct: bool) -> StreakUpdate:
    if was_correct:
        new_streak = current + 1
        new_best = max(best, new_streak)
    else:
        new_streak = 0
        new_best = best

    return StreakUpdate(
        previous_streak=current,
        new_streak=new_streak,
        previous_multiplier=streak_multiplier(current),
        new_multiplier=streak_multiplier(new_streak),
        best_streak=new_best,
        broken=not was_correct and current > 0,
        new_best=new_best > best,
    )


def trailing_correct(outcomes_newest_first: Iterable[bool]) -> int:
    """Length of the run of correct outcomes at the head of the sequence."""
    streak = 0
    for is_correct in outcomes_newest_first:
        if not is_correct:
            break
        streak += 1
    return streak


def streak_status(streak: int) -> str:
    if streak <= 0:
        return "No Streak"
    if streak == 1:
        return "Getting Started"
    if streak <= 2:
        return "Building Momentum"
    if streak <= 4:
        return "On a Roll"
    if streak <= 9:
        return "Hot Streak"
    if streak <= 19:
        return "Streak Master"
    if streak <= 29:
        return "Legendary"
    return "Unstoppable"
