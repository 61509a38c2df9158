"""
Achievement rules.

A rule is evaluated against an AccountHistory snapshot, never against the
database, so every predicate here is a pure function. Each requirement type
maps to a measure (the account's current value for that rule), an optional
eligibility gate and a comparison against the threshold. Percentage rules
compare the exact ratio rather than the rounded measure. The same measure
drives progress display.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from types import MappingProxyType
from typing import Callable, Optional, Union

from .payouts import accuracy


Number = Union[int, Decimal]

# Only the most recent resolved wagers are scanned for a comeback
COMEBACK_WINDOW = 20
COMEBACK_MIN_LOSSES = 3


class RequirementType(str, Enum):
    COUNT = "count"
    PERCENTAGE = "percentage"
    STREAK = "streak"
    CUMULATIVE = "cumulative"
    CONSECUTIVE_DAYS = "consecutive_days"
    PERFECT_DAY = "perfect_day"
    COMEBACK = "comeback"


@dataclass(frozen=True)
class BadgeRule:
    slug: str
    name: str
    description: str
    category: str
    requirement_type: RequirementType
    threshold: int
    reward_coins: int
    rarity: str = "common"
    minimum_sample: Optional[int] = None
    repeatable: bool = False


@dataclass(frozen=True)
class ResolvedWager:
    placed_on: date
    is_correct: bool
    actual_payout: int


@dataclass(frozen=True)
class AccountHistory:
    """
    Everything the rules may look at for one account.

    wager_days holds the placement date of every wager, settled or not.
    resolved is in settlement order, oldest first.
    """
    best_streak: int = 0
    wager_days: tuple[date, ...] = ()
    resolved: tuple[ResolvedWager, ...] = field(default_factory=tuple)

    @property
    def total_wagers(self) -> int:
        return len(self.wager_days)

    @property
    def resolved_count(self) -> int:
        return len(self.resolved)

    @property
    def correct_count(self) -> int:
        return sum(1 for w in self.resolved if w.is_correct)


@dataclass(frozen=True)
class Progress:
    """
    current is the displayed measure. For percentage rules the sample fields
    are set too, since accuracy alone cannot earn the badge.
    """
    current: Number
    required: int
    percentage: Decimal
    minimum_sample: Optional[int] = None
    current_sample: Optional[int] = None


# =============================================================================
# Measures
# =============================================================================

def total_wagers(history: AccountHistory) -> int:
    return history.total_wagers


def resolved_accuracy(history: AccountHistory) -> Decimal:
    return accuracy(history.correct_count, history.resolved_count)


def best_streak(history: AccountHistory) -> int:
    return history.best_streak


def total_payout(history: AccountHistory) -> int:
    return sum(w.actual_payout for w in history.resolved)


def consecutive_days(history: AccountHistory) -> int:
    """Distinct wager days counted backward from the most recent one."""
    days = sorted(set(history.wager_days), reverse=True)
    if not days:
        return 0
    run = 1
    for previous, current in zip(days, days[1:]):
        if previous - timedelta(days=1) != current:
            break
        run += 1
    return run


def largest_perfect_day(history: AccountHistory) -> int:
    """Most resolved wagers placed on a single day where every one was correct."""
    by_day: dict[date, list[bool]] = {}
    for wager in history.resolved:
        by_day.setdefault(wager.placed_on, []).append(wager.is_correct)
    perfect = [len(outcomes) for outcomes in by_day.values() if all(outcomes)]
    return max(perfect, default=0)


def comeback_run(history: AccountHistory) -> int:
    """
    Longest run of correct wagers that directly follows a run of at least
    three incorrect ones, within the comeback window.
    """
    window = history.resolved[-COMEBACK_WINDOW:]

    runs: list[list] = []
    for wager in window:
        if runs and runs[-1][0] == wager.is_correct:
            runs[-1][1] += 1
        else:
            runs.append([wager.is_correct, 1])

    best = 0
    for (was_correct, length), (then_correct, then_length) in zip(runs, runs[1:]):
        if not was_correct and length >= COMEBACK_MIN_LOSSES and then_correct:
            best = max(best, then_length)
    return best


# =============================================================================
# Registry
# =============================================================================

def _always(rule: BadgeRule, history: AccountHistory) -> bool:
    return True


def _enough_sample(rule: BadgeRule, history: AccountHistory) -> bool:
    return history.resolved_count >= (rule.minimum_sample or 1)


def _reaches(rule: BadgeRule, history: AccountHistory, measure: Callable) -> bool:
    return measure(history) >= rule.threshold


def _accuracy_reaches(rule: BadgeRule, history: AccountHistory, measure: Callable) -> bool:
    # Exact ratio; the rounded accuracy is for display only
    return history.correct_count * 100 >= rule.threshold * history.resolved_count


@dataclass(frozen=True)
class Requirement:
    measure: Callable[[AccountHistory], Number]
    eligible: Callable[[BadgeRule, AccountHistory], bool] = _always
    reaches: Callable[[BadgeRule, AccountHistory, Callable], bool] = _reaches


REGISTRY = MappingProxyType({
    RequirementType.COUNT: Requirement(total_wagers),
    RequirementType.PERCENTAGE: Requirement(resolved_accuracy, _enough_sample, _accuracy_reaches),
    RequirementType.STREAK: Requirement(best_streak),
    RequirementType.CUMULATIVE: Requirement(total_payout),
    RequirementType.CONSECUTIVE_DAYS: Requirement(consecutive_days),
    RequirementType.PERFECT_DAY: Requirement(largest_perfect_day),
    RequirementType.COMEBACK: Requirement(comeback_run),
})


def is_satisfied(rule: BadgeRule, history: AccountHistory) -> bool:
    requirement = REGISTRY[rule.requirement_type]
    if not requirement.eligible(rule, history):
        return False
    return requirement.reaches(rule, history, requirement.measure)


def progress(rule: BadgeRule, history: AccountHistory) -> Progress:
    """
    Percentage towards the rule, capped at 100. Only a satisfied rule reports
    100; an unmet one tops out at 99.9, and a percentage rule short of its
    minimum sample is held to the share of the sample collected so far.
    """
    current = REGISTRY[rule.requirement_type].measure(history)
    if rule.threshold > 0:
        pct = _percent(Decimal(current), Decimal(rule.threshold))
    else:
        pct = Decimal("0.0")

    sample = None
    if rule.requirement_type == RequirementType.PERCENTAGE:
        sample = rule.minimum_sample or 1
        if history.resolved_count < sample:
            pct = min(pct, _percent(Decimal(history.resolved_count), Decimal(sample)))

    if not is_satisfied(rule, history):
        pct = min(pct, Decimal("99.9"))

    return Progress(
        current=current,
        required=rule.threshold,
        percentage=pct,
        minimum_sample=sample,
        current_sample=history.resolved_count if sample is not None else None,
    )


def _percent(value: Decimal, of: Decimal) -> Decimal:
    pct = (value * 100 / of).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return min(pct, Decimal("100.0"))
