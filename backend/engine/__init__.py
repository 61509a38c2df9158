from .clock import Clock, SystemClock, FixedClock, system_clock
from .payouts import (
    MIN_STAKE,
    MAX_STAKE,
    BASE_MULTIPLIER,
    streak_multiplier,
    potential_payout,
    validate_stake,
    validate_option,
    accuracy,
)
from .streaks import StreakUpdate, apply_outcome, trailing_correct, streak_status
from .rules import (
    RequirementType,
    BadgeRule,
    AccountHistory,
    ResolvedWager,
    Progress,
    is_satisfied,
    progress,
)
from .catalog import CATALOG
from .ranking import DailyResult, daily_result, rank_standings

__all__ = [
    "Clock",
    "SystemClock",
    "FixedClock",
    "system_clock",
    "MIN_STAKE",
    "MAX_STAKE",
    "BASE_MULTIPLIER",
    "streak_multiplier",
    "potential_payout",
    "validate_stake",
    "validate_option",
    "accuracy",
    "StreakUpdate",
    "apply_outcome",
    "trailing_correct",
    "streak_status",
    "RequirementType",
    "BadgeRule",
    "AccountHistory",
    "ResolvedWager",
    "Progress",
    "is_satisfied",
    "progress",
    "CATALOG",
    "DailyResult",
    "daily_result",
    "rank_standings",
]
