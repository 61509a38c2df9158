from decimal import Decimal, ROUND_HALF_UP

from .errors import InvalidOption, InvalidStake


MIN_STAKE = 10
MAX_STAKE = 1000

# Every correct wager pays stake * 1.5 before the streak bonus
BASE_MULTIPLIER = Decimal("1.5")

# Streak bonus: +0.01 per consecutive correct wager, capped at 2.00x
STREAK_BASE = Decimal("1.00")
STREAK_INCREMENT = Decimal("0.01")
STREAK_CAP = Decimal("2.00")

OPTIONS = ("A", "B")

_CENTS = Decimal("0.01")


def streak_multiplier(streak: int) -> Decimal:
    if streak <= 0:
        return STREAK_BASE
    multiplier = STREAK_BASE + STREAK_INCREMENT * streak
    return min(multiplier, STREAK_CAP).quantize(_CENTS)


def potential_payout(stake: int, multiplier: Decimal) -> int:
    """Coins paid if the wager settles correctly, rounded half up."""
    raw = Decimal(stake) * BASE_MULTIPLIER * Decimal(multiplier)
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def validate_stake(stake) -> int:
    if isinstance(stake, bool) or not isinstance(stake, int):
        raise InvalidStake("Stake must be a whole number of coins")
    if stake < MIN_STAKE or stake > MAX_STAKE:
        raise InvalidStake(f"Stake must be between {MIN_STAKE} and {MAX_STAKE} coins")
    return stake


def validate_option(option) -> str:
    value = getattr(option, "value", option)
    if value not in OPTIONS:
        raise InvalidOption("Option must be A or B")
    return value


def accuracy(correct: int, total: int) -> Decimal:
    """Percentage of correct wagers with two decimals; 0 when nothing settled."""
    if total <= 0:
        return Decimal("0.00")
    pct = Decimal(correct) * 100 / Decimal(total)
    return pct.quantize(_CENTS, rounding=ROUND_HALF_UP)


def roi_percentage(returned: int, wagered: int) -> Decimal:
    if wagered <= 0:
        return Decimal("0.00")
    pct = Decimal(returned - wagered) * 100 / Decimal(wagered)
    return pct.quantize(_CENTS, rounding=ROUND_HALF_UP)
