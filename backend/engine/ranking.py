from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable

from .payouts import accuracy


@dataclass(frozen=True)
class DailyResult:
    account_id: str
    predictions_made: int
    correct_predictions: int
    total_payout: int
    accuracy: Decimal
    rank: int = 0
    days_active: int = 1

    @property
    def sort_key(self) -> tuple:
        return (-self.total_payout, -self.accuracy, -self.correct_predictions)


def daily_result(
    account_id: str,
    predictions_made: int,
    correct: int,
    payout: int,
    days_active: int = 1,
) -> DailyResult:
    """days_active is above 1 only when the result sums several days of standings."""
    return DailyResult(
        account_id=account_id,
        predictions_made=predictions_made,
        correct_predictions=correct,
        total_payout=payout,
        accuracy=accuracy(correct, predictions_made),
        days_active=days_active,
    )


def rank_standings(results: Iterable[DailyResult]) -> list[DailyResult]:
    """
    Order by payout, then accuracy, then correct count, all descending, and
    assign standard competition ranks (1, 2, 2, 4). Ties on the whole key
    share a rank; account id only fixes the display order inside a tie.
    """
    ordered = sorted(results, key=lambda r: (r.sort_key, r.account_id))

    ranked = []
    previous_key = None
    rank = 0
    for position, result in enumerate(ordered, start=1):
        if result.sort_key != previous_key:
            rank = position
            previous_key = result.sort_key
        ranked.append(replace(result, rank=rank))
    return ranked
