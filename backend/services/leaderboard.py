import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from database import atomic
from engine import rank_standings
from engine.errors import ValidationError
from models import Standing
from services.cache import invalidate_on_commit, view_cache
from services.repository import Repository

log = structlog.get_logger(__name__)

MAX_STANDINGS_LIMIT = 200
PERIODS = ("weekly", "monthly")


@dataclass
class StandingRow:
    account_id: str
    display_name: str
    rank: int
    predictions_made: int
    correct_predictions: int
    total_payout: int
    accuracy: Decimal


@dataclass
class PeriodRow:
    account_id: str
    display_name: str
    rank: int
    predictions_made: int
    correct_predictions: int
    total_payout: int
    accuracy: Decimal
    days_active: int


@dataclass
class PeriodStandings:
    period: str
    start: date
    end: date
    rows: list[PeriodRow]


@dataclass
class AccountPosition:
    account_id: str
    standing_date: date
    rank: Optional[int]
    total_ranked: int
    neighbours: list[StandingRow]


def _row(standing: Standing) -> StandingRow:
    return StandingRow(
        account_id=standing.account_id,
        display_name=standing.account.display_name,
        rank=standing.rank,
        predictions_made=standing.predictions_made,
        correct_predictions=standing.correct_predictions,
        total_payout=standing.total_payout,
        accuracy=Decimal(standing.accuracy),
    )


def compute_standing(db: Session, standing_date: date) -> int:
    """
    Rank every account with a wager settled on standing_date.

    The date's rows are deleted and rebuilt in one transaction, so running
    this again for the same date yields the same standings.
    """
    repo = Repository(db)
    with atomic(db):
        ranked = rank_standings(repo.daily_results(standing_date))
        repo.replace_standings(standing_date, ranked)
        invalidate_on_commit(db, "daily_standings", standing_date)
        invalidate_on_commit(db, "period_standings")

    log.info("standing_computed", standing_date=standing_date.isoformat(), accounts=len(ranked))
    return len(ranked)


def daily_standings(db: Session, standing_date: date, limit: int = 50) -> list[StandingRow]:
    limit = max(1, min(limit, MAX_STANDINGS_LIMIT))

    def compute():
        return [_row(s) for s in Repository(db).standings(standing_date, limit=limit)]

    return view_cache.get_or_compute("daily_standings", (standing_date, limit), compute)


def account_position(
    db: Session,
    account_id: str,
    standing_date: date,
    context: int = 2,
) -> AccountPosition:
    """The account's rank on a date plus the rows within context ranks either side."""
    repo = Repository(db)
    repo.account(account_id)
    total = repo.standings_count(standing_date)

    standing = repo.standing_for(account_id, standing_date)
    if standing is None:
        return AccountPosition(account_id, standing_date, None, total, [])

    nearby = repo.standings(
        standing_date,
        min_rank=max(1, standing.rank - context),
        max_rank=standing.rank + context,
    )
    return AccountPosition(
        account_id=account_id,
        standing_date=standing_date,
        rank=standing.rank,
        total_ranked=total,
        neighbours=[_row(s) for s in nearby],
    )


# =============================================================================
# Weekly and monthly standings
# =============================================================================

def period_bounds(period: str, anchor: date) -> tuple[date, date]:
    """Monday to Sunday for weekly, first to last day of the month for monthly."""
    if period == "weekly":
        start = anchor - timedelta(days=anchor.weekday())
        return start, start + timedelta(days=6)
    if period == "monthly":
        last = calendar.monthrange(anchor.year, anchor.month)[1]
        return anchor.replace(day=1), anchor.replace(day=last)
    raise ValidationError(f"Period must be one of: {', '.join(PERIODS)}", field="period")


def period_standings(db: Session, period: str, anchor: date, limit: int = 50) -> PeriodStandings:
    """
    Rank accounts over the week or month containing anchor.

    Built from the daily standings already computed for that range, so a day
    only counts once compute_standing has run for it.
    """
    start, end = period_bounds(period, anchor)
    limit = max(1, min(limit, MAX_STANDINGS_LIMIT))

    def compute():
        repo = Repository(db)
        ranked = rank_standings(repo.period_results(start, end))[:limit]
        names = repo.display_names(r.account_id for r in ranked)
        rows = [
            PeriodRow(
                account_id=r.account_id,
                display_name=names.get(r.account_id, ""),
                rank=r.rank,
                predictions_made=r.predictions_made,
                correct_predictions=r.correct_predictions,
                total_payout=r.total_payout,
                accuracy=r.accuracy,
                days_active=r.days_active,
            )
            for r in ranked
        ]
        return PeriodStandings(period=period, start=start, end=end, rows=rows)

    return view_cache.get_or_compute("period_standings", (period, start, limit), compute)
