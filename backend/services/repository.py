"""
Persistence adapter between the services and the database.

Services ask the repository for rows and snapshots; the rules and ranking
math in the engine package never see a Session.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from engine import (
    AccountHistory,
    BadgeRule,
    DailyResult,
    RequirementType,
    ResolvedWager,
    daily_result,
)
from engine.errors import AccountNotFound, BadgeNotFound, MarketNotFound
from models import Account, AccountBadge, Badge, Market, Standing, Wager


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def rule_for(badge: Badge) -> BadgeRule:
    return BadgeRule(
        slug=badge.id,
        name=badge.name,
        description=badge.description,
        category=badge.category,
        requirement_type=RequirementType(badge.requirement_type),
        threshold=badge.threshold,
        reward_coins=badge.reward_coins,
        rarity=badge.rarity,
        minimum_sample=badge.minimum_sample,
        repeatable=badge.repeatable,
    )


class Repository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, obj) -> None:
        self.db.add(obj)

    def flush(self) -> None:
        self.db.flush()

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def account(self, account_id: str, lock: bool = False) -> Account:
        """Fetch an account; lock=True re-reads the row with FOR UPDATE."""
        query = self.db.query(Account).filter(Account.id == account_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        account = query.first()
        if account is None:
            raise AccountNotFound(f"Account not found: {account_id}")
        return account

    def lock_accounts(self, account_ids: Iterable[str]) -> dict[str, Account]:
        """Lock several accounts in id order so concurrent settlements cannot deadlock."""
        ids = sorted(set(account_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(Account)
            .filter(Account.id.in_(ids))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True)
            .all()
        )
        return {account.id: account for account in rows}

    def accounts_with_streak(self) -> list[Account]:
        return self.db.query(Account).filter(Account.current_streak > 0).order_by(Account.id).all()

    def accounts_below(self, balance: int) -> list[Account]:
        return (
            self.db.query(Account)
            .filter(Account.balance < balance)
            .order_by(Account.id)
            .with_for_update()
            .all()
        )

    # -------------------------------------------------------------------------
    # Markets
    # -------------------------------------------------------------------------

    def market(self, market_id: str, lock: bool = False) -> Market:
        query = self.db.query(Market).filter(Market.id == market_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        market = query.first()
        if market is None:
            raise MarketNotFound(f"Market not found: {market_id}")
        return market

    def markets(self, market_ids: Iterable[str]) -> dict[str, Market]:
        ids = list(set(market_ids))
        if not ids:
            return {}
        return {m.id: m for m in self.db.query(Market).filter(Market.id.in_(ids)).all()}

    # -------------------------------------------------------------------------
    # Wagers
    # -------------------------------------------------------------------------

    def has_wager(self, account_id: str, market_id: str) -> bool:
        return self.db.query(Wager.id).filter(
            Wager.account_id == account_id,
            Wager.market_id == market_id,
        ).first() is not None

    def wagered_markets(self, account_id: str, market_ids: Iterable[str]) -> set[str]:
        ids = list(set(market_ids))
        if not ids:
            return set()
        rows = self.db.query(Wager.market_id).filter(
            Wager.account_id == account_id,
            Wager.market_id.in_(ids),
        ).all()
        return {market_id for (market_id,) in rows}

    def market_wagers(self, market_id: str) -> list[Wager]:
        return (
            self.db.query(Wager)
            .filter(Wager.market_id == market_id)
            .order_by(Wager.created_at, Wager.id)
            .with_for_update()
            .all()
        )

    def resolved_wagers(self, account_id: str, limit: Optional[int] = None) -> list[Wager]:
        """Settled wagers, newest settlement first."""
        query = (
            self.db.query(Wager)
            .filter(Wager.account_id == account_id, Wager.is_correct.isnot(None))
            .order_by(Wager.settled_at.desc(), Wager.created_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def account_wagers_since(self, account_id: str, since: datetime) -> list[Wager]:
        return (
            self.db.query(Wager)
            .filter(Wager.account_id == account_id, Wager.created_at >= since)
            .order_by(Wager.created_at)
            .all()
        )

    def account_history(self, account: Account) -> AccountHistory:
        placed = (
            self.db.query(Wager.created_at)
            .filter(Wager.account_id == account.id)
            .all()
        )
        resolved = [
            ResolvedWager(
                placed_on=w.created_at.date(),
                is_correct=bool(w.is_correct),
                actual_payout=w.actual_payout or 0,
            )
            for w in reversed(self.resolved_wagers(account.id))
        ]
        return AccountHistory(
            best_streak=account.best_streak,
            wager_days=tuple(created_at.date() for (created_at,) in placed),
            resolved=tuple(resolved),
        )

    # -------------------------------------------------------------------------
    # Badges
    # -------------------------------------------------------------------------

    def active_badges(self) -> list[Badge]:
        return self.db.query(Badge).filter(Badge.is_active.is_(True)).order_by(Badge.id).all()

    def badge(self, badge_id: str) -> Badge:
        badge = self.db.query(Badge).filter(Badge.id == badge_id).first()
        if badge is None:
            raise BadgeNotFound(f"Badge not found: {badge_id}")
        return badge

    def held_awards(self, account_id: str) -> set[tuple[str, str]]:
        rows = self.db.query(AccountBadge.badge_id, AccountBadge.award_key).filter(
            AccountBadge.account_id == account_id
        ).all()
        return {(badge_id, award_key) for badge_id, award_key in rows}

    def account_awards(self, account_id: str) -> list[AccountBadge]:
        return (
            self.db.query(AccountBadge)
            .filter(AccountBadge.account_id == account_id)
            .order_by(AccountBadge.awarded_at, AccountBadge.badge_id)
            .all()
        )

    # -------------------------------------------------------------------------
    # Standings
    # -------------------------------------------------------------------------

    def daily_results(self, day: date) -> list[DailyResult]:
        """Per-account aggregates over wagers settled on day."""
        start, end = day_bounds(day)
        correct = func.sum(case((Wager.is_correct.is_(True), 1), else_=0))
        rows = (
            self.db.query(
                Wager.account_id,
                func.count(Wager.id),
                correct,
                func.sum(func.coalesce(Wager.actual_payout, 0)),
            )
            .filter(
                Wager.is_correct.isnot(None),
                Wager.refunded.is_(False),
                Wager.settled_at >= start,
                Wager.settled_at < end,
            )
            .group_by(Wager.account_id)
            .all()
        )
        return [
            daily_result(account_id, int(made), int(right or 0), int(payout or 0))
            for account_id, made, right, payout in rows
        ]

    def replace_standings(self, day: date, ranked: list[DailyResult]) -> None:
        self.db.query(Standing).filter(Standing.standing_date == day).delete()
        for result in ranked:
            self.db.add(Standing(
                account_id=result.account_id,
                standing_date=day,
                predictions_made=result.predictions_made,
                correct_predictions=result.correct_predictions,
                total_payout=result.total_payout,
                accuracy=result.accuracy,
                rank=result.rank,
            ))

    def standings(self, day: date, limit: Optional[int] = None,
                  min_rank: Optional[int] = None, max_rank: Optional[int] = None) -> list[Standing]:
        query = self.db.query(Standing).filter(Standing.standing_date == day)
        if min_rank is not None:
            query = query.filter(Standing.rank >= min_rank)
        if max_rank is not None:
            query = query.filter(Standing.rank <= max_rank)
        query = query.order_by(Standing.rank, Standing.account_id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def standing_for(self, account_id: str, day: date) -> Optional[Standing]:
        return self.db.query(Standing).filter(
            Standing.standing_date == day,
            Standing.account_id == account_id,
        ).first()

    def period_results(self, start: date, end: date) -> list[DailyResult]:
        """Per-account sums of the standings recorded from start to end inclusive."""
        made = func.sum(Standing.predictions_made)
        rows = (
            self.db.query(
                Standing.account_id,
                made,
                func.sum(Standing.correct_predictions),
                func.sum(Standing.total_payout),
                func.count(func.distinct(Standing.standing_date)),
            )
            .filter(Standing.standing_date >= start, Standing.standing_date <= end)
            .group_by(Standing.account_id)
            .having(made > 0)
            .all()
        )
        return [
            daily_result(account_id, int(total), int(right or 0), int(payout or 0), days_active=int(days))
            for account_id, total, right, payout, days in rows
        ]

    def display_names(self, account_ids: Iterable[str]) -> dict[str, str]:
        ids = list(account_ids)
        if not ids:
            return {}
        rows = self.db.query(Account.id, Account.display_name).filter(Account.id.in_(ids)).all()
        return dict(rows)

    def standings_count(self, day: date) -> int:
        return self.db.query(func.count(Standing.id)).filter(Standing.standing_date == day).scalar() or 0
