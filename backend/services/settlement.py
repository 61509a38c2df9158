from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from database import atomic
from engine import Clock, system_clock, validate_option
from engine.errors import AlreadyCancelled, AlreadyResolved
from models import Market, MarketStatus, Option
from services.repository import Repository
from services.streaks import record_outcome
from services.transactions import record_wager_payout, record_wager_refund

log = structlog.get_logger(__name__)


@dataclass
class SettlementResult:
    account_id: str
    wager_id: str
    stake: int
    is_correct: bool
    payout: int
    new_streak: int
    new_balance: int


@dataclass
class SettlementSummary:
    market_id: str
    correct_option: str
    wagers_settled: int
    winners: int
    total_payout: int
    results: list[SettlementResult] = field(default_factory=list)


@dataclass
class CancellationSummary:
    market_id: str
    wagers_refunded: int
    total_refunded: int
    reason: Optional[str] = None


def _ensure_open(market: Market) -> None:
    if market.status == MarketStatus.RESOLVED:
        raise AlreadyResolved(f"Market already resolved: {market.id}")
    if market.status == MarketStatus.CANCELLED:
        raise AlreadyCancelled(f"Market already cancelled: {market.id}")


def resolve_market(
    db: Session,
    market_id: str,
    correct_option: str,
    clock: Clock = system_clock,
) -> SettlementSummary:
    """
    Set the correct option and settle every wager on the market.

    Correct wagers are paid their potential payout and extend the account's
    streak; incorrect ones pay nothing and reset it. The whole market settles
    in one transaction or not at all.
    """
    correct_option = validate_option(correct_option)
    repo = Repository(db)
    now = clock.now()

    with atomic(db):
        market = repo.market(market_id, lock=True)
        _ensure_open(market)

        wagers = repo.market_wagers(market_id)
        accounts = repo.lock_accounts(w.account_id for w in wagers)

        market.status = MarketStatus.RESOLVED
        market.correct_option = Option(correct_option)
        market.resolved_at = now

        results = []
        total_payout = 0
        for wager in wagers:
            account = accounts[wager.account_id]
            is_correct = wager.choice.value == correct_option

            wager.is_correct = is_correct
            wager.actual_payout = wager.potential_payout if is_correct else 0
            wager.settled_at = now

            if is_correct:
                account.balance += wager.actual_payout
                record_wager_payout(db, account, wager, now)
                total_payout += wager.actual_payout

            update = record_outcome(db, account, is_correct, clock)
            results.append(SettlementResult(
                account_id=account.id,
                wager_id=wager.id,
                stake=wager.stake,
                is_correct=is_correct,
                payout=wager.actual_payout,
                new_streak=update.new_streak,
                new_balance=account.balance,
            ))

    summary = SettlementSummary(
        market_id=market_id,
        correct_option=correct_option,
        wagers_settled=len(results),
        winners=sum(1 for r in results if r.is_correct),
        total_payout=total_payout,
        results=results,
    )
    log.info(
        "market_resolved",
        market_id=market_id,
        correct_option=correct_option,
        wagers_settled=summary.wagers_settled,
        winners=summary.winners,
        total_payout=total_payout,
    )
    return summary


def cancel_market(
    db: Session,
    market_id: str,
    clock: Clock = system_clock,
    reason: Optional[str] = None,
) -> CancellationSummary:
    """Refund every stake and close the market. Streaks are left untouched."""
    repo = Repository(db)
    now = clock.now()

    with atomic(db):
        market = repo.market(market_id, lock=True)
        _ensure_open(market)

        wagers = repo.market_wagers(market_id)
        accounts = repo.lock_accounts(w.account_id for w in wagers)

        total_refunded = 0
        for wager in wagers:
            account = accounts[wager.account_id]
            account.balance += wager.stake
            wager.refunded = True
            wager.settled_at = now
            record_wager_refund(db, account, wager, now)
            total_refunded += wager.stake

        market.status = MarketStatus.CANCELLED
        market.cancelled_at = now

    log.info(
        "market_cancelled",
        market_id=market_id,
        wagers_refunded=len(wagers),
        total_refunded=total_refunded,
        reason=reason,
    )
    return CancellationSummary(
        market_id=market_id,
        wagers_refunded=len(wagers),
        total_refunded=total_refunded,
        reason=reason,
    )
