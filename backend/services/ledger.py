"""
Wager ledger: accounts, single and batch wager submission, balance resets.

Every write runs inside database.atomic(). The account row is re-read with
FOR UPDATE before the balance is checked, so two submissions against the same
account serialize on that row.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Sequence
from uuid import uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import DAILY_COINS, MAX_BATCH_SIZE
from database import atomic
from engine import (
    Clock,
    potential_payout,
    streak_multiplier,
    system_clock,
    validate_option,
    validate_stake,
)
from engine.errors import (
    AccountExists,
    CoinStreakError,
    DuplicateInBatch,
    DuplicateWager,
    InsufficientBalance,
    InvalidBatch,
    MarketClosed,
    MarketNotFound,
)
from engine.payouts import accuracy, roi_percentage
from models import Account, Market, MarketStatus, Option, Wager
from services.repository import Repository
from services.transactions import record_balance_reset, record_wager_stake

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WagerRequest:
    market_id: str
    option: str
    stake: int


@dataclass
class BatchResult:
    wagers: list[Wager]
    total_stake: int
    remaining_balance: int


@dataclass
class BettingStats:
    days: int
    total_bets: int
    total_wagered: int
    total_winnings: int
    net_profit: int
    roi: Decimal
    win_rate: Decimal
    average_bet: int
    biggest_win: int
    pending_bets: int


# =============================================================================
# Accounts
# =============================================================================

def open_account(
    db: Session,
    display_name: str,
    account_id: Optional[str] = None,
    balance: int = DAILY_COINS,
    clock: Clock = system_clock,
) -> Account:
    if account_id is not None and db.get(Account, account_id) is not None:
        raise AccountExists(f"Account already exists: {account_id}")

    try:
        with atomic(db):
            account = Account(
                id=account_id or str(uuid4()),
                display_name=display_name,
                balance=balance,
                current_streak=0,
                best_streak=0,
                total_predictions=0,
                correct_predictions=0,
                created_at=clock.now(),
            )
            db.add(account)
    except IntegrityError:
        # Opened concurrently under the same id
        raise AccountExists(f"Account already exists: {account_id}")

    log.info("account_opened", account_id=account.id, balance=balance)
    return account


def get_account(db: Session, account_id: str) -> Account:
    return Repository(db).account(account_id)


# =============================================================================
# Wagers
# =============================================================================

def _check_open(market: Market, clock: Clock) -> None:
    if market.status != MarketStatus.ACTIVE:
        raise MarketClosed(f"Market is not accepting wagers: {market.id}")
    if clock.now() >= market.deadline:
        raise MarketClosed(f"Market deadline has passed: {market.id}")


def _place(db: Session, account: Account, market_id: str, option: str, stake: int, clock: Clock) -> Wager:
    multiplier = streak_multiplier(account.current_streak)
    now = clock.now()
    wager = Wager(
        id=str(uuid4()),
        account_id=account.id,
        market_id=market_id,
        choice=Option(option),
        stake=stake,
        potential_payout=potential_payout(stake, multiplier),
        multiplier_applied=multiplier,
        refunded=False,
        created_at=now,
    )
    db.add(wager)
    account.balance -= stake
    record_wager_stake(db, account, wager, now)
    return wager


def submit_wager(
    db: Session,
    account_id: str,
    market_id: str,
    option: str,
    stake: int,
    clock: Clock = system_clock,
) -> Wager:
    """
    Place one wager.

    Stake and option are checked before anything is read. Inside the
    transaction the account is locked, the market must be active and before
    its deadline, and the account must not already hold a wager on it.
    """
    stake = validate_stake(stake)
    option = validate_option(option)

    repo = Repository(db)
    try:
        with atomic(db):
            account = repo.account(account_id, lock=True)
            market = repo.market(market_id)
            _check_open(market, clock)

            if repo.has_wager(account_id, market_id):
                raise DuplicateWager(f"Already wagered on market: {market_id}")

            if account.balance < stake:
                raise InsufficientBalance(stake, account.balance)

            wager = _place(db, account, market_id, option, stake, clock)
            db.flush()
    except IntegrityError:
        # A concurrent submission for the same market won the unique constraint
        raise DuplicateWager(f"Already wagered on market: {market_id}")

    log.info(
        "wager_submitted",
        account_id=account_id,
        market_id=market_id,
        option=option,
        stake=stake,
        potential_payout=wager.potential_payout,
        multiplier=str(wager.multiplier_applied),
    )
    return wager


def submit_batch(
    db: Session,
    account_id: str,
    requests: Sequence[WagerRequest],
    clock: Clock = system_clock,
) -> BatchResult:
    """
    Place up to MAX_BATCH_SIZE wagers, all or nothing.

    The first pass validates each item without writing anything; a failure
    carries the index of the offending item. The second pass locks the
    account, checks the summed stake against the balance and writes every
    wager.
    """
    if not requests:
        raise InvalidBatch("Batch must contain at least one wager")
    if len(requests) > MAX_BATCH_SIZE:
        raise InvalidBatch(f"Batch may contain at most {MAX_BATCH_SIZE} wagers")

    repo = Repository(db)
    repo.account(account_id)

    markets = repo.markets(r.market_id for r in requests)
    already = repo.wagered_markets(account_id, markets.keys())

    validated = []
    seen = set()
    for index, request in enumerate(requests):
        try:
            stake = validate_stake(request.stake)
            option = validate_option(request.option)
            if request.market_id in seen:
                raise DuplicateInBatch(f"Market appears twice in batch: {request.market_id}")
            market = markets.get(request.market_id)
            if market is None:
                raise MarketNotFound(f"Market not found: {request.market_id}")
            _check_open(market, clock)
            if request.market_id in already:
                raise DuplicateWager(f"Already wagered on market: {request.market_id}")
        except CoinStreakError as exc:
            raise exc.at(index)
        seen.add(request.market_id)
        validated.append((request.market_id, option, stake))

    total_stake = sum(stake for _, _, stake in validated)

    try:
        with atomic(db):
            account = repo.account(account_id, lock=True)
            if account.balance < total_stake:
                raise InsufficientBalance(total_stake, account.balance)

            wagers = [
                _place(db, account, market_id, option, stake, clock)
                for market_id, option, stake in validated
            ]
            db.flush()
            remaining = account.balance
    except IntegrityError:
        raise DuplicateWager("A wager in the batch was placed concurrently")

    log.info(
        "batch_submitted",
        account_id=account_id,
        count=len(wagers),
        total_stake=total_stake,
        remaining_balance=remaining,
    )
    return BatchResult(wagers=wagers, total_stake=total_stake, remaining_balance=remaining)


# =============================================================================
# Balance maintenance
# =============================================================================

def reset_balances(db: Session, amount: int = DAILY_COINS, clock: Clock = system_clock) -> int:
    """Top every account below amount back up to it. Returns accounts touched."""
    repo = Repository(db)
    now = clock.now()
    with atomic(db):
        accounts = repo.accounts_below(amount)
        for account in accounts:
            topped_up = amount - account.balance
            account.balance = amount
            record_balance_reset(db, account, topped_up, now)
    log.info("balances_reset", accounts=len(accounts), amount=amount)
    return len(accounts)


def betting_stats(db: Session, account_id: str, days: int = 30, clock: Clock = system_clock) -> BettingStats:
    repo = Repository(db)
    repo.account(account_id)
    wagers = repo.account_wagers_since(account_id, clock.now() - timedelta(days=days))

    live = [w for w in wagers if not w.refunded]
    settled = [w for w in live if w.is_settled]
    wins = [w for w in settled if w.is_correct]

    wagered = sum(w.stake for w in live)
    settled_stake = sum(w.stake for w in settled)
    winnings = sum(w.actual_payout or 0 for w in settled)

    return BettingStats(
        days=days,
        total_bets=len(live),
        total_wagered=wagered,
        total_winnings=winnings,
        net_profit=winnings - settled_stake,
        roi=roi_percentage(winnings, settled_stake),
        win_rate=accuracy(len(wins), len(settled)),
        average_bet=round(wagered / len(live)) if live else 0,
        biggest_win=max((w.actual_payout for w in wins), default=0),
        pending_bets=len(live) - len(settled),
    )
