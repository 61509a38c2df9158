from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import uuid4

import structlog
from sqlalchemy.orm import Session

from database import atomic
from engine import Clock, accuracy, system_clock
from engine.errors import AlreadyCancelled, AlreadyResolved, MarketClosed
from models import Market, MarketStatus, Option, Wager
from services.repository import Repository

log = structlog.get_logger(__name__)

# A pending market only opens when at least this much time is left to bet
ACTIVATION_LEAD = timedelta(minutes=30)


@dataclass
class MarketStats:
    market_id: str
    total_wagers: int
    total_staked: int
    option_a_count: int
    option_b_count: int
    option_a_percentage: Decimal
    option_b_percentage: Decimal
    average_stake: int
    difficulty: str


def create_market(
    db: Session,
    question: str,
    option_a: str,
    option_b: str,
    deadline: datetime,
    description: Optional[str] = None,
    activate: bool = False,
    clock: Clock = system_clock,
) -> Market:
    with atomic(db):
        market = Market(
            id=str(uuid4()),
            question=question,
            description=description,
            option_a=option_a,
            option_b=option_b,
            deadline=deadline,
            status=MarketStatus.ACTIVE if activate else MarketStatus.PENDING,
            created_at=clock.now(),
        )
        db.add(market)
    log.info("market_created", market_id=market.id, status=market.status.value)
    return market


def activate_market(db: Session, market_id: str, clock: Clock = system_clock) -> Market:
    repo = Repository(db)
    with atomic(db):
        market = repo.market(market_id, lock=True)
        if market.status == MarketStatus.RESOLVED:
            raise AlreadyResolved(f"Market already resolved: {market_id}")
        if market.status == MarketStatus.CANCELLED:
            raise AlreadyCancelled(f"Market already cancelled: {market_id}")
        if market.status == MarketStatus.PENDING:
            if clock.now() >= market.deadline:
                raise MarketClosed(f"Market deadline has passed: {market_id}")
            market.status = MarketStatus.ACTIVE
    log.info("market_activated", market_id=market_id)
    return market


def activate_pending_markets(db: Session, clock: Clock = system_clock) -> int:
    cutoff = clock.now() + ACTIVATION_LEAD
    with atomic(db):
        markets = db.query(Market).filter(
            Market.status == MarketStatus.PENDING,
            Market.deadline > cutoff,
        ).with_for_update().all()
        for market in markets:
            market.status = MarketStatus.ACTIVE
    log.info("pending_markets_activated", count=len(markets))
    return len(markets)


def markets_needing_resolution(db: Session, clock: Clock = system_clock) -> list[Market]:
    return db.query(Market).filter(
        Market.status == MarketStatus.ACTIVE,
        Market.deadline <= clock.now(),
    ).order_by(Market.deadline).all()


def difficulty_rating(option_a_count: int, total: int) -> str:
    """Lopsided splits are easy calls; close to 50/50 is hard."""
    if total == 0:
        return "Unknown"
    split = abs(Decimal(option_a_count) * 100 / total - 50)
    if split >= 40:
        return "Easy"
    if split >= 20:
        return "Medium"
    return "Hard"


def market_stats(db: Session, market_id: str) -> MarketStats:
    Repository(db).market(market_id)
    wagers = db.query(Wager).filter(Wager.market_id == market_id).all()

    total = len(wagers)
    a_count = sum(1 for w in wagers if w.choice == Option.A)
    b_count = total - a_count
    staked = sum(w.stake for w in wagers)

    return MarketStats(
        market_id=market_id,
        total_wagers=total,
        total_staked=staked,
        option_a_count=a_count,
        option_b_count=b_count,
        option_a_percentage=accuracy(a_count, total),
        option_b_percentage=accuracy(b_count, total),
        average_stake=round(staked / total) if total else 0,
        difficulty=difficulty_rating(a_count, total),
    )
