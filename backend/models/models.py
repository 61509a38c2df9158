# =============================================================================
# CoinStreak Data Models
# =============================================================================
# These models represent the persisted state of the wagering game:
# - Accounts that hold coins and a streak
# - Markets (binary questions to predict)
# - Wagers (one bet per account per market)
# - Standings (ranked daily aggregates)
# - Badges and the awards made against them
# - Coin transactions (audit trail of every balance change)
# =============================================================================

from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Boolean, Date, DateTime, Numeric,
    ForeignKey, Enum as SQLEnum, CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


# =============================================================================
# Enums
# =============================================================================

class Option(str, Enum):
    """
    The two answers every market offers.

    A market stores the human-readable text of each option separately;
    wagers and resolutions only ever refer to the letter.
    """
    A = "A"
    B = "B"


class MarketStatus(str, Enum):
    """
    Lifecycle of a market.

    PENDING: Created, not yet accepting wagers
    ACTIVE: Accepting wagers until the deadline
    RESOLVED: Correct option set, wagers settled (terminal)
    CANCELLED: Stakes refunded (terminal)
    """
    PENDING = "pending"
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    WAGER_STAKE = "wager_stake"
    WAGER_PAYOUT = "wager_payout"
    WAGER_REFUND = "wager_refund"
    BADGE_REWARD = "badge_reward"
    BALANCE_RESET = "balance_reset"


# =============================================================================
# Account Model
# =============================================================================

class Account(Base):
    """
    A player's coin balance and streak state.

    Balance is an integer number of coins. It is only ever changed by the
    ledger, settlement, achievement and reset services, each of which writes
    a CoinTransaction alongside the change.
    """
    __tablename__ = "accounts"

    id = Column(String, primary_key=True)
    display_name = Column(String(50), nullable=False)

    balance = Column(Integer, default=1000, nullable=False)

    # Consecutive correctly settled wagers, and the best run ever reached
    current_streak = Column(Integer, default=0, nullable=False)
    best_streak = Column(Integer, default=0, nullable=False)

    # Settled wagers only
    total_predictions = Column(Integer, default=0, nullable=False)
    correct_predictions = Column(Integer, default=0, nullable=False)

    last_active_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    wagers = relationship("Wager", back_populates="account")
    badges = relationship("AccountBadge", back_populates="account")

    # Prevent negative balance at database level
    __table_args__ = (
        CheckConstraint("balance >= 0", name="non_negative_balance"),
        CheckConstraint("current_streak >= 0", name="non_negative_streak"),
    )


# =============================================================================
# Market Model
# =============================================================================

class Market(Base):
    """
    A binary prediction question.

    Examples:
    - "Will it rain in Lisbon on Friday?" (A: Yes, B: No)
    - "Who wins tonight?" (A: Home, B: Away)

    Wagers are accepted while the market is ACTIVE and the deadline has not
    passed. correct_option is written exactly once, at resolution.
    """
    __tablename__ = "markets"

    id = Column(String, primary_key=True)

    question = Column(String(500), nullable=False)
    description = Column(String(2000), nullable=True)

    option_a = Column(String(255), nullable=False)
    option_b = Column(String(255), nullable=False)

    # Wagers close at the deadline; the scheduler resolves markets past it
    deadline = Column(DateTime, nullable=False)

    status = Column(SQLEnum(MarketStatus), default=MarketStatus.PENDING, nullable=False)
    correct_option = Column(SQLEnum(Option), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    wagers = relationship("Wager", back_populates="market")

    __table_args__ = (
        Index("ix_markets_status_deadline", "status", "deadline"),
    )


# =============================================================================
# Wager Model
# =============================================================================

class Wager(Base):
    """
    One account's bet on one market.

    Created at submission with the payout already fixed by the streak
    multiplier in force at that moment. Settled exactly once: is_correct and
    actual_payout stay NULL until the market resolves. A cancelled market
    marks its wagers refunded instead. Wagers are never deleted.
    """
    __tablename__ = "wagers"

    id = Column(String, primary_key=True)

    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    market_id = Column(String, ForeignKey("markets.id"), nullable=False)

    choice = Column(SQLEnum(Option), nullable=False)
    stake = Column(Integer, nullable=False)
    potential_payout = Column(Integer, nullable=False)
    multiplier_applied = Column(Numeric(3, 2), nullable=False, default=1)

    is_correct = Column(Boolean, nullable=True)
    actual_payout = Column(Integer, nullable=True)
    refunded = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    settled_at = Column(DateTime, nullable=True)

    account = relationship("Account", back_populates="wagers")
    market = relationship("Market", back_populates="wagers")

    __table_args__ = (
        # One wager per account per market
        UniqueConstraint("account_id", "market_id", name="uq_wager_account_market"),
        CheckConstraint("stake >= 10 AND stake <= 1000", name="stake_bounds"),
        Index("ix_wagers_account_settled", "account_id", "settled_at"),
        Index("ix_wagers_market", "market_id"),
    )

    @property
    def is_settled(self) -> bool:
        return self.is_correct is not None


# =============================================================================
# Standing Model
# =============================================================================

class Standing(Base):
    """
    An account's ranked result for one day.

    Rows for a date are always replaced as a set by the leaderboard ranker,
    never edited in place.
    """
    __tablename__ = "standings"

    id = Column(Integer, primary_key=True, autoincrement=True)

    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    standing_date = Column(Date, nullable=False)

    predictions_made = Column(Integer, default=0, nullable=False)
    correct_predictions = Column(Integer, default=0, nullable=False)
    total_payout = Column(Integer, default=0, nullable=False)
    accuracy = Column(Numeric(5, 2), default=0, nullable=False)
    rank = Column(Integer, nullable=False)

    account = relationship("Account")

    __table_args__ = (
        UniqueConstraint("account_id", "standing_date", name="uq_standing_account_date"),
        Index("ix_standings_date_rank", "standing_date", "rank"),
    )


# =============================================================================
# Badge Models
# =============================================================================

class Badge(Base):
    """
    A catalog entry: a named rule and the coins it pays out.

    Rows are synced from the built-in catalog at startup. requirement_type
    selects the predicate; threshold (and minimum_sample for percentage
    rules) parameterise it.
    """
    __tablename__ = "badges"

    id = Column(String, primary_key=True)  # slug, e.g. "streak_5"
    name = Column(String(100), nullable=False)
    description = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False)

    requirement_type = Column(String(30), nullable=False)
    threshold = Column(Integer, nullable=False)
    minimum_sample = Column(Integer, nullable=True)

    reward_coins = Column(Integer, default=0, nullable=False)
    rarity = Column(String(20), default="common", nullable=False)
    repeatable = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    awards = relationship("AccountBadge", back_populates="badge")


class AccountBadge(Base):
    """
    The record of a badge being awarded to an account.

    award_key is "once" for ordinary badges, so the unique constraint makes
    a second award impossible even under concurrent evaluation. Repeatable
    badges use the award date instead.
    """
    __tablename__ = "account_badges"

    id = Column(String, primary_key=True)

    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    badge_id = Column(String, ForeignKey("badges.id"), nullable=False)
    award_key = Column(String(20), nullable=False, default="once")

    awarded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="badges")
    badge = relationship("Badge", back_populates="awards")

    __table_args__ = (
        UniqueConstraint("account_id", "badge_id", "award_key", name="uq_account_badge_award"),
    )


# =============================================================================
# Coin Transaction Model
# =============================================================================

class CoinTransaction(Base):
    """
    Audit trail entry for a single balance change.

    amount is signed: stakes are negative, payouts, refunds and rewards are
    positive. balance_after is the account balance once the change applied.
    """
    __tablename__ = "coin_transactions"

    id = Column(String, primary_key=True)

    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=False)
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)

    description = Column(String(255), nullable=True)
    reference_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_coin_transactions_account", "account_id", "created_at"),
    )


# =============================================================================
# Summary
# =============================================================================
#
# Data flow when a wager is submitted:
#
# 1. Account row locked, balance re-read
# 2. Wager created with potential_payout = stake * 1.5 * streak multiplier
# 3. Balance debited, WAGER_STAKE transaction recorded
#
# When a market resolves:
# 1. Market status -> RESOLVED, correct_option set
# 2. Every wager settled: is_correct, actual_payout, settled_at
# 3. Correct accounts credited (WAGER_PAYOUT), streaks extended
# 4. Incorrect accounts have their streak reset to 0
#
# When a market is cancelled:
# 1. Every stake refunded (WAGER_REFUND), wagers marked refunded
# 2. Market status -> CANCELLED
# =============================================================================
