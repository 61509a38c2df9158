"""Market resolution, cancellation and the market lifecycle helpers."""

from datetime import timedelta
from decimal import Decimal

import pytest

from engine.errors import AlreadyCancelled, AlreadyResolved, InvalidOption, MarketNotFound
from models import CoinTransaction, MarketStatus, Option, TransactionType, Wager
from services import (
    activate_market,
    activate_pending_markets,
    cancel_market,
    get_account,
    market_stats,
    markets_needing_resolution,
    resolve_market,
    submit_wager,
)


@pytest.fixture
def contested(db, clock, make_account, make_market):
    """One market, one account on each side."""
    market = make_market()
    alice = make_account(name="alice")
    bob = make_account(name="bob")
    submit_wager(db, alice.id, market.id, "A", 100, clock)
    submit_wager(db, bob.id, market.id, "B", 200, clock)
    clock.advance(hours=1)
    return market, alice, bob


def test_resolve_pays_winners_and_settles_every_wager(db, clock, contested):
    market, alice, bob = contested

    summary = resolve_market(db, market.id, "A", clock)

    assert summary.wagers_settled == 2
    assert summary.winners == 1
    assert summary.total_payout == 150

    assert get_account(db, alice.id).balance == 1050
    assert get_account(db, bob.id).balance == 800

    db.refresh(market)
    assert market.status == MarketStatus.RESOLVED
    assert market.correct_option == Option.A
    assert market.resolved_at == clock.now()

    wagers = {w.account_id: w for w in db.query(Wager).all()}
    assert wagers[alice.id].is_correct is True
    assert wagers[alice.id].actual_payout == 150
    assert wagers[bob.id].is_correct is False
    assert wagers[bob.id].actual_payout == 0
    assert all(w.settled_at == clock.now() for w in wagers.values())

    payout = db.query(CoinTransaction).filter(CoinTransaction.type == TransactionType.WAGER_PAYOUT).one()
    assert payout.account_id == alice.id
    assert payout.amount == 150
    assert payout.balance_after == 1050


def test_resolve_updates_streaks_and_counters(db, clock, contested):
    market, alice, bob = contested
    resolve_market(db, market.id, "A", clock)

    alice = get_account(db, alice.id)
    bob = get_account(db, bob.id)
    assert (alice.current_streak, alice.best_streak) == (1, 1)
    assert (bob.current_streak, bob.best_streak) == (0, 0)
    assert alice.total_predictions == bob.total_predictions == 1
    assert alice.correct_predictions == 1
    assert bob.correct_predictions == 0
    assert alice.last_active_date == clock.today()


def test_streak_raises_next_payout(db, clock, make_account, make_market, play):
    account = make_account()
    play(account, correct=True)

    wager = submit_wager(db, account.id, make_market().id, "A", 100, clock)
    # 100 * 1.5 * 1.01 = 151.5
    assert wager.multiplier_applied == Decimal("1.01")
    assert wager.potential_payout == 152


def test_resolving_twice_is_rejected(db, clock, contested):
    market, alice, _ = contested
    resolve_market(db, market.id, "A", clock)

    with pytest.raises(AlreadyResolved):
        resolve_market(db, market.id, "B", clock)

    assert get_account(db, alice.id).balance == 1050
    db.refresh(market)
    assert market.correct_option == Option.A


def test_resolve_rejects_bad_option_and_unknown_market(db, clock, contested):
    market, _, _ = contested
    with pytest.raises(InvalidOption):
        resolve_market(db, market.id, "C", clock)
    with pytest.raises(MarketNotFound):
        resolve_market(db, "missing", "A", clock)


def test_resolve_market_without_wagers(db, clock, make_market):
    market = make_market()
    summary = resolve_market(db, market.id, "B", clock)
    assert summary.wagers_settled == 0
    assert summary.total_payout == 0


def test_cancel_refunds_every_stake(db, clock, contested):
    market, alice, bob = contested

    summary = cancel_market(db, market.id, clock, reason="question was ambiguous")

    assert summary.wagers_refunded == 2
    assert summary.total_refunded == 300
    assert get_account(db, alice.id).balance == 1000
    assert get_account(db, bob.id).balance == 1000

    db.refresh(market)
    assert market.status == MarketStatus.CANCELLED
    assert market.cancelled_at == clock.now()
    assert all(w.refunded and w.is_correct is None for w in db.query(Wager).all())
    assert db.query(CoinTransaction).filter(CoinTransaction.type == TransactionType.WAGER_REFUND).count() == 2


def test_cancel_leaves_streaks_alone(db, clock, make_account, play, make_market):
    account = make_account()
    play(account, correct=True)
    market = make_market()
    submit_wager(db, account.id, market.id, "A", 100, clock)

    cancel_market(db, market.id, clock)

    assert get_account(db, account.id).current_streak == 1


def test_terminal_states(db, clock, contested, make_market):
    market, _, _ = contested
    cancel_market(db, market.id, clock)

    with pytest.raises(AlreadyCancelled):
        cancel_market(db, market.id, clock)
    with pytest.raises(AlreadyCancelled):
        resolve_market(db, market.id, "A", clock)

    resolved = make_market()
    resolve_market(db, resolved.id, "A", clock)
    with pytest.raises(AlreadyResolved):
        cancel_market(db, resolved.id, clock)


def test_pending_market_can_be_resolved_or_cancelled(db, clock, make_market):
    pending = make_market(activate=False)
    resolve_market(db, pending.id, "A", clock)
    db.refresh(pending)
    assert pending.status == MarketStatus.RESOLVED

    other = make_market(activate=False)
    cancel_market(db, other.id, clock)
    db.refresh(other)
    assert other.status == MarketStatus.CANCELLED


def test_activate_pending_markets_needs_lead_time(db, clock, make_market):
    soon = make_market(hours=0.25, activate=False)
    later = make_market(hours=2, activate=False)

    assert activate_pending_markets(db, clock) == 1
    assert activate_pending_markets(db, clock) == 0

    db.refresh(soon)
    db.refresh(later)
    assert soon.status == MarketStatus.PENDING
    assert later.status == MarketStatus.ACTIVE


def test_activate_market_rejects_terminal_markets(db, clock, make_market):
    market = make_market(activate=False)
    assert activate_market(db, market.id, clock).status == MarketStatus.ACTIVE

    resolve_market(db, market.id, "A", clock)
    with pytest.raises(AlreadyResolved):
        activate_market(db, market.id, clock)


def test_markets_needing_resolution(db, clock, make_market):
    due = make_market(hours=1)
    make_market(hours=5)
    clock.advance(hours=2)

    assert [m.id for m in markets_needing_resolution(db, clock)] == [due.id]


def test_market_stats_difficulty(db, clock, make_account, make_market):
    market = make_market()
    for option in ("A", "A", "A", "B"):
        submit_wager(db, make_account().id, market.id, option, 100, clock)

    stats = market_stats(db, market.id)

    assert stats.total_wagers == 4
    assert stats.total_staked == 400
    assert stats.option_a_percentage == Decimal("75.00")
    assert stats.average_stake == 100
    assert stats.difficulty == "Medium"

    empty = market_stats(db, make_market().id)
    assert empty.difficulty == "Unknown"
