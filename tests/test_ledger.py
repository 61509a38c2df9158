"""Wager submission, batches and balance maintenance."""

from decimal import Decimal

import pytest

from engine.errors import (
    AccountExists,
    AccountNotFound,
    DuplicateInBatch,
    DuplicateWager,
    InsufficientBalance,
    InvalidBatch,
    InvalidOption,
    InvalidStake,
    MarketClosed,
    MarketNotFound,
)
from models import Account, CoinTransaction, TransactionType, Wager
from services import (
    WagerRequest,
    betting_stats,
    get_account,
    open_account,
    reset_balances,
    submit_batch,
    submit_wager,
)
from services.repository import Repository


def _wager_count(db):
    return db.query(Wager).count()


def test_submit_wager_debits_balance_and_records_transaction(db, clock, make_account, make_market):
    account = make_account()
    market = make_market()

    wager = submit_wager(db, account.id, market.id, "A", 100, clock)

    assert wager.stake == 100
    assert wager.potential_payout == 150
    assert wager.multiplier_applied == Decimal("1.00")
    assert wager.is_correct is None
    assert get_account(db, account.id).balance == 900

    tx = db.query(CoinTransaction).filter(CoinTransaction.reference_id == wager.id).one()
    assert tx.type == TransactionType.WAGER_STAKE
    assert tx.amount == -100
    assert tx.balance_after == 900


def test_payout_uses_current_streak(db, clock, make_account, make_market):
    account = make_account()
    account.current_streak = 5
    db.commit()

    wager = submit_wager(db, account.id, make_market().id, "B", 100, clock)

    # 100 * 1.5 * 1.05 = 157.5
    assert wager.multiplier_applied == Decimal("1.05")
    assert wager.potential_payout == 158


def test_stake_bounds_are_inclusive(db, clock, make_account, make_market):
    account = make_account(balance=2000)
    submit_wager(db, account.id, make_market().id, "A", 10, clock)
    submit_wager(db, account.id, make_market().id, "A", 1000, clock)
    assert get_account(db, account.id).balance == 990


@pytest.mark.parametrize("stake", [9, 1001])
def test_out_of_range_stake_rejected_without_mutation(db, clock, make_account, make_market, stake):
    account = make_account()
    with pytest.raises(InvalidStake):
        submit_wager(db, account.id, make_market().id, "A", stake, clock)
    assert get_account(db, account.id).balance == 1000
    assert _wager_count(db) == 0


def test_invalid_option_rejected(db, clock, make_account, make_market):
    account = make_account()
    with pytest.raises(InvalidOption):
        submit_wager(db, account.id, make_market().id, "C", 100, clock)


def test_unknown_account_and_market(db, clock, make_account, make_market):
    account = make_account()
    market = make_market()
    with pytest.raises(AccountNotFound):
        submit_wager(db, "nobody", market.id, "A", 100, clock)
    with pytest.raises(MarketNotFound):
        submit_wager(db, account.id, "missing", "A", 100, clock)


def test_pending_market_is_closed(db, clock, make_account, make_market):
    account = make_account()
    market = make_market(activate=False)
    with pytest.raises(MarketClosed):
        submit_wager(db, account.id, market.id, "A", 100, clock)


def test_market_closes_at_deadline(db, clock, make_account, make_market):
    account = make_account()
    market = make_market(hours=1)
    clock.advance(hours=1)
    with pytest.raises(MarketClosed):
        submit_wager(db, account.id, market.id, "A", 100, clock)
    assert get_account(db, account.id).balance == 1000


def test_second_wager_on_same_market_rejected(db, clock, make_account, make_market):
    account = make_account()
    market = make_market()
    submit_wager(db, account.id, market.id, "A", 100, clock)

    with pytest.raises(DuplicateWager):
        submit_wager(db, account.id, market.id, "B", 50, clock)

    assert get_account(db, account.id).balance == 900
    assert _wager_count(db) == 1


def test_unique_constraint_race_surfaces_as_duplicate(db, clock, make_account, make_market, monkeypatch):
    account = make_account()
    market = make_market()
    submit_wager(db, account.id, market.id, "A", 100, clock)

    # A concurrent submission that passed the existence check before the first one committed
    monkeypatch.setattr(Repository, "has_wager", lambda self, account_id, market_id: False)

    with pytest.raises(DuplicateWager):
        submit_wager(db, account.id, market.id, "A", 100, clock)

    assert get_account(db, account.id).balance == 900
    assert _wager_count(db) == 1


def test_insufficient_balance(db, clock, make_account, make_market):
    account = make_account(balance=50)
    with pytest.raises(InsufficientBalance) as exc:
        submit_wager(db, account.id, make_market().id, "A", 100, clock)
    assert exc.value.required == 100
    assert exc.value.available == 50
    assert get_account(db, account.id).balance == 50


def test_batch_places_every_wager(db, clock, make_account, make_market):
    account = make_account()
    markets = [make_market() for _ in range(3)]
    requests = [
        WagerRequest(markets[0].id, "A", 100),
        WagerRequest(markets[1].id, "B", 200),
        WagerRequest(markets[2].id, "A", 50),
    ]

    result = submit_batch(db, account.id, requests, clock)

    assert len(result.wagers) == 3
    assert result.total_stake == 350
    assert result.remaining_balance == 650
    assert get_account(db, account.id).balance == 650
    assert db.query(CoinTransaction).filter(CoinTransaction.account_id == account.id).count() == 3


def test_batch_size_limits(db, clock, make_account, make_market):
    account = make_account()
    with pytest.raises(InvalidBatch):
        submit_batch(db, account.id, [], clock)

    market = make_market()
    too_many = [WagerRequest(market.id, "A", 10)] * 13
    with pytest.raises(InvalidBatch):
        submit_batch(db, account.id, too_many, clock)


def test_batch_reports_index_of_bad_item(db, clock, make_account, make_market):
    account = make_account()
    markets = [make_market() for _ in range(3)]
    requests = [
        WagerRequest(markets[0].id, "A", 100),
        WagerRequest(markets[1].id, "A", 100),
        WagerRequest(markets[2].id, "A", 5),
    ]

    with pytest.raises(InvalidStake) as exc:
        submit_batch(db, account.id, requests, clock)

    assert exc.value.index == 2
    assert exc.value.to_dict()["field"] == "stake"
    assert _wager_count(db) == 0
    assert get_account(db, account.id).balance == 1000


def test_batch_rejects_repeated_market(db, clock, make_account, make_market):
    account = make_account()
    market = make_market()
    requests = [WagerRequest(market.id, "A", 100), WagerRequest(market.id, "B", 100)]

    with pytest.raises(DuplicateInBatch) as exc:
        submit_batch(db, account.id, requests, clock)
    assert exc.value.index == 1


def test_batch_rejects_market_already_wagered(db, clock, make_account, make_market):
    account = make_account()
    first, second = make_market(), make_market()
    submit_wager(db, account.id, second.id, "A", 100, clock)

    with pytest.raises(DuplicateWager) as exc:
        submit_batch(db, account.id, [
            WagerRequest(first.id, "A", 100),
            WagerRequest(second.id, "A", 100),
        ], clock)

    assert exc.value.index == 1
    assert get_account(db, account.id).balance == 900


def test_batch_checks_aggregate_balance(db, clock, make_account, make_market):
    account = make_account(balance=250)
    requests = [WagerRequest(make_market().id, "A", 100) for _ in range(3)]

    with pytest.raises(InsufficientBalance) as exc:
        submit_batch(db, account.id, requests, clock)

    assert exc.value.required == 300
    assert _wager_count(db) == 0
    assert get_account(db, account.id).balance == 250


def test_batch_closed_market_carries_index(db, clock, make_account, make_market):
    account = make_account()
    requests = [
        WagerRequest(make_market().id, "A", 100),
        WagerRequest(make_market(activate=False).id, "A", 100),
    ]
    with pytest.raises(MarketClosed) as exc:
        submit_batch(db, account.id, requests, clock)
    assert exc.value.index == 1


def test_reset_balances_tops_up_and_is_idempotent(db, clock, make_account):
    low = make_account(balance=120)
    rich = make_account(balance=4000)

    assert reset_balances(db, 1000, clock) == 1
    assert reset_balances(db, 1000, clock) == 0

    assert get_account(db, low.id).balance == 1000
    assert get_account(db, rich.id).balance == 4000

    tx = db.query(CoinTransaction).filter(CoinTransaction.type == TransactionType.BALANCE_RESET).one()
    assert tx.account_id == low.id
    assert tx.amount == 880


def test_betting_stats(db, clock, make_account, play, make_market):
    account = make_account()
    play(account, correct=True)
    play(account, correct=False)
    submit_wager(db, account.id, make_market().id, "A", 50, clock)

    stats = betting_stats(db, account.id, days=7, clock=clock)

    assert stats.total_bets == 3
    assert stats.total_wagered == 250
    assert stats.total_winnings == 150
    assert stats.net_profit == -50
    assert stats.win_rate == Decimal("50.00")
    assert stats.biggest_win == 150
    assert stats.pending_bets == 1


def test_stats_window_excludes_old_wagers(db, clock, make_account, play):
    account = make_account()
    play(account, correct=True)
    clock.advance(days=10)

    stats = betting_stats(db, account.id, days=7, clock=clock)
    assert stats.total_bets == 0
    assert stats.average_bet == 0


def test_balance_never_negative(db, clock, make_account, make_market):
    account = make_account(balance=100)
    submit_wager(db, account.id, make_market().id, "A", 100, clock)
    with pytest.raises(InsufficientBalance):
        submit_wager(db, account.id, make_market().id, "A", 10, clock)
    assert db.get(Account, account.id).balance == 0


def test_open_account_rejects_taken_id(db, clock, make_account):
    account = make_account()
    with pytest.raises(AccountExists) as exc:
        open_account(db, "imposter", account_id=account.id, clock=clock)
    assert exc.value.to_dict()["code"] == "ACCOUNT_EXISTS"
    assert exc.value.field == "account_id"
    assert get_account(db, account.id).display_name == "player1"


def test_open_account_race_surfaces_as_exists(db, session_factory, clock, monkeypatch):
    other = session_factory()
    try:
        open_account(other, "first", account_id="shared", clock=clock)
    finally:
        other.close()

    # The existence check ran before the other session committed
    monkeypatch.setattr(db, "get", lambda *args, **kwargs: None)

    with pytest.raises(AccountExists):
        open_account(db, "second", account_id="shared", clock=clock)
    assert db.query(Account).count() == 1
