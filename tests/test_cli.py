"""Scheduler commands."""

import pytest
from typer.testing import CliRunner

import cli
from models import Badge
from services import submit_wager


@pytest.fixture
def runner(session_factory, monkeypatch):
    monkeypatch.setattr(cli, "SessionLocal", session_factory)
    monkeypatch.setattr(cli, "init_db", lambda: None)
    return CliRunner()


def test_seed_badges_command(runner, db):
    result = runner.invoke(cli.app, ["seed-badges"])
    assert result.exit_code == 0
    assert "Created 17 badges." in result.output
    assert db.query(Badge).count() == 17

    again = runner.invoke(cli.app, ["seed-badges"])
    assert "Created 0 badges." in again.output


def test_compute_standing_command(runner, make_account, play):
    play(make_account(), correct=True)

    result = runner.invoke(cli.app, ["compute-standing", "2025-01-01"])
    assert result.exit_code == 0
    assert "Ranked 1 accounts for 2025-01-01." in result.output


def test_compute_standing_rejects_bad_date(runner):
    result = runner.invoke(cli.app, ["compute-standing", "01/01/2025"])
    assert result.exit_code != 0


def test_reset_balances_command(runner, db, make_account):
    account = make_account(balance=10)
    result = runner.invoke(cli.app, ["reset-balances", "--amount", "500"])
    assert result.exit_code == 0
    assert "Reset 1 balances to 500." in result.output
    db.refresh(account)
    assert account.balance == 500


def test_due_markets_lists_past_deadline_markets(runner, make_market):
    # The jobs run on the wall clock, so a market dated in 2025 is already due
    market = make_market(hours=1)

    result = runner.invoke(cli.app, ["due-markets"])
    assert result.exit_code == 0
    assert market.id in result.output
    assert "1 markets awaiting resolution." in result.output


def test_resolve_market_command(runner, db, clock, make_account, make_market):
    account = make_account()
    market = make_market()
    submit_wager(db, account.id, market.id, "A", 100, clock)

    result = runner.invoke(cli.app, ["resolve-market", market.id, "a"])
    assert result.exit_code == 0
    assert "1 of 1 wagers won, 150 coins paid." in result.output

    db.refresh(account)
    assert account.balance == 1050
    assert account.current_streak == 1

    again = runner.invoke(cli.app, ["resolve-market", market.id, "A"])
    assert again.exit_code == 1

    after = runner.invoke(cli.app, ["due-markets"])
    assert "0 markets awaiting resolution." in after.output
