"""Scheduler entry points. Each command is safe to run more than once."""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, Optional

import typer
from sqlalchemy.orm import Session

from config import DAILY_COINS, configure_logging
from database import SessionLocal, init_db
from engine import system_clock
from engine.errors import CoinStreakError
from services import (
    activate_pending_markets,
    compute_standing,
    markets_needing_resolution,
    reset_balances,
    resolve_market,
    seed_badges,
    validate_and_fix_streaks,
)

app = typer.Typer(
    name="coinstreak",
    help="CoinStreak rollover jobs.",
    no_args_is_help=True,
)


@contextmanager
def session_scope() -> Iterator[Session]:
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override COINSTREAK_LOG_LEVEL"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="console or json"),
) -> None:
    """Configure logging before any job runs."""
    configure_logging(log_level, log_format)


@app.command("activate-markets")
def activate_markets() -> None:
    """Open pending markets whose deadline is more than 30 minutes away."""
    with session_scope() as db:
        count = activate_pending_markets(db, system_clock)
    typer.echo(f"Activated {count} markets.")


@app.command("due-markets")
def due_markets() -> None:
    """List active markets whose deadline has passed and still need an outcome."""
    with session_scope() as db:
        markets = markets_needing_resolution(db, system_clock)
        for market in markets:
            typer.echo(f"{market.id}\t{market.deadline.isoformat()}\t{market.question}")
    typer.echo(f"{len(markets)} markets awaiting resolution.")


@app.command("resolve-market")
def resolve_market_cmd(
    market_id: str = typer.Argument(..., help="Market to settle"),
    option: str = typer.Argument(..., help="Winning option, A or B"),
) -> None:
    """Settle a market: pay the winners and update every streak."""
    with session_scope() as db:
        try:
            summary = resolve_market(db, market_id, option.upper(), system_clock)
        except CoinStreakError as exc:
            typer.echo(f"{exc.code}: {exc.message}", err=True)
            raise typer.Exit(code=1)
    typer.echo(
        f"Resolved {summary.market_id}: {summary.winners} of {summary.wagers_settled} "
        f"wagers won, {summary.total_payout} coins paid."
    )


@app.command("compute-standing")
def compute_standing_cmd(
    standing_date: Optional[str] = typer.Argument(None, help="YYYY-MM-DD, defaults to yesterday"),
) -> None:
    """Rank every account with wagers settled on the given day."""
    if standing_date:
        try:
            day = datetime.strptime(standing_date, "%Y-%m-%d").date()
        except ValueError:
            raise typer.BadParameter("Date must be YYYY-MM-DD")
    else:
        day = system_clock.today() - timedelta(days=1)

    with session_scope() as db:
        count = compute_standing(db, day)
    typer.echo(f"Ranked {count} accounts for {day.isoformat()}.")


@app.command("reset-balances")
def reset_balances_cmd(
    amount: int = typer.Option(DAILY_COINS, "--amount", "-a", help="Balance to top accounts up to"),
) -> None:
    """Top every account below the amount back up to it."""
    with session_scope() as db:
        count = reset_balances(db, amount, system_clock)
    typer.echo(f"Reset {count} balances to {amount}.")


@app.command("fix-streaks")
def fix_streaks() -> None:
    """Recount streaks from settled wagers and repair any that drifted."""
    with session_scope() as db:
        drifts = validate_and_fix_streaks(db)
    for drift in drifts:
        typer.echo(f"{drift.account_id}: {drift.stored} -> {drift.actual}")
    typer.echo(f"Fixed {len(drifts)} streaks.")


@app.command("seed-badges")
def seed_badges_cmd() -> None:
    """Sync the built-in badge catalog into the database."""
    with session_scope() as db:
        created = seed_badges(db)
    typer.echo(f"Created {created} badges.")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
