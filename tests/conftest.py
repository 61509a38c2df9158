import itertools
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from engine import FixedClock
from models import Base
from services import create_market, open_account, resolve_market, submit_wager
from services.cache import view_cache


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clear_view_cache():
    view_cache.clear()
    yield
    view_cache.clear()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 1, 1, 12, 0, 0))


@pytest.fixture
def make_account(db, clock):
    counter = itertools.count(1)

    def _make(balance=1000, name=None):
        n = next(counter)
        return open_account(
            db,
            name or f"player{n}",
            account_id=f"acct-{n:03d}",
            balance=balance,
            clock=clock,
        )

    return _make


@pytest.fixture
def make_market(db, clock):
    def _make(hours=24, activate=True, question="Will it rain in Lisbon tomorrow?"):
        return create_market(
            db,
            question=question,
            option_a="Yes",
            option_b="No",
            deadline=clock.now() + timedelta(hours=hours),
            activate=activate,
            clock=clock,
        )

    return _make


@pytest.fixture
def play(db, clock, make_market):
    """Wager on a fresh market and settle it. The clock moves so settlement order is unambiguous."""

    def _play(account, correct, stake=100):
        market = make_market()
        submit_wager(db, account.id, market.id, "A", stake, clock)
        clock.advance(minutes=1)
        resolve_market(db, market.id, "A" if correct else "B", clock)
        clock.advance(minutes=1)
        return market

    return _play
