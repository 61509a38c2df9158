from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from config import DATABASE_URL
from models import Base


def build_engine(url: str = DATABASE_URL, **kwargs):
    """Create an engine. PostgreSQL runs every transaction SERIALIZABLE."""
    if "sqlite" in url:
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    elif url.startswith("postgresql"):
        kwargs.setdefault("isolation_level", "SERIALIZABLE")
    return create_engine(url, **kwargs)


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Create all tables if they don't exist."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Dependency for FastAPI routes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a unit of work as one transaction.

    Commits when the block exits cleanly, rolls back and re-raises otherwise,
    so no core operation ever leaves partial state behind.
    """
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
