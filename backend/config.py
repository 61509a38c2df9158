import logging
import os

import structlog


# Database URL - uses SQLite for local dev, PostgreSQL for production
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./coinstreak.db")

# Handle postgres:// vs postgresql:// (Render uses postgres://)
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

LOG_LEVEL = os.getenv("COINSTREAK_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("COINSTREAK_LOG_FORMAT", "console")

# Opening balance for new accounts and the amount restored by the periodic reset
DAILY_COINS = int(os.getenv("COINSTREAK_DAILY_COINS", "1000"))

# Upper bound on wagers per batch submission, applied on every entry point
MAX_BATCH_SIZE = int(os.getenv("COINSTREAK_MAX_BATCH_SIZE", "12"))

# Seconds a derived view stays cached when nothing invalidates it first
CACHE_TTL = int(os.getenv("COINSTREAK_CACHE_TTL", "300"))


def configure_logging(level: str = None, fmt: str = None) -> None:
    """Configure structlog. Call once at application entry."""
    level = (level or LOG_LEVEL).upper()
    fmt = fmt or LOG_FORMAT

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
