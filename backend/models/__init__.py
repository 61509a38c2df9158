from .models import (
    Base,
    Option,
    MarketStatus,
    TransactionType,
    Account,
    Market,
    Wager,
    Standing,
    Badge,
    AccountBadge,
    CoinTransaction,
)

__all__ = [
    "Base",
    "Option",
    "MarketStatus",
    "TransactionType",
    "Account",
    "Market",
    "Wager",
    "Standing",
    "Badge",
    "AccountBadge",
    "CoinTransaction",
]
