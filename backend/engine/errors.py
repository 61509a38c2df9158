from typing import Optional


class CoinStreakError(Exception):
    """
    Base of every recoverable failure raised by the core.

    Each subclass carries a stable code so callers can render field-specific
    feedback. index is set when the failure belongs to one item of a batch.
    """
    code = "COINSTREAK_ERROR"
    field: Optional[str] = None

    def __init__(self, message: str, field: Optional[str] = None, index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if field is not None:
            self.field = field
        self.index = index

    def at(self, index: int) -> "CoinStreakError":
        self.index = index
        return self

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "index": self.index,
        }


# Malformed or out-of-range input, rejected before anything is written
class ValidationError(CoinStreakError):
    code = "VALIDATION_ERROR"


class InvalidStake(ValidationError):
    code = "INVALID_STAKE"
    field = "stake"


class InvalidOption(ValidationError):
    code = "INVALID_OPTION"
    field = "option"


class InvalidBatch(ValidationError):
    code = "INVALID_BATCH"
    field = "wagers"


class DuplicateInBatch(ValidationError):
    code = "DUPLICATE_IN_BATCH"
    field = "market_id"


# Rule violations detected inside the transaction
class StateConflict(CoinStreakError):
    code = "STATE_CONFLICT"


class MarketClosed(StateConflict):
    code = "MARKET_CLOSED"
    field = "market_id"


class DuplicateWager(StateConflict):
    code = "DUPLICATE_WAGER"
    field = "market_id"


class AlreadyResolved(StateConflict):
    code = "ALREADY_RESOLVED"


class AlreadyCancelled(StateConflict):
    code = "ALREADY_CANCELLED"


class AccountExists(StateConflict):
    code = "ACCOUNT_EXISTS"
    field = "account_id"


class InsufficientBalance(CoinStreakError):
    code = "INSUFFICIENT_BALANCE"
    field = "stake"

    def __init__(self, required: int, available: int, index: Optional[int] = None):
        super().__init__(
            f"Insufficient balance. Need {required}, have {available}",
            index=index,
        )
        self.required = required
        self.available = available


class NotFound(CoinStreakError):
    code = "NOT_FOUND"


class AccountNotFound(NotFound):
    code = "ACCOUNT_NOT_FOUND"
    field = "account_id"


class MarketNotFound(NotFound):
    code = "MARKET_NOT_FOUND"
    field = "market_id"


class BadgeNotFound(NotFound):
    code = "BADGE_NOT_FOUND"
    field = "badge_id"
