from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from database import get_db
from engine import Clock, system_clock
from engine.errors import (
    CoinStreakError,
    InsufficientBalance,
    InvalidStake,
    NotFound,
    StateConflict,
    ValidationError,
)
from models import Account, Market, Wager
from services import (
    WagerRequest,
    open_account,
    get_account,
    submit_wager,
    submit_batch,
    create_market,
    activate_market,
    market_stats,
    resolve_market,
    cancel_market,
    evaluate,
    progress_of,
    account_badges,
    streak_info,
    daily_standings,
    period_standings,
    get_account_transactions,
)

router = APIRouter()


def get_clock() -> Clock:
    """Overridden in tests with a FixedClock."""
    return system_clock


# =============================================================================
# Error mapping
# =============================================================================

STATUS_CODES = (
    (ValidationError, 422),
    (NotFound, 404),
    (StateConflict, 409),
    (InsufficientBalance, 400),
)


def status_for(exc: CoinStreakError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


def coinstreak_error_handler(request: Request, exc: CoinStreakError) -> JSONResponse:
    return JSONResponse(status_code=status_for(exc), content=exc.to_dict())


def _from_request_error(error: dict) -> CoinStreakError:
    """
    Turn the first pydantic error into the core's error shape.

    loc looks like ("body", "wagers", 2, "stake"): the source comes first,
    the integer is the batch index and the last string is the field.
    """
    loc = list(error.get("loc", ()))[1:]
    index = next((part for part in loc if isinstance(part, int)), None)
    names = [part for part in loc if isinstance(part, str)]
    field = names[-1] if names else None

    error_type = InvalidStake if field == "stake" else ValidationError
    message = error.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    return error_type(message, field=field, index=index)


def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    error = _from_request_error(errors[0]) if errors else ValidationError("Invalid request")
    return JSONResponse(status_code=422, content=error.to_dict())


# =============================================================================
# Request Models
# =============================================================================

class AccountCreate(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=50)
    account_id: Optional[str] = None


class WagerCreate(BaseModel):
    account_id: str
    market_id: str
    option: str
    stake: int


class BatchItem(BaseModel):
    market_id: str
    option: str
    stake: int


class BatchCreate(BaseModel):
    account_id: str
    wagers: list[BatchItem]


class MarketCreate(BaseModel):
    question: str = Field(..., min_length=10, max_length=500)
    description: Optional[str] = Field(None, max_length=2000)
    option_a: str = Field(..., min_length=1, max_length=255)
    option_b: str = Field(..., min_length=1, max_length=255)
    deadline: datetime
    activate: bool = False


class ResolveRequest(BaseModel):
    correct_option: str


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


# =============================================================================
# Serializers
# =============================================================================

def _account(account: Account) -> dict:
    return {
        "id": account.id,
        "display_name": account.display_name,
        "balance": account.balance,
        "current_streak": account.current_streak,
        "best_streak": account.best_streak,
        "total_predictions": account.total_predictions,
        "correct_predictions": account.correct_predictions,
    }


def _wager(wager: Wager) -> dict:
    return {
        "id": wager.id,
        "account_id": wager.account_id,
        "market_id": wager.market_id,
        "option": wager.choice.value,
        "stake": wager.stake,
        "potential_payout": wager.potential_payout,
        "multiplier_applied": str(wager.multiplier_applied),
        "created_at": wager.created_at,
    }


def _market(market: Market) -> dict:
    return {
        "id": market.id,
        "question": market.question,
        "description": market.description,
        "option_a": market.option_a,
        "option_b": market.option_b,
        "deadline": market.deadline,
        "status": market.status.value,
        "correct_option": market.correct_option.value if market.correct_option else None,
    }


# =============================================================================
# Account Endpoints
# =============================================================================

@router.post("/accounts", status_code=201)
def create_account(data: AccountCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    account = open_account(db, data.display_name, account_id=data.account_id, clock=clock)
    return _account(account)


@router.get("/accounts/{account_id}")
def read_account(account_id: str, db: Session = Depends(get_db)):
    return _account(get_account(db, account_id))


@router.get("/accounts/{account_id}/streak")
def read_streak(account_id: str, db: Session = Depends(get_db)):
    info = streak_info(db, account_id)
    return {
        "account_id": info.account_id,
        "current_streak": info.current_streak,
        "best_streak": info.best_streak,
        "multiplier": str(info.multiplier),
        "next_multiplier": str(info.next_multiplier),
        "status": info.status,
    }


@router.get("/accounts/{account_id}/transactions")
def list_transactions(account_id: str, limit: int = 50, db: Session = Depends(get_db)):
    get_account(db, account_id)
    return [
        {
            "id": tx.id,
            "type": tx.type.value,
            "amount": tx.amount,
            "balance_after": tx.balance_after,
            "description": tx.description,
            "reference_id": tx.reference_id,
            "created_at": tx.created_at,
        }
        for tx in get_account_transactions(db, account_id, limit=max(1, min(limit, 200)))
    ]


# =============================================================================
# Wager Endpoints
# =============================================================================

@router.post("/wagers", status_code=201)
def place_wager(data: WagerCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    wager = submit_wager(db, data.account_id, data.market_id, data.option, data.stake, clock)
    return _wager(wager)


@router.post("/wagers/batch", status_code=201)
def place_batch(data: BatchCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    requests = [WagerRequest(w.market_id, w.option, w.stake) for w in data.wagers]
    result = submit_batch(db, data.account_id, requests, clock)
    return {
        "wagers": [_wager(w) for w in result.wagers],
        "total_stake": result.total_stake,
        "remaining_balance": result.remaining_balance,
    }


# =============================================================================
# Market Endpoints
# =============================================================================

@router.post("/markets", status_code=201)
def create_market_endpoint(data: MarketCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    market = create_market(
        db,
        question=data.question,
        option_a=data.option_a,
        option_b=data.option_b,
        deadline=data.deadline,
        description=data.description,
        activate=data.activate,
        clock=clock,
    )
    return _market(market)


@router.post("/markets/{market_id}/activate")
def activate_market_endpoint(market_id: str, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return _market(activate_market(db, market_id, clock))


@router.post("/markets/{market_id}/resolve")
def resolve_market_endpoint(
    market_id: str,
    data: ResolveRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    summary = resolve_market(db, market_id, data.correct_option, clock)
    return {
        "market_id": summary.market_id,
        "correct_option": summary.correct_option,
        "wagers_settled": summary.wagers_settled,
        "winners": summary.winners,
        "total_payout": summary.total_payout,
    }


@router.post("/markets/{market_id}/cancel")
def cancel_market_endpoint(
    market_id: str,
    data: CancelRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    summary = cancel_market(db, market_id, clock, reason=data.reason)
    return {
        "market_id": summary.market_id,
        "wagers_refunded": summary.wagers_refunded,
        "total_refunded": summary.total_refunded,
    }


@router.get("/markets/{market_id}/stats")
def market_stats_endpoint(market_id: str, db: Session = Depends(get_db)):
    stats = market_stats(db, market_id)
    return {
        "market_id": stats.market_id,
        "total_wagers": stats.total_wagers,
        "total_staked": stats.total_staked,
        "option_a_count": stats.option_a_count,
        "option_b_count": stats.option_b_count,
        "option_a_percentage": str(stats.option_a_percentage),
        "option_b_percentage": str(stats.option_b_percentage),
        "average_stake": stats.average_stake,
        "difficulty": stats.difficulty,
    }


# =============================================================================
# Leaderboard Endpoints
# =============================================================================

@router.get("/leaderboard/{standing_date}")
def leaderboard(standing_date: date, limit: int = 50, db: Session = Depends(get_db)):
    return [
        {
            "rank": row.rank,
            "account_id": row.account_id,
            "display_name": row.display_name,
            "predictions_made": row.predictions_made,
            "correct_predictions": row.correct_predictions,
            "total_payout": row.total_payout,
            "accuracy": str(row.accuracy),
        }
        for row in daily_standings(db, standing_date, limit)
    ]


@router.get("/leaderboard/period/{period}")
def period_leaderboard(
    period: str,
    anchor: Optional[date] = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    board = period_standings(db, period, anchor or clock.today(), limit)
    return {
        "period": board.period,
        "start": board.start,
        "end": board.end,
        "rankings": [
            {
                "rank": row.rank,
                "account_id": row.account_id,
                "display_name": row.display_name,
                "predictions_made": row.predictions_made,
                "correct_predictions": row.correct_predictions,
                "total_payout": row.total_payout,
                "accuracy": str(row.accuracy),
                "days_active": row.days_active,
            }
            for row in board.rows
        ],
    }


# =============================================================================
# Badge Endpoints
# =============================================================================

@router.post("/accounts/{account_id}/badges/evaluate")
def evaluate_badges(account_id: str, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    earned = evaluate(db, account_id, clock)
    return {
        "awarded": [
            {"id": b.id, "name": b.name, "reward_coins": b.reward_coins}
            for b in earned
        ],
    }


@router.get("/accounts/{account_id}/badges")
def list_badges(account_id: str, db: Session = Depends(get_db)):
    return [
        {
            "id": b.badge_id,
            "name": b.name,
            "description": b.description,
            "category": b.category,
            "rarity": b.rarity,
            "reward_coins": b.reward_coins,
            "awarded_at": b.awarded_at,
        }
        for b in account_badges(db, account_id)
    ]


@router.get("/accounts/{account_id}/badges/{badge_id}/progress")
def badge_progress(account_id: str, badge_id: str, db: Session = Depends(get_db)):
    result = progress_of(db, account_id, badge_id)
    return {
        "badge_id": badge_id,
        "current": str(result.current),
        "required": result.required,
        "percentage": str(result.percentage),
        "minimum_sample": result.minimum_sample,
        "current_sample": result.current_sample,
    }
