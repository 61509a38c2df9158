from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from models import Account, CoinTransaction, TransactionType, Wager


def record_transaction(
    db: Session,
    account: Account,
    tx_type: TransactionType,
    amount: int,
    at: datetime,
    description: str = None,
    reference_id: str = None,
) -> CoinTransaction:
    """Record a balance change for audit trail. Call after the balance moved."""
    tx = CoinTransaction(
        id=str(uuid4()),
        account_id=account.id,
        type=tx_type,
        amount=amount,
        balance_after=account.balance,
        description=description,
        reference_id=reference_id,
        created_at=at,
    )
    db.add(tx)
    return tx


def record_wager_stake(db: Session, account: Account, wager: Wager, at: datetime) -> CoinTransaction:
    return record_transaction(
        db=db,
        account=account,
        tx_type=TransactionType.WAGER_STAKE,
        amount=-wager.stake,
        at=at,
        description=f"Wager: {wager.stake} coins on {wager.choice.value} @ {wager.multiplier_applied}x",
        reference_id=wager.id,
    )


def record_wager_payout(db: Session, account: Account, wager: Wager, at: datetime) -> CoinTransaction:
    return record_transaction(
        db=db,
        account=account,
        tx_type=TransactionType.WAGER_PAYOUT,
        amount=wager.actual_payout,
        at=at,
        description=f"Payout: {wager.actual_payout} coins for a correct call",
        reference_id=wager.id,
    )


def record_wager_refund(db: Session, account: Account, wager: Wager, at: datetime) -> CoinTransaction:
    return record_transaction(
        db=db,
        account=account,
        tx_type=TransactionType.WAGER_REFUND,
        amount=wager.stake,
        at=at,
        description=f"Refund: {wager.stake} coins, market cancelled",
        reference_id=wager.id,
    )


def record_badge_reward(
    db: Session,
    account: Account,
    badge_id: str,
    badge_name: str,
    amount: int,
    at: datetime,
) -> CoinTransaction:
    return record_transaction(
        db=db,
        account=account,
        tx_type=TransactionType.BADGE_REWARD,
        amount=amount,
        at=at,
        description=f"Badge reward: {badge_name}",
        reference_id=badge_id,
    )


def record_balance_reset(db: Session, account: Account, amount: int, at: datetime) -> CoinTransaction:
    return record_transaction(
        db=db,
        account=account,
        tx_type=TransactionType.BALANCE_RESET,
        amount=amount,
        at=at,
        description=f"Balance reset to {account.balance} coins",
    )


def get_account_transactions(
    db: Session,
    account_id: str,
    limit: int = 50,
    tx_type: Optional[TransactionType] = None,
) -> list[CoinTransaction]:
    query = db.query(CoinTransaction).filter(CoinTransaction.account_id == account_id)
    if tx_type is not None:
        query = query.filter(CoinTransaction.type == tx_type)
    return query.order_by(CoinTransaction.created_at.desc()).limit(limit).all()
