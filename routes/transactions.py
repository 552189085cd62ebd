# routes/transactions.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.transactions.engine import TransactionEngine
from app.transactions.model import TransactionType
from deps.engine import get_engine
from schemas import DepositRequest, TransactionOut, WithdrawalRequest

logger = logging.getLogger("minibet.transactions")
router = APIRouter(prefix="/transactions", tags=["transactions"])

DEFAULT_DEPOSIT_DESCRIPTION = "Deposit to betting account"
DEFAULT_WITHDRAWAL_DESCRIPTION = "Withdrawal from betting account"


@router.post("/deposit", response_model=TransactionOut)
def deposit(payload: DepositRequest, engine: TransactionEngine = Depends(get_engine)):
    tx = engine.create_transaction(
        payload.user_id,
        payload.amount,
        TransactionType.DEPOSIT,
        msisdn=payload.msisdn,
        description=payload.description or DEFAULT_DEPOSIT_DESCRIPTION,
    )
    return TransactionOut.from_domain(engine.process_deposit(tx.transaction_id))


@router.post("/withdrawal", response_model=TransactionOut)
def withdrawal(payload: WithdrawalRequest, engine: TransactionEngine = Depends(get_engine)):
    tx = engine.create_transaction(
        payload.user_id,
        payload.amount,
        TransactionType.WITHDRAWAL,
        msisdn=payload.msisdn,
        description=payload.description or DEFAULT_WITHDRAWAL_DESCRIPTION,
    )
    return TransactionOut.from_domain(engine.process_withdrawal(tx.transaction_id))


@router.post("/deposit/{transaction_id}/process", response_model=TransactionOut)
def process_deposit(transaction_id: str, engine: TransactionEngine = Depends(get_engine)):
    return TransactionOut.from_domain(engine.process_deposit(transaction_id))


@router.post("/withdrawal/{transaction_id}/process", response_model=TransactionOut)
def process_withdrawal(transaction_id: str, engine: TransactionEngine = Depends(get_engine)):
    return TransactionOut.from_domain(engine.process_withdrawal(transaction_id))


@router.get("", response_model=List[TransactionOut])
def list_transactions(
    user_id: Optional[int] = Query(default=None, alias="userId", gt=0),
    engine: TransactionEngine = Depends(get_engine),
):
    return [TransactionOut.from_domain(t) for t in engine.list_transactions(user_id)]


@router.get("/{id}", response_model=TransactionOut)
def get_transaction(id: int, engine: TransactionEngine = Depends(get_engine)):
    return TransactionOut.from_domain(engine.get_transaction(id))
