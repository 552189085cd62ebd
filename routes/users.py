# routes/users.py
from typing import List

from fastapi import APIRouter, Depends

from app.transactions.engine import TransactionEngine
from deps.engine import get_engine
from schemas import BalanceResponse, CreateUserRequest, UserOut

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserOut])
def list_users(engine: TransactionEngine = Depends(get_engine)):
    return [UserOut.from_domain(u) for u in engine.list_users()]


@router.post("", response_model=UserOut, status_code=201)
def create_user(payload: CreateUserRequest, engine: TransactionEngine = Depends(get_engine)):
    user = engine.create_user(
        email=payload.email.strip().lower(),
        username=payload.username.strip(),
        msisdn=payload.msisdn,
        balance=payload.balance,
    )
    return UserOut.from_domain(user)


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, engine: TransactionEngine = Depends(get_engine)):
    return UserOut.from_domain(engine.get_user(user_id))


@router.get("/{user_id}/balance", response_model=BalanceResponse)
def get_balance(user_id: int, engine: TransactionEngine = Depends(get_engine)):
    return BalanceResponse(user_id=user_id, balance=engine.get_balance(user_id), currency=engine.currency)
