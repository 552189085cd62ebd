# schemas.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.transactions.model import Transaction, TransactionStatus, TransactionType, User


class CamelModel(BaseModel):
    """Wire format is camelCase; python side stays snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------- TRANSACTIONS --------
class DepositRequest(CamelModel):
    user_id: int = Field(gt=0)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    msisdn: Optional[str] = Field(default=None, max_length=32)
    description: Optional[str] = Field(default=None, max_length=255)


class WithdrawalRequest(DepositRequest):
    pass


class TransactionOut(CamelModel):
    id: int
    transaction_id: str
    type: TransactionType
    status: TransactionStatus
    amount: Decimal
    currency: str
    reference: str
    user_id: int
    msisdn: Optional[str] = None
    airtel_money_id: Optional[str] = None
    airtel_reference_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionOut":
        return cls(
            id=tx.id,
            transaction_id=tx.transaction_id,
            type=tx.type,
            status=tx.status,
            amount=tx.amount,
            currency=tx.currency,
            reference=tx.reference,
            user_id=tx.user_id,
            msisdn=tx.msisdn,
            airtel_money_id=tx.airtel_money_id,
            airtel_reference_id=tx.airtel_reference_id,
            description=tx.description,
            created_at=tx.created_at,
            updated_at=tx.updated_at,
        )


# -------- USERS --------
class CreateUserRequest(CamelModel):
    email: str = Field(min_length=3, max_length=255)
    username: str = Field(min_length=1, max_length=100)
    msisdn: Optional[str] = Field(default=None, max_length=32)
    balance: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)


class UserOut(CamelModel):
    id: int
    email: str
    username: str
    msisdn: Optional[str] = None
    balance: Decimal
    is_active: bool = True
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            msisdn=user.msisdn,
            balance=user.balance,
            is_active=user.is_active,
            created_at=user.created_at,
        )


class BalanceResponse(CamelModel):
    user_id: int
    balance: Decimal
    currency: str


# -------- CALLBACKS --------
class CallbackAck(BaseModel):
    message: str = "Callback received successfully"
