from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Fixed-point, 2 fractional digits, like the DECIMAL(12,2) columns."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    BET = "BET"
    WINNING = "WINNING"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# sign applied to the owner's balance once the transaction completes
BALANCE_SIGN = {
    TransactionType.DEPOSIT: 1,
    TransactionType.WINNING: 1,
    TransactionType.WITHDRAWAL: -1,
    TransactionType.BET: -1,
}


@dataclass(frozen=True)
class User:
    id: int
    email: str
    username: str
    msisdn: Optional[str]
    balance: Decimal
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Transaction:
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

    @property
    def balance_delta(self) -> Decimal:
        return to_money(abs(self.amount)) * BALANCE_SIGN[self.type]


@dataclass(frozen=True)
class TransactionAggregate:
    """Transaction plus its owning user, loaded together."""

    transaction: Transaction
    user: User


@dataclass(frozen=True)
class NewTransaction:
    transaction_id: str
    type: TransactionType
    amount: Decimal
    currency: str
    reference: str
    user_id: int
    msisdn: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class Finalization:
    """
    Terminal (or callback) write for one transaction.

    `balance_delta` is applied only when the conditional status update changes a row.
    """

    transaction_id: str
    new_status: TransactionStatus
    allowed_from: tuple[TransactionStatus, ...]
    balance_delta: Decimal = Decimal("0")
    msisdn: Optional[str] = None
    airtel_money_id: Optional[str] = None
    airtel_reference_id: Optional[str] = None


@dataclass(frozen=True)
class FinalizeResult:
    applied: bool
    balance_applied: bool = False
    balance: Optional[Decimal] = None
