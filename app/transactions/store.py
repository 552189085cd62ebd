# app/transactions/store.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from app.transactions.model import (
    Finalization,
    FinalizeResult,
    NewTransaction,
    Transaction,
    TransactionAggregate,
    TransactionStatus,
    User,
)

# columns a callback may be correlated on
CORRELATION_COLUMNS = ("airtel_money_id", "airtel_reference_id", "transaction_id", "reference")


class TransactionStore(Protocol):
    """
    Persistence contract for the engine.

    Every status write is conditional on the current status, and `finalize`
    applies the balance delta in the same unit of work as the status change.
    """

    # users
    def get_user(self, user_id: int) -> Optional[User]: ...
    def list_users(self) -> list[User]: ...
    def create_user(self, *, email: str, username: str, msisdn: Optional[str], balance: Decimal = Decimal("0")) -> User: ...

    # transactions
    def insert_transaction(self, new: NewTransaction) -> Transaction: ...
    def get_transaction(self, id: int) -> Optional[Transaction]: ...
    def get_by_transaction_id(self, transaction_id: str) -> Optional[Transaction]: ...
    def load_aggregate(self, transaction_id: str) -> Optional[TransactionAggregate]: ...
    def list_transactions(self, user_id: Optional[int] = None) -> list[Transaction]: ...
    def find_by_correlation(self, column: str, value: str) -> Optional[Transaction]: ...

    # writes
    def transition(
        self,
        transaction_id: str,
        *,
        new_status: TransactionStatus,
        allowed_from: tuple[TransactionStatus, ...],
        msisdn: Optional[str] = None,
    ) -> bool: ...

    def record_correlation(
        self,
        transaction_id: str,
        *,
        msisdn: Optional[str] = None,
        airtel_money_id: Optional[str] = None,
        airtel_reference_id: Optional[str] = None,
    ) -> None: ...

    def finalize(self, f: Finalization) -> FinalizeResult: ...


def check_correlation_column(column: str) -> str:
    if column not in CORRELATION_COLUMNS:
        raise ValueError(f"Unsupported correlation column: {column}")
    return column
