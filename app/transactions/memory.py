# app/transactions/memory.py
from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from threading import Lock
from typing import Optional

from app.transactions.model import (
    Finalization,
    FinalizeResult,
    NewTransaction,
    Transaction,
    TransactionAggregate,
    TransactionStatus,
    User,
    to_money,
)
from app.transactions.store import check_correlation_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryTransactionStore:
    """
    Test/dev store.

    One lock guards everything, so each method is a single unit of work the
    same way a PostgreSQL transaction is.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._users: dict[int, User] = {}
        self._txs: dict[str, Transaction] = {}
        self._user_ids = itertools.count(1)
        self._tx_ids = itertools.count(1)

    # ---------------------------
    # Users
    # ---------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def list_users(self) -> list[User]:
        with self._lock:
            return sorted(self._users.values(), key=lambda u: u.id)

    def create_user(self, *, email: str, username: str, msisdn: Optional[str], balance: Decimal = Decimal("0")) -> User:
        with self._lock:
            for u in self._users.values():
                if u.email == email:
                    raise ValueError(f"duplicate email: {email}")
            now = _utcnow()
            user = User(
                id=next(self._user_ids),
                email=email,
                username=username,
                msisdn=msisdn,
                balance=to_money(balance),
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            return user

    # ---------------------------
    # Transactions: reads
    # ---------------------------

    def insert_transaction(self, new: NewTransaction) -> Transaction:
        with self._lock:
            if new.transaction_id in self._txs:
                raise ValueError(f"duplicate transaction_id: {new.transaction_id}")
            if new.user_id not in self._users:
                raise ValueError(f"unknown user_id: {new.user_id}")
            now = _utcnow()
            tx = Transaction(
                id=next(self._tx_ids),
                transaction_id=new.transaction_id,
                type=new.type,
                status=TransactionStatus.PENDING,
                amount=to_money(new.amount),
                currency=new.currency,
                reference=new.reference,
                user_id=new.user_id,
                msisdn=new.msisdn,
                description=new.description,
                created_at=now,
                updated_at=now,
            )
            self._txs[tx.transaction_id] = tx
            return tx

    def get_transaction(self, id: int) -> Optional[Transaction]:
        with self._lock:
            for tx in self._txs.values():
                if tx.id == id:
                    return tx
            return None

    def get_by_transaction_id(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._txs.get(transaction_id)

    def load_aggregate(self, transaction_id: str) -> Optional[TransactionAggregate]:
        with self._lock:
            tx = self._txs.get(transaction_id)
            if tx is None:
                return None
            return TransactionAggregate(transaction=tx, user=self._users[tx.user_id])

    def list_transactions(self, user_id: Optional[int] = None) -> list[Transaction]:
        with self._lock:
            rows = [t for t in self._txs.values() if user_id is None or t.user_id == user_id]
        return sorted(rows, key=lambda t: t.id, reverse=True)

    def find_by_correlation(self, column: str, value: str) -> Optional[Transaction]:
        col = check_correlation_column(column)
        with self._lock:
            matches = [t for t in self._txs.values() if getattr(t, col) == value]
        if not matches:
            return None
        return max(matches, key=lambda t: t.updated_at)

    # ---------------------------
    # Transactions: writes
    # ---------------------------

    def transition(
        self,
        transaction_id: str,
        *,
        new_status: TransactionStatus,
        allowed_from: tuple[TransactionStatus, ...],
        msisdn: Optional[str] = None,
    ) -> bool:
        with self._lock:
            return self._update_status_locked(
                transaction_id,
                new_status=new_status,
                allowed_from=allowed_from,
                msisdn=msisdn,
            ) is not None

    def record_correlation(
        self,
        transaction_id: str,
        *,
        msisdn: Optional[str] = None,
        airtel_money_id: Optional[str] = None,
        airtel_reference_id: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._touch_locked(transaction_id, msisdn, airtel_money_id, airtel_reference_id)

    def finalize(self, f: Finalization) -> FinalizeResult:
        with self._lock:
            tx = self._update_status_locked(
                f.transaction_id,
                new_status=f.new_status,
                allowed_from=f.allowed_from,
                msisdn=f.msisdn,
                airtel_money_id=f.airtel_money_id,
                airtel_reference_id=f.airtel_reference_id,
            )
            if tx is None:
                self._touch_locked(f.transaction_id, f.msisdn, f.airtel_money_id, f.airtel_reference_id)
                return FinalizeResult(applied=False)

            if f.new_status != TransactionStatus.COMPLETED or not f.balance_delta:
                return FinalizeResult(applied=True)

            user = self._users[tx.user_id]
            new_balance = user.balance + f.balance_delta
            if new_balance < 0:
                return FinalizeResult(applied=True, balance_applied=False)

            self._users[user.id] = replace(user, balance=new_balance, updated_at=_utcnow())
            return FinalizeResult(applied=True, balance_applied=True, balance=new_balance)

    # ---------------------------
    # Internals (caller holds the lock)
    # ---------------------------

    def _update_status_locked(
        self,
        transaction_id: str,
        *,
        new_status: TransactionStatus,
        allowed_from: tuple[TransactionStatus, ...],
        msisdn: Optional[str] = None,
        airtel_money_id: Optional[str] = None,
        airtel_reference_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        tx = self._txs.get(transaction_id)
        if tx is None or tx.status not in allowed_from:
            return None
        updated = replace(
            tx,
            status=new_status,
            msisdn=msisdn or tx.msisdn,
            airtel_money_id=airtel_money_id or tx.airtel_money_id,
            airtel_reference_id=airtel_reference_id or tx.airtel_reference_id,
            updated_at=_utcnow(),
        )
        self._txs[transaction_id] = updated
        return updated

    def _touch_locked(
        self,
        transaction_id: str,
        msisdn: Optional[str],
        airtel_money_id: Optional[str],
        airtel_reference_id: Optional[str],
    ) -> None:
        tx = self._txs.get(transaction_id)
        if tx is None:
            return
        self._txs[transaction_id] = replace(
            tx,
            msisdn=msisdn or tx.msisdn,
            airtel_money_id=airtel_money_id or tx.airtel_money_id,
            airtel_reference_id=airtel_reference_id or tx.airtel_reference_id,
            updated_at=_utcnow(),
        )
