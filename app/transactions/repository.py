# app/transactions/repository.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from db import dict_cursor, get_conn
from app.transactions.model import (
    Finalization,
    FinalizeResult,
    NewTransaction,
    Transaction,
    TransactionAggregate,
    TransactionStatus,
    TransactionType,
    User,
)
from app.transactions.store import check_correlation_column


_TX_COLUMNS = """
  t.id,
  t.transaction_id,
  t.type,
  t.status,
  t.amount,
  t.currency,
  t.reference,
  t.user_id,
  t.msisdn,
  t.airtel_money_id,
  t.airtel_reference_id,
  t.description,
  t.created_at,
  t.updated_at
"""

_USER_COLUMNS = """
  u.id,
  u.email,
  u.username,
  u.msisdn,
  u.balance,
  u.is_active,
  u.created_at,
  u.updated_at
"""


def _tx_from_row(row: dict[str, Any]) -> Transaction:
    return Transaction(
        id=row["id"],
        transaction_id=row["transaction_id"],
        type=TransactionType(row["type"]),
        status=TransactionStatus(row["status"]),
        amount=Decimal(row["amount"]),
        currency=row["currency"],
        reference=row["reference"],
        user_id=row["user_id"],
        msisdn=row.get("msisdn"),
        airtel_money_id=row.get("airtel_money_id"),
        airtel_reference_id=row.get("airtel_reference_id"),
        description=row.get("description"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _user_from_row(row: dict[str, Any], prefix: str = "") -> User:
    return User(
        id=row[f"{prefix}id"],
        email=row[f"{prefix}email"],
        username=row[f"{prefix}username"],
        msisdn=row.get(f"{prefix}msisdn"),
        balance=Decimal(row[f"{prefix}balance"]),
        is_active=bool(row.get(f"{prefix}is_active", True)),
        created_at=row.get(f"{prefix}created_at"),
        updated_at=row.get(f"{prefix}updated_at"),
    )


# ==========================================================
# Users
# ==========================================================

def get_user(conn, user_id: int) -> Optional[User]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_USER_COLUMNS} FROM users u WHERE u.id = %s", (user_id,))
        row = cur.fetchone()
        return _user_from_row(row) if row else None


def list_users(conn) -> list[User]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_USER_COLUMNS} FROM users u ORDER BY u.id")
        return [_user_from_row(r) for r in cur.fetchall()]


def insert_user(conn, *, email: str, username: str, msisdn: Optional[str], balance: Decimal) -> User:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO users AS u (email, username, msisdn, balance)
            VALUES (%s, %s, %s, %s)
            RETURNING {_USER_COLUMNS}
            """,
            (email, username, msisdn, balance),
        )
        return _user_from_row(cur.fetchone())


def apply_balance_delta(conn, *, user_id: int, delta: Decimal) -> Optional[Decimal]:
    """
    Atomic in-place delta. Returns the new balance, or None when a debit would overdraw.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE users
            SET balance = balance + %s,
                updated_at = now()
            WHERE id = %s
              AND balance + %s >= 0
            RETURNING balance
            """,
            (delta, user_id, delta),
        )
        row = cur.fetchone()
        return Decimal(row[0]) if row else None


# ==========================================================
# Transactions: reads
# ==========================================================

def insert_transaction(conn, new: NewTransaction) -> Transaction:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO transactions AS t (
              transaction_id, type, status, amount, currency, reference,
              user_id, msisdn, description
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_TX_COLUMNS}
            """,
            (
                new.transaction_id,
                new.type.value,
                TransactionStatus.PENDING.value,
                new.amount,
                new.currency,
                new.reference,
                new.user_id,
                new.msisdn,
                new.description,
            ),
        )
        return _tx_from_row(cur.fetchone())


def get_transaction(conn, id: int) -> Optional[Transaction]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_TX_COLUMNS} FROM transactions t WHERE t.id = %s", (id,))
        row = cur.fetchone()
        return _tx_from_row(row) if row else None


def get_by_transaction_id(conn, transaction_id: str) -> Optional[Transaction]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_TX_COLUMNS} FROM transactions t WHERE t.transaction_id = %s", (transaction_id,))
        row = cur.fetchone()
        return _tx_from_row(row) if row else None


def load_aggregate(conn, transaction_id: str) -> Optional[TransactionAggregate]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT
              {_TX_COLUMNS},
              u.id AS u_id,
              u.email AS u_email,
              u.username AS u_username,
              u.msisdn AS u_msisdn,
              u.balance AS u_balance,
              u.is_active AS u_is_active,
              u.created_at AS u_created_at,
              u.updated_at AS u_updated_at
            FROM transactions t
            JOIN users u ON u.id = t.user_id
            WHERE t.transaction_id = %s
            """,
            (transaction_id,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return TransactionAggregate(transaction=_tx_from_row(row), user=_user_from_row(row, prefix="u_"))


def list_transactions(conn, user_id: Optional[int] = None) -> list[Transaction]:
    user_filter = ""
    params: tuple = ()
    if user_id is not None:
        user_filter = "WHERE t.user_id = %s"
        params = (user_id,)

    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_TX_COLUMNS}
            FROM transactions t
            {user_filter}
            ORDER BY t.created_at DESC, t.id DESC
            """,
            params,
        )
        return [_tx_from_row(r) for r in cur.fetchall()]


def find_by_correlation(conn, column: str, value: str) -> Optional[Transaction]:
    col = check_correlation_column(column)
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_TX_COLUMNS}
            FROM transactions t
            WHERE t.{col} = %s
            ORDER BY t.updated_at DESC
            LIMIT 1
            """,
            (value,),
        )
        row = cur.fetchone()
        return _tx_from_row(row) if row else None


# ==========================================================
# Transactions: writes
# ==========================================================

def update_status(
    conn,
    *,
    transaction_id: str,
    new_status: TransactionStatus,
    allowed_from: tuple[TransactionStatus, ...],
    msisdn: Optional[str] = None,
    airtel_money_id: Optional[str] = None,
    airtel_reference_id: Optional[str] = None,
) -> Optional[int]:
    """
    Conditional status write. Returns the owning user_id when a row moved, else None.
    """
    if not allowed_from:
        return None

    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE transactions
            SET
              status = %s,
              msisdn = COALESCE(%s, msisdn),
              airtel_money_id = COALESCE(%s, airtel_money_id),
              airtel_reference_id = COALESCE(%s, airtel_reference_id),
              updated_at = now()
            WHERE transaction_id = %s
              AND status = ANY(%s)
            RETURNING user_id
            """,
            (
                new_status.value,
                msisdn,
                airtel_money_id,
                airtel_reference_id,
                transaction_id,
                [s.value for s in allowed_from],
            ),
        )
        row = cur.fetchone()
        return row[0] if row else None


def update_correlation(
    conn,
    *,
    transaction_id: str,
    msisdn: Optional[str] = None,
    airtel_money_id: Optional[str] = None,
    airtel_reference_id: Optional[str] = None,
) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE transactions
            SET
              msisdn = COALESCE(%s, msisdn),
              airtel_money_id = COALESCE(%s, airtel_money_id),
              airtel_reference_id = COALESCE(%s, airtel_reference_id),
              updated_at = now()
            WHERE transaction_id = %s
            """,
            (msisdn, airtel_money_id, airtel_reference_id, transaction_id),
        )


def finalize(conn, f: Finalization) -> FinalizeResult:
    user_id = update_status(
        conn,
        transaction_id=f.transaction_id,
        new_status=f.new_status,
        allowed_from=f.allowed_from,
        msisdn=f.msisdn,
        airtel_money_id=f.airtel_money_id,
        airtel_reference_id=f.airtel_reference_id,
    )
    if user_id is None:
        update_correlation(
            conn,
            transaction_id=f.transaction_id,
            msisdn=f.msisdn,
            airtel_money_id=f.airtel_money_id,
            airtel_reference_id=f.airtel_reference_id,
        )
        return FinalizeResult(applied=False)

    if f.new_status != TransactionStatus.COMPLETED or not f.balance_delta:
        return FinalizeResult(applied=True)

    balance = apply_balance_delta(conn, user_id=user_id, delta=f.balance_delta)
    if balance is None:
        # status stays COMPLETED: the provider already moved the money
        return FinalizeResult(applied=True, balance_applied=False)

    return FinalizeResult(applied=True, balance_applied=True, balance=balance)


# ==========================================================
# Store adapter
# ==========================================================

class PgTransactionStore:
    """TransactionStore over the pooled psycopg2 connection; one DB transaction per call."""

    def get_user(self, user_id: int) -> Optional[User]:
        with get_conn() as conn:
            return get_user(conn, user_id)

    def list_users(self) -> list[User]:
        with get_conn() as conn:
            return list_users(conn)

    def create_user(self, *, email: str, username: str, msisdn: Optional[str], balance: Decimal = Decimal("0")) -> User:
        with get_conn() as conn:
            return insert_user(conn, email=email, username=username, msisdn=msisdn, balance=balance)

    def insert_transaction(self, new: NewTransaction) -> Transaction:
        with get_conn() as conn:
            return insert_transaction(conn, new)

    def get_transaction(self, id: int) -> Optional[Transaction]:
        with get_conn() as conn:
            return get_transaction(conn, id)

    def get_by_transaction_id(self, transaction_id: str) -> Optional[Transaction]:
        with get_conn() as conn:
            return get_by_transaction_id(conn, transaction_id)

    def load_aggregate(self, transaction_id: str) -> Optional[TransactionAggregate]:
        with get_conn() as conn:
            return load_aggregate(conn, transaction_id)

    def list_transactions(self, user_id: Optional[int] = None) -> list[Transaction]:
        with get_conn() as conn:
            return list_transactions(conn, user_id)

    def find_by_correlation(self, column: str, value: str) -> Optional[Transaction]:
        with get_conn() as conn:
            return find_by_correlation(conn, column, value)

    def transition(
        self,
        transaction_id: str,
        *,
        new_status: TransactionStatus,
        allowed_from: tuple[TransactionStatus, ...],
        msisdn: Optional[str] = None,
    ) -> bool:
        with get_conn() as conn:
            moved = update_status(
                conn,
                transaction_id=transaction_id,
                new_status=new_status,
                allowed_from=allowed_from,
                msisdn=msisdn,
            )
            return moved is not None

    def record_correlation(
        self,
        transaction_id: str,
        *,
        msisdn: Optional[str] = None,
        airtel_money_id: Optional[str] = None,
        airtel_reference_id: Optional[str] = None,
    ) -> None:
        with get_conn() as conn:
            update_correlation(
                conn,
                transaction_id=transaction_id,
                msisdn=msisdn,
                airtel_money_id=airtel_money_id,
                airtel_reference_id=airtel_reference_id,
            )

    def finalize(self, f: Finalization) -> FinalizeResult:
        with get_conn() as conn:
            return finalize(conn, f)
