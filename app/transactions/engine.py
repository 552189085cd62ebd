# app/transactions/engine.py
from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol

from app.airtel.callback import CallbackEnvelope, normalize_callback, parse_envelope
from app.airtel.client import CollectRequest, DisburseRequest, ProviderResponse
from app.airtel.phone import normalize_msisdn
from app.errors import InsufficientBalance, InvalidState, NotFound
from app.transactions.model import (
    Finalization,
    NewTransaction,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
    to_money,
)
from app.transactions.state_machine import (
    CALLBACK_FINALIZE_FROM,
    SYNC_FINALIZE_FROM,
    allowed_sources,
)
from app.transactions.store import TransactionStore
from services.metrics import increment_callback_event, increment_transaction_outcome
from services.redaction import mask_msisdn

logger = logging.getLogger("minibet.transactions")
callback_logger = logging.getLogger("minibet.callbacks")

PROVIDER_SUCCESS_CODES = frozenset({"TS", "SUCCESS"})
PROVIDER_FAILURE_CODES = frozenset({"TF", "FAILED"})

_ID_ALPHABET = string.ascii_uppercase + string.digits


class PaymentGateway(Protocol):
    def collect_payment(self, req: CollectRequest) -> ProviderResponse: ...
    def disburse_funds(self, req: DisburseRequest) -> ProviderResponse: ...
    def close(self) -> None: ...


@dataclass(frozen=True)
class CallbackOutcome:
    matched: bool
    applied: bool
    reason: str
    transaction: Optional[Transaction] = None


def interpret_provider_response(resp: ProviderResponse) -> TransactionStatus:
    """
    Synchronous outcome table. The success flag wins over the status text;
    when neither says anything definite the callback decides.
    """
    code = (resp.status_code or "").strip().upper()

    if resp.success is True and code in PROVIDER_SUCCESS_CODES:
        return TransactionStatus.COMPLETED
    if resp.success is False or code in PROVIDER_FAILURE_CODES:
        return TransactionStatus.FAILED
    if resp.success is True:
        return TransactionStatus.COMPLETED
    return TransactionStatus.PROCESSING


def generate_transaction_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"TXN{int(time.time() * 1000)}{suffix}"


def generate_reference() -> str:
    # Airtel rejects separators in the reference
    return f"MiniBet{int(time.time() * 1000)}{secrets.randbelow(10_000):04d}"


class TransactionEngine:
    """
    Owns the transaction lifecycle and is the only writer of user balances.

    Status writes are conditional on the current status; a balance delta is
    only applied together with the status change that completes the transaction.
    """

    def __init__(self, store: TransactionStore, gateway: PaymentGateway, *, currency: str = "KES", country: str = "KE"):
        self.store = store
        self.gateway = gateway
        self.currency = currency
        self.country = country

    def close(self) -> None:
        self.gateway.close()

    # ---------------------------
    # Users
    # ---------------------------

    def create_user(self, *, email: str, username: str, msisdn: Optional[str] = None, balance: Decimal | int | str = 0) -> User:
        return self.store.create_user(email=email, username=username, msisdn=msisdn, balance=to_money(balance))

    def get_user(self, user_id: int) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def get_balance(self, user_id: int) -> Decimal:
        return self.get_user(user_id).balance

    # ---------------------------
    # Transactions: reads
    # ---------------------------

    def get_transaction(self, id: int) -> Transaction:
        tx = self.store.get_transaction(id)
        if tx is None:
            raise NotFound("Transaction not found")
        return tx

    def get_by_transaction_id(self, transaction_id: str) -> Transaction:
        tx = self.store.get_by_transaction_id(transaction_id)
        if tx is None:
            raise NotFound("Transaction not found")
        return tx

    def list_transactions(self, user_id: Optional[int] = None) -> list[Transaction]:
        return self.store.list_transactions(user_id)

    # ---------------------------
    # Create
    # ---------------------------

    def create_transaction(
        self,
        user_id: int,
        amount: Decimal | int | float | str,
        type: TransactionType,
        msisdn: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")

        tx = self.store.insert_transaction(
            NewTransaction(
                transaction_id=generate_transaction_id(),
                type=TransactionType(type),
                amount=to_money(amount),
                currency=self.currency,
                reference=generate_reference(),
                user_id=user.id,
                msisdn=msisdn or user.msisdn,
                description=description,
            )
        )
        logger.info(
            "transaction_created transaction_id=%s type=%s amount=%s currency=%s user_id=%s reference=%s",
            tx.transaction_id,
            tx.type.value,
            tx.amount,
            tx.currency,
            tx.user_id,
            tx.reference,
        )
        return tx

    # ---------------------------
    # Synchronous processing
    # ---------------------------

    def process_deposit(self, transaction_id: str) -> Transaction:
        return self._process(transaction_id, TransactionType.DEPOSIT)

    def process_withdrawal(self, transaction_id: str) -> Transaction:
        return self._process(transaction_id, TransactionType.WITHDRAWAL)

    def _process(self, transaction_id: str, expected: TransactionType) -> Transaction:
        agg = self.store.load_aggregate(transaction_id)
        if agg is None:
            raise NotFound("Transaction not found")

        tx, user = agg.transaction, agg.user
        kind = expected.value.lower()

        if tx.type != expected:
            raise InvalidState(f"Invalid transaction type for {kind}")
        if tx.status != TransactionStatus.PENDING:
            raise InvalidState(f"Transaction {transaction_id} is {tx.status.value}, expected PENDING")

        if expected == TransactionType.WITHDRAWAL and user.balance < abs(tx.amount):
            self.store.transition(
                transaction_id,
                new_status=TransactionStatus.FAILED,
                allowed_from=(TransactionStatus.PENDING,),
            )
            increment_transaction_outcome(tx.type.value, TransactionStatus.FAILED.value, "precondition")
            logger.warning(
                "withdrawal_rejected transaction_id=%s user_id=%s balance=%s amount=%s reason=insufficient_balance",
                transaction_id,
                user.id,
                user.balance,
                tx.amount,
            )
            raise InsufficientBalance("Insufficient balance")

        if not self.store.transition(
            transaction_id,
            new_status=TransactionStatus.PROCESSING,
            allowed_from=(TransactionStatus.PENDING,),
        ):
            raise InvalidState(f"Transaction {transaction_id} is already being processed")

        logger.info("%s_started transaction_id=%s user_id=%s", kind, transaction_id, user.id)

        try:
            msisdn = normalize_msisdn(tx.msisdn)
            logger.info(
                "msisdn_normalized transaction_id=%s original=%s normalized=%s",
                transaction_id,
                mask_msisdn(tx.msisdn or ""),
                mask_msisdn(msisdn),
            )
            if not msisdn:
                raise InvalidState("Subscriber msisdn is missing")

            resp = self._call_provider(tx, msisdn)
        except Exception as exc:
            self._force_failed(tx, exc)
            raise

        outcome = interpret_provider_response(resp)
        airtel_money_id = resp.airtel_money_id or resp.transaction_id or f"AM_{transaction_id}"
        airtel_reference_id = resp.reference_id or tx.reference

        logger.info(
            "%s_provider_outcome transaction_id=%s success=%s airtel_status=%s message=%s outcome=%s",
            kind,
            transaction_id,
            resp.success,
            resp.status_code,
            resp.message,
            outcome.value,
        )

        try:
            self._persist_sync_outcome(
                tx,
                outcome=outcome,
                msisdn=msisdn,
                airtel_money_id=airtel_money_id,
                airtel_reference_id=airtel_reference_id,
            )
        except Exception as exc:
            if outcome == TransactionStatus.COMPLETED:
                logger.error(
                    "reconciliation_required transaction_id=%s airtel_money_id=%s airtel_reference_id=%s reason=persist_failed_after_provider_success err=%s",
                    transaction_id,
                    airtel_money_id,
                    airtel_reference_id,
                    exc,
                )
            self._force_failed(tx, exc)
            raise

        return self.get_by_transaction_id(transaction_id)

    def _call_provider(self, tx: Transaction, msisdn: str) -> ProviderResponse:
        amount = abs(tx.amount)
        if tx.type == TransactionType.DEPOSIT:
            return self.gateway.collect_payment(
                CollectRequest(
                    reference=tx.reference,
                    transaction_id=tx.transaction_id,
                    msisdn=msisdn,
                    amount=amount,
                    country=self.country,
                    currency=self.currency,
                )
            )
        return self.gateway.disburse_funds(
            DisburseRequest(
                reference=tx.reference,
                transaction_id=tx.transaction_id,
                msisdn=msisdn,
                amount=amount,
                currency=self.currency,
            )
        )

    def _persist_sync_outcome(
        self,
        tx: Transaction,
        *,
        outcome: TransactionStatus,
        msisdn: str,
        airtel_money_id: str,
        airtel_reference_id: str,
    ) -> None:
        if outcome == TransactionStatus.PROCESSING:
            self.store.record_correlation(
                tx.transaction_id,
                msisdn=msisdn,
                airtel_money_id=airtel_money_id,
                airtel_reference_id=airtel_reference_id,
            )
            increment_transaction_outcome(tx.type.value, outcome.value, "sync")
            logger.info("awaiting_callback transaction_id=%s", tx.transaction_id)
            return

        delta = tx.balance_delta if outcome == TransactionStatus.COMPLETED else Decimal("0")
        result = self.store.finalize(
            Finalization(
                transaction_id=tx.transaction_id,
                new_status=outcome,
                allowed_from=SYNC_FINALIZE_FROM,
                balance_delta=delta,
                msisdn=msisdn,
                airtel_money_id=airtel_money_id,
                airtel_reference_id=airtel_reference_id,
            )
        )

        if not result.applied:
            # a callback got there first; its write stands
            logger.info(
                "sync_outcome_skipped transaction_id=%s outcome=%s reason=already_finalized",
                tx.transaction_id,
                outcome.value,
            )
            return

        increment_transaction_outcome(tx.type.value, outcome.value, "sync")
        if outcome == TransactionStatus.COMPLETED and delta and not result.balance_applied:
            logger.error(
                "reconciliation_required transaction_id=%s user_id=%s delta=%s reason=overdraw",
                tx.transaction_id,
                tx.user_id,
                delta,
            )
            return

        logger.info(
            "transaction_finalized transaction_id=%s status=%s delta=%s balance=%s",
            tx.transaction_id,
            outcome.value,
            delta,
            result.balance,
        )

    def _force_failed(self, tx: Transaction, exc: Exception) -> None:
        logger.error(
            "%s_error transaction_id=%s reference=%s err=%s: %s",
            tx.type.value.lower(),
            tx.transaction_id,
            tx.reference,
            type(exc).__name__,
            exc,
        )
        try:
            moved = self.store.transition(
                tx.transaction_id,
                new_status=TransactionStatus.FAILED,
                allowed_from=SYNC_FINALIZE_FROM,
            )
        except Exception:
            # the original error is what the caller sees
            logger.exception("force_failed_write_error transaction_id=%s", tx.transaction_id)
            return
        if moved:
            increment_transaction_outcome(tx.type.value, TransactionStatus.FAILED.value, "error")

    # ---------------------------
    # Asynchronous callback
    # ---------------------------

    def handle_airtel_callback(self, payload: Any) -> CallbackOutcome:
        normalized = normalize_callback(payload)
        env = parse_envelope(normalized)
        if env is None:
            increment_callback_event(matched=False, applied=False)
            callback_logger.warning("callback_dropped reason=unrecognized_payload")
            return CallbackOutcome(matched=False, applied=False, reason="UNRECOGNIZED_PAYLOAD")

        txn = env.transaction
        tx = self._correlate(env)
        if tx is None:
            increment_callback_event(matched=False, applied=False)
            callback_logger.warning(
                "callback_dropped reason=no_match id=%s reference_id=%s airtel_money_id=%s status=%s",
                txn.id,
                txn.reference_id,
                txn.airtel_money_id,
                env.status_code,
            )
            return CallbackOutcome(matched=False, applied=False, reason="NO_MATCH")

        self._check_amount(tx, txn.amount)

        if tx.status == TransactionStatus.COMPLETED:
            self._stamp(tx, env)
            increment_callback_event(matched=True, applied=False)
            callback_logger.info(
                "callback_duplicate transaction_id=%s status=%s airtel_status=%s",
                tx.transaction_id,
                tx.status.value,
                env.status_code,
            )
            return CallbackOutcome(matched=True, applied=False, reason="ALREADY_COMPLETED", transaction=self.store.get_by_transaction_id(tx.transaction_id))

        if env.in_flight:
            self._stamp(tx, env)
            increment_callback_event(matched=True, applied=False)
            callback_logger.info("callback_in_flight transaction_id=%s airtel_status=%s", tx.transaction_id, env.status_code)
            return CallbackOutcome(matched=True, applied=False, reason="IN_FLIGHT", transaction=self.store.get_by_transaction_id(tx.transaction_id))

        new_status = TransactionStatus.COMPLETED if env.status.success else TransactionStatus.FAILED
        delta = tx.balance_delta if new_status == TransactionStatus.COMPLETED else Decimal("0")

        result = self.store.finalize(
            Finalization(
                transaction_id=tx.transaction_id,
                new_status=new_status,
                allowed_from=allowed_sources(new_status, CALLBACK_FINALIZE_FROM),
                balance_delta=delta,
                airtel_money_id=txn.airtel_money_id,
                airtel_reference_id=txn.reference_id,
            )
        )
        increment_callback_event(matched=True, applied=result.applied)

        if result.applied:
            increment_transaction_outcome(tx.type.value, new_status.value, "callback")
            if new_status == TransactionStatus.COMPLETED and delta and not result.balance_applied:
                callback_logger.error(
                    "reconciliation_required transaction_id=%s user_id=%s delta=%s reason=overdraw",
                    tx.transaction_id,
                    tx.user_id,
                    delta,
                )
            callback_logger.info(
                "callback_applied transaction_id=%s from=%s to=%s delta=%s balance=%s message=%s",
                tx.transaction_id,
                tx.status.value,
                new_status.value,
                delta,
                result.balance,
                env.status.message,
            )
            reason = "APPLIED"
        else:
            callback_logger.info(
                "callback_not_applied transaction_id=%s current=%s requested=%s",
                tx.transaction_id,
                tx.status.value,
                new_status.value,
            )
            reason = "NOT_APPLICABLE"

        return CallbackOutcome(
            matched=True,
            applied=result.applied,
            reason=reason,
            transaction=self.store.get_by_transaction_id(tx.transaction_id),
        )

    def _correlate(self, env: CallbackEnvelope) -> Optional[Transaction]:
        txn = env.transaction
        candidates = (
            ("airtel_money_id", txn.airtel_money_id),
            ("airtel_money_id", txn.id),
            ("airtel_reference_id", txn.reference_id),
            ("transaction_id", txn.id),
            ("reference", txn.reference_id),
        )
        for column, value in candidates:
            if not value:
                continue
            tx = self.store.find_by_correlation(column, value)
            if tx is not None:
                callback_logger.info("callback_matched transaction_id=%s via=%s", tx.transaction_id, column)
                return tx
        return None

    def _stamp(self, tx: Transaction, env: CallbackEnvelope) -> None:
        self.store.record_correlation(
            tx.transaction_id,
            airtel_money_id=env.transaction.airtel_money_id,
            airtel_reference_id=env.transaction.reference_id,
        )

    @staticmethod
    def _check_amount(tx: Transaction, reported: Any) -> None:
        if reported in (None, ""):
            return
        try:
            amount = to_money(reported)
        except (InvalidOperation, ValueError):
            callback_logger.warning("callback_amount_unreadable transaction_id=%s amount=%r", tx.transaction_id, reported)
            return
        if amount != abs(tx.amount):
            callback_logger.warning(
                "callback_amount_mismatch transaction_id=%s stored=%s reported=%s",
                tx.transaction_id,
                tx.amount,
                amount,
            )
