# app/transactions/state_machine.py
from app.transactions.model import TransactionStatus as S


ALLOWED = {
    S.PENDING: {S.PROCESSING, S.FAILED},
    S.PROCESSING: {S.COMPLETED, S.FAILED, S.PROCESSING},  # PROCESSING->PROCESSING while awaiting callback
    S.COMPLETED: set(),
    S.FAILED: {S.COMPLETED},  # late authoritative callback may correct a sync failure
}

# synchronous path: only the row this request moved to PROCESSING
SYNC_FINALIZE_FROM = (S.PROCESSING,)

# callback path: anything not already COMPLETED
CALLBACK_FINALIZE_FROM = (S.PENDING, S.PROCESSING, S.FAILED)


def can_transition(old: S, new: S) -> bool:
    return new in ALLOWED.get(old, set())


def allowed_sources(new: S, candidates: tuple[S, ...]) -> tuple[S, ...]:
    """Narrow `candidates` to the states that may legally move to `new`."""
    return tuple(s for s in candidates if can_transition(s, new))
