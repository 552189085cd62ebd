from app.transactions.model import TransactionStatus as S
from app.transactions.state_machine import (
    CALLBACK_FINALIZE_FROM,
    SYNC_FINALIZE_FROM,
    allowed_sources,
    can_transition,
)


def test_valid_transitions():
    assert can_transition(S.PENDING, S.PROCESSING)
    assert can_transition(S.PENDING, S.FAILED)
    assert can_transition(S.PROCESSING, S.COMPLETED)
    assert can_transition(S.PROCESSING, S.FAILED)


def test_invalid_transition_skipping_states():
    assert not can_transition(S.PENDING, S.COMPLETED)


def test_completed_is_terminal():
    for target in (S.PENDING, S.PROCESSING, S.FAILED, S.COMPLETED):
        assert not can_transition(S.COMPLETED, target)


def test_failed_can_only_be_corrected_to_completed():
    assert can_transition(S.FAILED, S.COMPLETED)
    assert not can_transition(S.FAILED, S.PROCESSING)
    assert not can_transition(S.FAILED, S.FAILED)


def test_callback_sources_exclude_completed():
    assert allowed_sources(S.COMPLETED, CALLBACK_FINALIZE_FROM) == (S.PROCESSING, S.FAILED)
    assert allowed_sources(S.FAILED, CALLBACK_FINALIZE_FROM) == (S.PENDING, S.PROCESSING)


def test_sync_path_only_finalizes_processing_rows():
    assert allowed_sources(S.COMPLETED, SYNC_FINALIZE_FROM) == (S.PROCESSING,)
    assert allowed_sources(S.COMPLETED, (S.PENDING,)) == ()
