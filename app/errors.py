"""Domain errors raised by the transaction engine and the Airtel client."""

from __future__ import annotations


class TransactionServiceError(Exception):
    """Base for every error this service raises on purpose."""


class NotFound(TransactionServiceError):
    """Referenced user or transaction does not exist."""


class InvalidState(TransactionServiceError):
    """Wrong transaction type, or the transaction is no longer processable."""


class InsufficientBalance(InvalidState):
    """Withdrawal precondition failed before any provider call."""


class ProviderError(TransactionServiceError):
    """Dependency failure talking to Airtel Money."""

    def __init__(self, message: str, *, http_status: int | None = None, reference: str | None = None):
        super().__init__(message)
        self.http_status = http_status
        self.reference = reference


class AuthenticationError(ProviderError):
    """OAuth2 token exchange failed."""


class GatewayError(ProviderError):
    """Collect/disburse call failed: network, timeout, non-2xx or unreadable body."""
