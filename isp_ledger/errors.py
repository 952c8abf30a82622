from __future__ import annotations

from typing import Optional


class LedgerError(Exception):
    """Base class for errors raised by the subscription ledger."""


class ValidationError(LedgerError):
    """A payment/recharge event was rejected before any state changed."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class CustomerNotFound(ValidationError):
    def __init__(self, customer_id: str) -> None:
        super().__init__(f"Customer {customer_id} not found", field="customer_id")
        self.customer_id = customer_id


class SnapshotImportError(LedgerError):
    """A restore document was malformed; the previous state is kept."""
