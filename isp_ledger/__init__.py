from .errors import CustomerNotFound, LedgerError, SnapshotImportError, ValidationError
from .ledger import Ledger

__all__ = [
    "CustomerNotFound",
    "Ledger",
    "LedgerError",
    "SnapshotImportError",
    "ValidationError",
]
