"""Transaction validation package."""

from couple_ledger.validation.validator import (
    TransactionRejectedError,
    TransactionValidator,
)

__all__ = ["TransactionRejectedError", "TransactionValidator"]
