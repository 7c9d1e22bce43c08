"""
Ledger Error Taxonomy

ValidationError and ReferentialConflict are fatal to the requested
operation and reach the caller unchanged.

InconsistentLinkAmount is ADVISORY: it is attached to the result of a
link operation and audited, but the operation still commits.
Partial dues payments are a normal business case.

LinkOperationFailed wraps anything that breaks a multi-step operation
midway. The store has already been restored when it is raised.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for the ledger engine."""
    pass


class ValidationError(LedgerError):
    """Malformed input (negative amount, wrong transaction type, ...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InvalidTransfer(ValidationError):
    """Transfer whose source and destination accounts are the same."""
    pass


class ReferentialConflict(LedgerError):
    """Operation would break a reference between two entities."""
    pass


class AlreadyLinked(ReferentialConflict):
    """Bill (or transaction) already linked to a different counterpart."""

    def __init__(self, bill_id: UUID, transaction_id: UUID, message: str):
        self.bill_id = bill_id
        self.transaction_id = transaction_id
        super().__init__(message)


class NotFound(LedgerError):
    """Referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: UUID):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InconsistentLinkAmount(LedgerError):
    """
    Linked payments do not add up to the transaction amount.

    Never raised by commands. Returned inside LinkResult.
    """

    def __init__(
        self,
        transaction_id: UUID,
        transaction_amount: Decimal,
        linked_total: Decimal,
    ):
        self.transaction_id = transaction_id
        self.transaction_amount = transaction_amount
        self.linked_total = linked_total
        super().__init__(
            f"Linked payments total {linked_total} but transaction "
            f"{transaction_id} is {transaction_amount}"
        )

    @property
    def difference(self) -> Decimal:
        return self.transaction_amount - self.linked_total


class LinkOperationFailed(LedgerError):
    """A multi-step operation failed and was rolled back as a unit."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed and was rolled back: {cause}")
