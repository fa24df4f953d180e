class LedgerError(Exception):
    """Base exception for ledger anchoring failures."""


class InsufficientResourcesError(LedgerError):
    """Raised when the anchoring account lacks funds or quota."""


class InvalidSubjectError(LedgerError):
    """Raised when a subject identity fails address validation."""


class LedgerUnreachableError(LedgerError):
    """Raised on network errors or when no receipt arrives in time.

    ``pending_receipt_id`` is set when the write was already submitted and
    only the receipt wait timed out; the write may still be mined.
    """

    def __init__(self, message: str, *, pending_receipt_id: str | None = None) -> None:
        super().__init__(message)
        self.pending_receipt_id = pending_receipt_id


class LedgerRejectedError(LedgerError):
    """Raised when the ledger reverts the write."""
