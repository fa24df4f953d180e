from abc import ABC, abstractmethod

from recordvault.ledger.models import LedgerReceipt


class BaseLedgerAnchor(ABC):
    """Contract for append-only ledger adapters."""

    @abstractmethod
    def anchor(
        self,
        subject_identity: str,
        cid: str,
        *,
        timeout: float | None = None,
    ) -> LedgerReceipt:
        """Append a (subject identity, CID) entry and return its receipt.

        Not idempotent: calling twice records two entries.

        Raises:
            InvalidSubjectError: if the subject identity is malformed.
            InsufficientResourcesError: if the anchoring account cannot pay.
            LedgerRejectedError: if the write is reverted.
            LedgerUnreachableError: on network errors or receipt timeout. On a
                receipt timeout ``pending_receipt_id`` names the submitted write.
        """

    @abstractmethod
    def wait_for_receipt(
        self, receipt_id: str, *, timeout: float | None = None
    ) -> LedgerReceipt:
        """Wait for a write that ``anchor`` already submitted, without resubmitting it.

        Raises:
            LedgerUnreachableError: if the write is still pending after ``timeout``.
            LedgerRejectedError: if the write was reverted.
            LedgerError: if the ledger does not know ``receipt_id``.
        """

    @abstractmethod
    def query_by_subject(self, subject_identity: str) -> list[str]:
        """Return every CID anchored for a subject, oldest first."""

    @abstractmethod
    def count_by_subject(self, subject_identity: str) -> int:
        """Return how many entries are anchored for a subject."""

    @abstractmethod
    def find_receipt(
        self, subject_identity: str, cid: str, *, timeout: float | None = None
    ) -> LedgerReceipt | None:
        """Return the receipt of an existing anchor for (subject, cid), if any.

        Used before retrying ``anchor`` so a write whose response was lost is
        not recorded twice.
        """

    @abstractmethod
    def verify_connection(self) -> None:
        """Check that the ledger is reachable and the anchoring account is usable."""
