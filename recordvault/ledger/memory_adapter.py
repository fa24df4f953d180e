"""In-memory append-only ledger.

No network calls. Useful for local development and tests.
"""

import hashlib
import re
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from recordvault.ledger.base import BaseLedgerAnchor
from recordvault.ledger.exceptions import InvalidSubjectError, LedgerError
from recordvault.ledger.models import LedgerEntry, LedgerReceipt

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class InMemoryLedger(BaseLedgerAnchor):
    """Keeps entries in a list; receipts are the sha256 of each entry."""

    def __init__(
        self,
        submitter_identity: str = "0x" + "0" * 40,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._submitter = submitter_identity
        self._clock = clock or (lambda: datetime.now(UTC))
        self._entries: list[LedgerEntry] = []
        self._receipts: list[LedgerReceipt] = []
        self._lock = threading.Lock()

    @property
    def entries(self) -> tuple[LedgerEntry, ...]:
        return tuple(self._entries)

    def anchor(
        self,
        subject_identity: str,
        cid: str,
        *,
        timeout: float | None = None,
    ) -> LedgerReceipt:
        _ = timeout
        subject = self._normalize(subject_identity)
        with self._lock:
            return self._append(subject, cid)

    def _append(self, subject: str, cid: str) -> LedgerReceipt:
        entry = LedgerEntry(
            subject_identity=subject,
            cid=cid,
            submitter_identity=self._submitter,
            timestamp=self._clock(),
        )
        digest = hashlib.sha256(
            f"{len(self._entries)}|{subject}|{cid}|{entry.submitter_identity}|"
            f"{entry.timestamp.isoformat()}".encode()
        ).hexdigest()
        receipt = LedgerReceipt(
            receipt_id=f"0x{digest}",
            block_number=len(self._entries),
            anchored_at=entry.timestamp,
        )
        self._entries.append(entry)
        self._receipts.append(receipt)
        return receipt

    def wait_for_receipt(
        self, receipt_id: str, *, timeout: float | None = None
    ) -> LedgerReceipt:
        _ = timeout
        for receipt in self._receipts:
            if receipt.receipt_id == receipt_id:
                return receipt
        raise LedgerError(f"Unknown ledger receipt {receipt_id}")

    def query_by_subject(self, subject_identity: str) -> list[str]:
        subject = self._normalize(subject_identity)
        return [e.cid for e in self._entries if e.subject_identity == subject]

    def count_by_subject(self, subject_identity: str) -> int:
        subject = self._normalize(subject_identity)
        return sum(1 for e in self._entries if e.subject_identity == subject)

    def find_receipt(
        self, subject_identity: str, cid: str, *, timeout: float | None = None
    ) -> LedgerReceipt | None:
        _ = timeout
        subject = self._normalize(subject_identity)
        for entry, receipt in zip(self._entries, self._receipts):
            if entry.subject_identity == subject and entry.cid == cid:
                return receipt
        return None

    def verify_connection(self) -> None:
        return None

    @staticmethod
    def _normalize(subject_identity: str) -> str:
        if not _ADDRESS_RE.match(subject_identity or ""):
            raise InvalidSubjectError(f"Invalid subject address '{subject_identity}'")
        return subject_identity.lower()
