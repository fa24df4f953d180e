from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable anchor binding a subject identity to a CID."""

    subject_identity: str
    cid: str
    submitter_identity: str
    timestamp: datetime


@dataclass(frozen=True)
class LedgerReceipt:
    """Proof of anchoring returned by the ledger."""

    receipt_id: str
    anchored_at: datetime
    block_number: int | None = None
