from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class RecordClassification(StrEnum):
    LAB_TEST = "lab-test"
    IMAGING = "imaging"
    XRAY = "xray"
    MRI = "mri"
    CT_SCAN = "ct-scan"
    PRESCRIPTION = "prescription"
    DIAGNOSIS = "diagnosis"
    CONSULTATION = "consultation"
    OTHER = "other"

    @classmethod
    def parse(cls, value: "str | RecordClassification | None") -> "RecordClassification":
        """Parse a classification, raising ValueError for missing or unknown values."""
        if isinstance(value, RecordClassification):
            return value
        normalized = (value or "").strip().lower()
        if not normalized:
            raise ValueError("record classification is required")
        try:
            return cls(normalized)
        except ValueError:
            allowed = [c.value for c in cls]
            raise ValueError(
                f"unknown record classification '{value}'. Choose from: {allowed}"
            ) from None


class RecordStatus(StrEnum):
    PENDING = "pending"
    STORED = "stored"
    ANCHORED = "anchored"
    FAILED = "failed"


class PipelineState(StrEnum):
    RECEIVED = "received"
    ENCRYPTED = "encrypted"
    STORED = "stored"
    ANCHORED = "anchored"
    PERSISTED = "persisted"
    FAILED = "failed"


class Stage(StrEnum):
    VALIDATE = "validate"
    ENCRYPT = "encrypt"
    STORE = "store"
    ANCHOR = "anchor"
    PERSIST = "persist"
    LOOKUP = "lookup"
    FETCH = "fetch"
    DECRYPT = "decrypt"


@dataclass(frozen=True)
class UploadedFile:
    """Raw upload as handed over by the caller."""

    file_name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    def __repr__(self) -> str:
        return (
            f"UploadedFile(file_name={self.file_name!r}, mime_type={self.mime_type!r}, "
            f"size={self.size})"
        )


@dataclass(frozen=True)
class SubjectIdentity:
    """Patient as resolved by the identity provider."""

    subject_id: int
    email: str
    subject_identity: str | None

    @property
    def has_consented(self) -> bool:
        """A patient consents by linking a receiving identity (wallet address)."""
        return bool(self.subject_identity)


@dataclass(frozen=True)
class RecordDescriptor:
    """Durable metadata for one ingested record."""

    subject_id: int
    subject_identity: str
    submitter_identity: str
    classification: RecordClassification
    file_name: str
    file_size: int
    mime_type: str
    cid: str
    ledger_receipt: str
    encryption_key: str
    encryption_algorithm: str
    created_at: datetime
    status: RecordStatus = RecordStatus.PENDING
    plaintext_sha256: str = ""
    description: str = ""
    id: int | None = None

    def __repr__(self) -> str:
        return (
            f"RecordDescriptor(id={self.id!r}, cid={self.cid!r}, "
            f"ledger_receipt={self.ledger_receipt!r}, status={self.status.value!r}, "
            f"classification={self.classification.value!r}, file_size={self.file_size}, "
            f"encryption_key=<redacted>)"
        )


class RetrievedRecord:
    """Decrypted record handed to the caller.

    The plaintext can be consumed once, either with ``read`` or by iterating
    ``iter_chunks``; the buffer is dropped afterwards.
    """

    DEFAULT_CHUNK_SIZE = 64 * 1024

    def __init__(self, descriptor: RecordDescriptor, plaintext: bytes) -> None:
        self.descriptor = descriptor
        self._buffer: bytes | None = plaintext
        self.size = len(plaintext)

    @property
    def file_name(self) -> str:
        return self.descriptor.file_name

    @property
    def mime_type(self) -> str:
        return self.descriptor.mime_type

    @property
    def consumed(self) -> bool:
        return self._buffer is None

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        buffer = self._take()
        for offset in range(0, len(buffer), chunk_size):
            yield buffer[offset : offset + chunk_size]

    def read(self) -> bytes:
        return self._take()

    def discard(self) -> None:
        self._buffer = None

    def _take(self) -> bytes:
        if self._buffer is None:
            raise RuntimeError("record plaintext was already consumed or discarded")
        buffer, self._buffer = self._buffer, None
        return buffer
