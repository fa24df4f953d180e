from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from recordvault.crypto.models import EncryptedPayload
from recordvault.ledger.models import LedgerReceipt
from recordvault.pipeline.models import (
    PipelineState,
    RecordClassification,
    RecordDescriptor,
    RecordStatus,
    Stage,
    SubjectIdentity,
    UploadedFile,
)
from recordvault.pipeline.retry import Deadline


@dataclass(slots=True)
class IngestionContext:
    subject_identifier: str
    classification_value: str | RecordClassification | None
    submitter_identity: str
    deadline: Deadline
    upload: UploadedFile | None = None
    description: str = ""
    file_name: str = ""
    mime_type: str = ""
    file_size: int = 0
    classification: RecordClassification | None = None
    subject: SubjectIdentity | None = None
    plaintext_sha256: str = ""
    payload: EncryptedPayload | None = None
    cid: str = ""
    receipt: LedgerReceipt | None = None
    pending_receipt_id: str = ""
    descriptor: RecordDescriptor | None = None
    state: PipelineState = PipelineState.RECEIVED
    status: RecordStatus = RecordStatus.PENDING
    trail: list[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])

    def advance(self, state: PipelineState, status: RecordStatus | None = None) -> None:
        self.state = state
        self.trail.append(state)
        if status is not None:
            self.status = status

    def fail(self) -> None:
        self.advance(PipelineState.FAILED, RecordStatus.FAILED)

    def discard_buffers(self) -> None:
        """Drop every reference to plaintext and ciphertext held by the context."""
        self.upload = None
        self.payload = None


class PipelineStep(ABC):
    stage: Stage

    @abstractmethod
    def run(self, context: IngestionContext) -> IngestionContext:
        raise NotImplementedError
