import hashlib
import time
from collections.abc import Callable
from datetime import UTC, datetime

from recordvault.crypto.base import BaseCipher
from recordvault.crypto.exceptions import CipherError
from recordvault.database.base import BaseIdentityProvider, BaseMetadataStore
from recordvault.database.exceptions import (
    DuplicateCidError,
    MetadataStoreError,
    SubjectNotFoundError,
)
from recordvault.ledger.base import BaseLedgerAnchor
from recordvault.ledger.exceptions import LedgerError, LedgerUnreachableError
from recordvault.ledger.models import LedgerReceipt
from recordvault.logging.logger import Log
from recordvault.pipeline.context import IngestionContext, PipelineStep
from recordvault.pipeline.exceptions import (
    DeadlineExceededError,
    FatalInfraError,
    TransientInfraError,
    ValidationError,
)
from recordvault.pipeline.models import (
    PipelineState,
    RecordClassification,
    RecordDescriptor,
    RecordStatus,
    Stage,
)
from recordvault.pipeline.retry import DeadlineExpired, RetryPolicy, call_with_retry
from recordvault.pipeline.uploads import check_upload
from recordvault.storage.base import BaseContentStore
from recordvault.storage.exceptions import ContentStoreError, ContentStoreUnreachableError

MAX_DESCRIPTION_LENGTH = 500


class ValidateRequestStep(PipelineStep):
    stage = Stage.VALIDATE

    def __init__(self, identity_provider: BaseIdentityProvider, max_upload_bytes: int) -> None:
        self._identity_provider = identity_provider
        self._max_upload_bytes = max_upload_bytes

    def run(self, context: IngestionContext) -> IngestionContext:
        try:
            context.classification = RecordClassification.parse(context.classification_value)
        except ValueError as exc:
            raise ValidationError(str(exc), stage=self.stage, cause=exc) from exc

        if len(context.description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"description exceeds {MAX_DESCRIPTION_LENGTH} characters", stage=self.stage
            )
        if context.upload is None:
            raise ValidationError("file is required", stage=self.stage)
        try:
            check_upload(context.upload, self._max_upload_bytes)
        except ValueError as exc:
            raise ValidationError(str(exc), stage=self.stage, cause=exc) from exc

        if not context.subject_identifier.strip():
            raise ValidationError("patient identifier is required", stage=self.stage)
        try:
            subject = self._identity_provider.resolve_subject(context.subject_identifier)
        except SubjectNotFoundError as exc:
            raise ValidationError(str(exc), stage=self.stage, cause=exc) from exc
        except MetadataStoreError as exc:
            raise TransientInfraError(
                f"Patient lookup failed: {exc}", stage=self.stage, cause=exc, retryable=True
            ) from exc
        if not subject.has_consented:
            raise ValidationError(
                "Patient must link a wallet address before records can be uploaded",
                stage=self.stage,
            )

        context.subject = subject
        context.file_name = context.upload.file_name
        context.mime_type = context.upload.mime_type
        context.file_size = context.upload.size
        Log.info(
            f"Validated upload of {context.file_size} bytes for patient {subject.subject_id}",
            classification=context.classification.value,
        )
        return context


class EncryptStep(PipelineStep):
    stage = Stage.ENCRYPT

    def __init__(self, cipher: BaseCipher) -> None:
        self._cipher = cipher

    def run(self, context: IngestionContext) -> IngestionContext:
        if context.upload is None:
            raise ValueError("IngestionContext.upload must be set before encryption")
        plaintext = context.upload.content
        context.plaintext_sha256 = hashlib.sha256(plaintext).hexdigest()
        try:
            context.payload = self._cipher.encrypt(plaintext)
        except CipherError as exc:
            raise FatalInfraError(
                f"Encryption failed: {exc}", stage=self.stage, cause=exc
            ) from exc
        context.upload = None
        context.advance(PipelineState.ENCRYPTED)
        Log.info(
            f"Encrypted {context.file_size} bytes into {len(context.payload.ciphertext)} bytes",
            algorithm=context.payload.algorithm,
        )
        return context


class StoreStep(PipelineStep):
    stage = Stage.STORE

    def __init__(
        self,
        store: BaseContentStore,
        retry_policy: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._retry_policy = retry_policy
        self._sleep = sleep

    def run(self, context: IngestionContext) -> IngestionContext:
        if context.payload is None or context.classification is None:
            raise ValueError("IngestionContext.payload must be set before storing")
        ciphertext = context.payload.ciphertext
        tags = {
            "type": "encrypted-medical-record",
            "record_type": context.classification.value,
            "uploaded_at": datetime.now(UTC).isoformat(),
        }
        try:
            cid = call_with_retry(
                lambda remaining: self._store.put(ciphertext, tags, timeout=remaining),
                policy=self._retry_policy,
                deadline=context.deadline,
                retry_on=(ContentStoreUnreachableError,),
                description="Content store upload",
                sleep=self._sleep,
            )
        except DeadlineExpired as exc:
            raise DeadlineExceededError(
                "Deadline exceeded while storing ciphertext",
                stage=self.stage,
                cause=exc.last_error or exc,
            ) from exc
        except ContentStoreUnreachableError as exc:
            raise TransientInfraError(
                f"Content store unreachable: {exc}", stage=self.stage, cause=exc
            ) from exc
        except ContentStoreError as exc:
            raise FatalInfraError(
                f"Content store rejected upload: {exc}", stage=self.stage, cause=exc
            ) from exc

        context.cid = cid
        context.advance(PipelineState.STORED, RecordStatus.STORED)
        Log.info("Stored ciphertext", cid=cid)
        return context


class AnchorStep(PipelineStep):
    """Anchors (subject, CID) on the ledger, retrying unreachable-ledger failures.

    A write that was submitted but whose receipt timed out is never sent
    again: later attempts wait on its transaction instead. Otherwise a retry
    first looks for an earlier anchor whose response was lost.
    """

    stage = Stage.ANCHOR

    def __init__(
        self,
        ledger: BaseLedgerAnchor,
        retry_policy: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._ledger = ledger
        self._retry_policy = retry_policy
        self._sleep = sleep

    def run(self, context: IngestionContext) -> IngestionContext:
        if context.subject is None or not context.subject.subject_identity or not context.cid:
            raise ValueError("IngestionContext.subject and cid must be set before anchoring")
        subject_identity = context.subject.subject_identity
        cid = context.cid

        try:
            receipt = call_with_retry(
                lambda remaining: self._attempt(context, subject_identity, cid, remaining),
                policy=self._retry_policy,
                deadline=context.deadline,
                retry_on=(LedgerUnreachableError,),
                description="Ledger anchor",
                before_retry=lambda _exc: self._before_retry(context, subject_identity, cid),
                sleep=self._sleep,
            )
        except DeadlineExpired as exc:
            raise DeadlineExceededError(
                "Deadline exceeded while anchoring" + self._pending_note(context),
                stage=self.stage,
                cause=exc.last_error or exc,
            ) from exc
        except LedgerUnreachableError as exc:
            raise TransientInfraError(
                f"Ledger unreachable: {exc}" + self._pending_note(context),
                stage=self.stage,
                cause=exc,
            ) from exc
        except LedgerError as exc:
            raise FatalInfraError(
                f"Ledger anchoring failed: {exc}", stage=self.stage, cause=exc
            ) from exc

        context.pending_receipt_id = ""
        context.receipt = receipt
        context.advance(PipelineState.ANCHORED, RecordStatus.ANCHORED)
        Log.info("Anchored record on ledger", cid=cid, receipt=receipt.receipt_id)
        return context

    def _attempt(
        self,
        context: IngestionContext,
        subject_identity: str,
        cid: str,
        remaining: float | None,
    ) -> LedgerReceipt:
        try:
            if context.pending_receipt_id:
                return self._ledger.wait_for_receipt(context.pending_receipt_id, timeout=remaining)
            return self._ledger.anchor(subject_identity, cid, timeout=remaining)
        except LedgerUnreachableError as exc:
            if exc.pending_receipt_id:
                context.pending_receipt_id = exc.pending_receipt_id
            raise

    def _before_retry(
        self, context: IngestionContext, subject_identity: str, cid: str
    ) -> LedgerReceipt | None:
        if context.pending_receipt_id:
            return None
        return self._find_earlier_anchor(subject_identity, cid, context.deadline.remaining())

    def _find_earlier_anchor(
        self, subject_identity: str, cid: str, remaining: float | None
    ) -> LedgerReceipt | None:
        """A lost response may hide a successful write; look for it before writing again."""
        try:
            receipt = self._ledger.find_receipt(subject_identity, cid, timeout=remaining)
        except LedgerError as exc:
            Log.warning(
                "Could not check for an earlier anchor; retrying may duplicate the entry",
                cid=cid,
                error=exc,
            )
            return None
        if receipt is not None:
            Log.warning(
                "Earlier anchor attempt was recorded; reusing its receipt",
                cid=cid,
                receipt=receipt.receipt_id,
            )
        return receipt

    @staticmethod
    def _pending_note(context: IngestionContext) -> str:
        if not context.pending_receipt_id:
            return ""
        return f" (transaction {context.pending_receipt_id} may still be mined)"


class PersistStep(PipelineStep):
    stage = Stage.PERSIST

    def __init__(
        self,
        metadata_store: BaseMetadataStore,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._metadata_store = metadata_store
        self._clock = clock

    def run(self, context: IngestionContext) -> IngestionContext:
        if (
            context.subject is None
            or context.classification is None
            or context.payload is None
            or context.receipt is None
        ):
            raise ValueError("IngestionContext must be anchored before persisting")
        if context.deadline.expired():
            raise DeadlineExceededError(
                "Deadline exceeded before the descriptor was saved", stage=self.stage
            )

        descriptor = RecordDescriptor(
            subject_id=context.subject.subject_id,
            subject_identity=context.subject.subject_identity or "",
            submitter_identity=context.submitter_identity,
            classification=context.classification,
            description=context.description,
            file_name=context.file_name,
            file_size=context.file_size,
            mime_type=context.mime_type,
            cid=context.cid,
            ledger_receipt=context.receipt.receipt_id,
            encryption_key=context.payload.key_hex,
            encryption_algorithm=context.payload.algorithm,
            plaintext_sha256=context.plaintext_sha256,
            status=context.status,
            created_at=self._clock(),
        )
        try:
            context.descriptor = self._metadata_store.save(descriptor)
        except DuplicateCidError as exc:
            raise FatalInfraError(
                f"Descriptor already exists: {exc}", stage=self.stage, cause=exc
            ) from exc
        except MetadataStoreError as exc:
            raise TransientInfraError(
                f"Metadata store failed: {exc}", stage=self.stage, cause=exc
            ) from exc

        context.advance(PipelineState.PERSISTED)
        Log.info(f"Saved record {context.descriptor.id}", cid=context.cid)
        return context
