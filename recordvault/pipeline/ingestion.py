import time
from collections.abc import Callable

from recordvault.config.settings import Settings
from recordvault.crypto.base import BaseCipher
from recordvault.crypto.factory import CipherFactory
from recordvault.logging.logger import Log
from recordvault.pipeline.collaborators import Collaborators
from recordvault.pipeline.context import IngestionContext, PipelineStep
from recordvault.pipeline.exceptions import FatalInfraError, PartialCommitError, PipelineError
from recordvault.pipeline.models import RecordClassification, RecordDescriptor, UploadedFile
from recordvault.pipeline.retry import Deadline, RetryPolicy
from recordvault.pipeline.steps import (
    AnchorStep,
    EncryptStep,
    PersistStep,
    StoreStep,
    ValidateRequestStep,
)
from recordvault.storage.base import BaseContentStore
from recordvault.storage.exceptions import ContentStoreError


class IngestionOrchestrator:
    """Turns a raw upload into an encrypted, stored, anchored, persisted record.

    Pipeline: validate -> encrypt -> store -> anchor -> persist.

    Once the ciphertext is stored, any later failure releases it again
    (best effort), unless a ledger write for it may still be mined. A ledger
    anchor is never rolled back; if persisting fails after anchoring, the
    anchor is logged as an orphan for reconciliation.
    """

    def __init__(
        self,
        *,
        steps: list[PipelineStep],
        store: BaseContentStore,
        timeout_seconds: float | None = None,
        compensation_timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._steps = steps
        self._store = store
        self._timeout_seconds = timeout_seconds
        self._compensation_timeout_seconds = compensation_timeout_seconds
        self._clock = clock

    def ingest(
        self,
        subject_identifier: str,
        classification: str | RecordClassification | None,
        upload: UploadedFile | None,
        submitter_identity: str,
        description: str = "",
    ) -> RecordDescriptor:
        """Run the full ingestion pipeline for one upload.

        Raises:
            PipelineError: a subclass naming the failed stage and its cause.
        """
        context = IngestionContext(
            subject_identifier=subject_identifier,
            classification_value=classification,
            submitter_identity=submitter_identity,
            deadline=Deadline(self._timeout_seconds, clock=self._clock),
            upload=upload,
            description=description or "",
        )
        Log.info("Starting ingestion", submitter=submitter_identity)

        step: PipelineStep | None = None
        try:
            for step in self._steps:
                context = step.run(context)
        except PipelineError as exc:
            raise self._fail(context, exc)
        except Exception as exc:
            stage = step.stage if step is not None else self._steps[0].stage
            raise self._fail(
                context,
                FatalInfraError(f"Unexpected error during {stage}: {exc}", stage=stage, cause=exc),
            ) from exc
        finally:
            context.discard_buffers()

        if context.descriptor is None:
            raise RuntimeError("ingestion pipeline finished without a descriptor")
        Log.info(
            f"Ingestion complete for record {context.descriptor.id}",
            cid=context.descriptor.cid,
            receipt=context.descriptor.ledger_receipt,
        )
        return context.descriptor

    def _fail(self, context: IngestionContext, failure: PipelineError) -> PipelineError:
        context.fail()
        failure.trail = tuple(context.trail)
        if context.pending_receipt_id:
            Log.error(
                "Ledger write still pending; ciphertext kept pinned for reconciliation",
                cid=context.cid,
                tx=context.pending_receipt_id,
            )
        elif context.cid:
            failure = self._compensate(context, failure)
        if context.receipt is not None:
            Log.error(
                "Ledger anchor has no descriptor and needs reconciliation",
                cid=context.cid,
                receipt=context.receipt.receipt_id,
            )
        Log.error(
            f"Ingestion failed at stage {failure.stage}: {failure}",
            error=type(failure).__name__,
            retryable=failure.retryable,
            trail="->".join(state.value for state in failure.trail),
        )
        return failure

    def _compensate(self, context: IngestionContext, failure: PipelineError) -> PipelineError:
        remaining = context.deadline.remaining()
        if remaining is not None and remaining <= 0:
            remaining = self._compensation_timeout_seconds
        try:
            self._store.unpin(context.cid, timeout=remaining)
        except ContentStoreError as exc:
            Log.error(
                "Compensation failed; ciphertext left pinned without a descriptor",
                cid=context.cid,
                stage=failure.stage,
                error=exc,
                trail="->".join(state.value for state in failure.trail),
            )
            return PartialCommitError(
                f"Stage {failure.stage} failed and releasing {context.cid} failed too: {exc}",
                failure=failure,
                compensation_cause=exc,
            )
        Log.warning(
            "Released stored ciphertext after failure", cid=context.cid, stage=failure.stage
        )
        return failure


def build_ingestion_orchestrator(
    settings: Settings,
    collaborators: Collaborators,
    *,
    cipher: BaseCipher | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> IngestionOrchestrator:
    """Build an IngestionOrchestrator with the standard step sequence."""
    retry_policy = RetryPolicy.from_settings(settings)
    steps: list[PipelineStep] = [
        ValidateRequestStep(collaborators.identity_provider, settings.max_upload_bytes),
        EncryptStep(cipher or CipherFactory.from_settings(settings)),
        StoreStep(collaborators.store, retry_policy, sleep=sleep),
        AnchorStep(collaborators.ledger, retry_policy, sleep=sleep),
        PersistStep(collaborators.metadata_store),
    ]
    return IngestionOrchestrator(
        steps=steps,
        store=collaborators.store,
        timeout_seconds=settings.pipeline_timeout_seconds,
        compensation_timeout_seconds=settings.compensation_timeout_seconds,
    )
