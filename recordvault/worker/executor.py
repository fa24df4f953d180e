from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from types import TracebackType

from recordvault.logging.logger import Log
from recordvault.pipeline.exceptions import PipelineError
from recordvault.pipeline.ingestion import IngestionOrchestrator
from recordvault.pipeline.models import RecordDescriptor, RetrievedRecord, UploadedFile
from recordvault.pipeline.retrieval import RetrievalOrchestrator


@dataclass(frozen=True)
class IngestRequest:
    subject_identifier: str
    classification: str
    upload: UploadedFile
    submitter_identity: str
    description: str = ""


@dataclass(frozen=True)
class IngestOutcome:
    """Result of one invocation in a batch; exactly one of descriptor/error is set."""

    file_name: str
    descriptor: RecordDescriptor | None = None
    error: PipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PipelineExecutor:
    """Runs each ingest/retrieve invocation on its own worker thread.

    Invocations share no mutable state, so a slow store or ledger call only
    holds up its own invocation.
    """

    def __init__(
        self,
        ingestion: IngestionOrchestrator,
        retrieval: RetrievalOrchestrator,
        max_workers: int,
    ) -> None:
        self._ingestion = ingestion
        self._retrieval = retrieval
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recordvault")

    def submit_ingest(self, request: IngestRequest) -> "Future[RecordDescriptor]":
        return self._pool.submit(
            self._ingestion.ingest,
            request.subject_identifier,
            request.classification,
            request.upload,
            request.submitter_identity,
            request.description,
        )

    def submit_retrieve(
        self, record_id: int, requester_identity: str
    ) -> "Future[RetrievedRecord]":
        return self._pool.submit(self._retrieval.retrieve, record_id, requester_identity)

    def ingest_many(self, requests: Iterable[IngestRequest]) -> list[IngestOutcome]:
        """Ingest a batch concurrently; failures are collected, not raised."""
        submitted = [(request, self.submit_ingest(request)) for request in requests]
        outcomes: list[IngestOutcome] = []
        for request, future in submitted:
            file_name = request.upload.file_name
            try:
                outcomes.append(IngestOutcome(file_name=file_name, descriptor=future.result()))
            except PipelineError as exc:
                outcomes.append(IngestOutcome(file_name=file_name, error=exc))
        failed = sum(1 for o in outcomes if not o.ok)
        Log.info(f"Batch finished: {len(outcomes) - failed} ingested, {failed} failed")
        return outcomes

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "PipelineExecutor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()
