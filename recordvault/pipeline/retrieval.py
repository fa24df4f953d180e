import hashlib
import hmac
import time
from collections.abc import Callable

from recordvault.config.settings import Settings
from recordvault.crypto.base import BaseCipher
from recordvault.crypto.exceptions import CipherError
from recordvault.crypto.factory import CipherFactory
from recordvault.database.base import BaseMetadataStore
from recordvault.database.exceptions import DescriptorNotFoundError, MetadataStoreError
from recordvault.logging.logger import Log
from recordvault.pipeline.collaborators import Collaborators
from recordvault.pipeline.exceptions import (
    DeadlineExceededError,
    FatalInfraError,
    IntegrityFailure,
    RecordNotFoundError,
    TransientInfraError,
)
from recordvault.pipeline.models import RecordDescriptor, RetrievedRecord, Stage
from recordvault.pipeline.retry import Deadline, DeadlineExpired, RetryPolicy, call_with_retry
from recordvault.storage.base import BaseContentStore
from recordvault.storage.exceptions import (
    ContentNotFoundError,
    ContentStoreError,
    ContentStoreUnreachableError,
)


class RetrievalOrchestrator:
    """Reverses ingestion for an already authorized reader.

    Flow: find descriptor -> fetch ciphertext by CID -> decrypt -> hand back.
    Read-only, so nothing is compensated. A record that cannot be fetched or
    decrypted means storage or metadata corruption and is never retried.
    """

    def __init__(
        self,
        *,
        metadata_store: BaseMetadataStore,
        store: BaseContentStore,
        retry_policy: RetryPolicy,
        cipher_for: Callable[[str], BaseCipher] = CipherFactory.create,
        timeout_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._metadata_store = metadata_store
        self._store = store
        self._retry_policy = retry_policy
        self._cipher_for = cipher_for
        self._timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._clock = clock

    def retrieve(self, record_id: int, requester_identity: str) -> RetrievedRecord:
        """Fetch and decrypt a record.

        Authorization of requester_identity happens before this call; the
        identity is only logged here.

        Raises:
            PipelineError: a subclass naming the failed stage and its cause.
        """
        deadline = Deadline(self._timeout_seconds, clock=self._clock)
        Log.info(f"Retrieving record {record_id}", requester=requester_identity)

        descriptor = self._find_descriptor(record_id)
        ciphertext = self._fetch(descriptor, deadline)
        plaintext = self._decrypt(descriptor, ciphertext)
        del ciphertext

        Log.info(
            f"Decrypted record {record_id}: {len(plaintext)} bytes",
            cid=descriptor.cid,
            requester=requester_identity,
        )
        return RetrievedRecord(descriptor, plaintext)

    def _find_descriptor(self, record_id: int) -> RecordDescriptor:
        try:
            return self._metadata_store.find_by_id(record_id)
        except DescriptorNotFoundError as exc:
            raise RecordNotFoundError(
                f"Record {record_id} not found", stage=Stage.LOOKUP, cause=exc, retryable=False
            ) from exc
        except MetadataStoreError as exc:
            raise TransientInfraError(
                f"Metadata store failed: {exc}", stage=Stage.LOOKUP, cause=exc, retryable=True
            ) from exc

    def _fetch(self, descriptor: RecordDescriptor, deadline: Deadline) -> bytes:
        try:
            return call_with_retry(
                lambda remaining: self._store.get(descriptor.cid, timeout=remaining),
                policy=self._retry_policy,
                deadline=deadline,
                retry_on=(ContentStoreUnreachableError,),
                description=f"Content store download of {descriptor.cid}",
                sleep=self._sleep,
            )
        except DeadlineExpired as exc:
            raise DeadlineExceededError(
                "Deadline exceeded while fetching ciphertext",
                stage=Stage.FETCH,
                cause=exc.last_error or exc,
                retryable=True,
            ) from exc
        except ContentNotFoundError as exc:
            raise IntegrityFailure(
                f"Record {descriptor.id} points at CID {descriptor.cid}, which the store "
                "does not hold",
                stage=Stage.FETCH,
                cause=exc,
                retryable=False,
            ) from exc
        except ContentStoreUnreachableError as exc:
            raise TransientInfraError(
                f"Content store unreachable: {exc}", stage=Stage.FETCH, cause=exc, retryable=True
            ) from exc
        except ContentStoreError as exc:
            raise FatalInfraError(
                f"Content store rejected download: {exc}",
                stage=Stage.FETCH,
                cause=exc,
                retryable=False,
            ) from exc

    def _decrypt(self, descriptor: RecordDescriptor, ciphertext: bytes) -> bytes:
        try:
            cipher = self._cipher_for(descriptor.encryption_algorithm)
            key = bytes.fromhex(descriptor.encryption_key)
            plaintext = cipher.decrypt(ciphertext, key)
        except (CipherError, ValueError) as exc:
            raise IntegrityFailure(
                f"Record {descriptor.id} could not be decrypted: {exc}",
                stage=Stage.DECRYPT,
                cause=exc,
                retryable=False,
            ) from exc

        if descriptor.plaintext_sha256:
            digest = hashlib.sha256(plaintext).hexdigest()
            if not hmac.compare_digest(digest, descriptor.plaintext_sha256):
                raise IntegrityFailure(
                    f"Record {descriptor.id} decrypted to content that does not match "
                    "its recorded hash",
                    stage=Stage.DECRYPT,
                    retryable=False,
                )
        return plaintext


def build_retrieval_orchestrator(
    settings: Settings,
    collaborators: Collaborators,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> RetrievalOrchestrator:
    return RetrievalOrchestrator(
        metadata_store=collaborators.metadata_store,
        store=collaborators.store,
        retry_policy=RetryPolicy.from_settings(settings),
        timeout_seconds=settings.pipeline_timeout_seconds,
        sleep=sleep,
    )
