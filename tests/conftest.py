import pytest

from recordvault.config.settings import Settings
from recordvault.database.memory_store import InMemoryIdentityProvider, InMemoryMetadataStore
from recordvault.ledger.memory_adapter import InMemoryLedger
from recordvault.pipeline.collaborators import Collaborators
from recordvault.pipeline.models import SubjectIdentity, UploadedFile
from recordvault.storage.memory_adapter import InMemoryContentStore

PATIENT_ADDRESS = "0x" + "ab" * 20
HOSPITAL_ADDRESS = "0x" + "cd" * 20


@pytest.fixture()
def consented_subject() -> SubjectIdentity:
    return SubjectIdentity(
        subject_id=1, email="patient@example.com", subject_identity=PATIENT_ADDRESS
    )


@pytest.fixture()
def unconsented_subject() -> SubjectIdentity:
    return SubjectIdentity(subject_id=2, email="no-wallet@example.com", subject_identity=None)


@pytest.fixture()
def identity_provider(
    consented_subject: SubjectIdentity, unconsented_subject: SubjectIdentity
) -> InMemoryIdentityProvider:
    return InMemoryIdentityProvider([consented_subject, unconsented_subject])


@pytest.fixture()
def content_store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture()
def ledger() -> InMemoryLedger:
    return InMemoryLedger(submitter_identity=HOSPITAL_ADDRESS)


@pytest.fixture()
def metadata_store() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture()
def collaborators(
    content_store: InMemoryContentStore,
    ledger: InMemoryLedger,
    metadata_store: InMemoryMetadataStore,
    identity_provider: InMemoryIdentityProvider,
) -> Collaborators:
    return Collaborators(
        store=content_store,
        ledger=ledger,
        metadata_store=metadata_store,
        identity_provider=identity_provider,
    )


@pytest.fixture()
def memory_settings() -> Settings:
    return Settings(
        content_store_provider="memory",
        ledger_provider="memory",
        retry_max_attempts=3,
        retry_backoff_base_seconds=0.5,
        retry_backoff_cap_seconds=8.0,
        pipeline_timeout_seconds=120.0,
    )


@pytest.fixture()
def pdf_upload() -> UploadedFile:
    return UploadedFile(
        file_name="blood-panel.pdf",
        mime_type="application/pdf",
        content=b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n" * 20,
    )
