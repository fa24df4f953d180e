from dataclasses import dataclass

from recordvault.config.settings import Settings
from recordvault.database.base import BaseIdentityProvider, BaseMetadataStore
from recordvault.database.repositories.record_repository import RecordRepository
from recordvault.database.repositories.subject_repository import SubjectRepository
from recordvault.ledger.base import BaseLedgerAnchor
from recordvault.ledger.factory import LedgerAnchorFactory
from recordvault.storage.base import BaseContentStore
from recordvault.storage.factory import ContentStoreFactory


@dataclass(frozen=True)
class Collaborators:
    """External systems the pipeline writes to, created once at startup."""

    store: BaseContentStore
    ledger: BaseLedgerAnchor
    metadata_store: BaseMetadataStore
    identity_provider: BaseIdentityProvider

    @classmethod
    def from_settings(cls, settings: Settings) -> "Collaborators":
        """Build the configured store and ledger adapters plus the database repositories."""
        return cls(
            store=ContentStoreFactory.create(settings),
            ledger=LedgerAnchorFactory.create(settings),
            metadata_store=RecordRepository(),
            identity_provider=SubjectRepository(),
        )
