from abc import ABC, abstractmethod

from recordvault.pipeline.models import RecordDescriptor, SubjectIdentity


class BaseMetadataStore(ABC):
    """Contract for durable record descriptor storage."""

    @abstractmethod
    def save(self, descriptor: RecordDescriptor) -> RecordDescriptor:
        """Insert a descriptor and return it with its assigned id.

        Raises:
            DuplicateCidError: if the CID is already recorded.
            MetadataStoreError: on any other failure.
        """

    @abstractmethod
    def find_by_id(self, record_id: int) -> RecordDescriptor:
        """Raises DescriptorNotFoundError if absent."""

    @abstractmethod
    def find_by_cid(self, cid: str) -> RecordDescriptor:
        """Raises DescriptorNotFoundError if absent."""

    @abstractmethod
    def list_by_subject(self, subject_identity: str) -> list[RecordDescriptor]:
        """Return a subject's descriptors, newest first."""


class BaseIdentityProvider(ABC):
    """Contract for resolving the patient a record is submitted for."""

    @abstractmethod
    def resolve_subject(self, identifier: str) -> SubjectIdentity:
        """Resolve a patient by email or numeric id.

        Raises:
            SubjectNotFoundError: if no patient matches.
        """
