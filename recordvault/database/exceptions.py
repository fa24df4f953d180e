class MetadataStoreError(Exception):
    """Base exception for metadata and identity store failures."""


class DescriptorNotFoundError(MetadataStoreError):
    """Raised when no record descriptor matches the lookup."""


class DuplicateCidError(MetadataStoreError):
    """Raised when a descriptor with the same CID already exists."""


class SubjectNotFoundError(MetadataStoreError):
    """Raised when no patient matches the subject identifier."""
