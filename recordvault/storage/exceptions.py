class ContentStoreError(Exception):
    """Base exception for content-addressed store failures."""


class ContentStoreUnreachableError(ContentStoreError):
    """Raised on network or service unavailability. Safe to retry."""


class ContentStoreAuthError(ContentStoreError):
    """Raised when the store rejects our credentials. Not retryable."""


class ContentNotFoundError(ContentStoreError):
    """Raised when a CID is unknown to the store."""
