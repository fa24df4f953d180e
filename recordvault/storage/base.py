from abc import ABC, abstractmethod


class BaseContentStore(ABC):
    """Contract for content-addressed ciphertext stores.

    Adapters move opaque bytes only; they never interpret or decrypt content.
    """

    @abstractmethod
    def put(
        self,
        ciphertext: bytes,
        tags: dict[str, str],
        *,
        timeout: float | None = None,
    ) -> str:
        """Store ciphertext and return its CID.

        Uploading identical bytes twice yields the same CID.

        Raises:
            ContentStoreUnreachableError: on network/service errors.
            ContentStoreAuthError: if credentials are rejected.
        """

    @abstractmethod
    def get(self, cid: str, *, timeout: float | None = None) -> bytes:
        """Fetch the ciphertext addressed by cid.

        Raises:
            ContentNotFoundError: if the CID is unknown.
            ContentStoreUnreachableError: on network/service errors.
            ContentStoreAuthError: if credentials are rejected.
        """

    @abstractmethod
    def unpin(self, cid: str, *, timeout: float | None = None) -> None:
        """Release a stored object. Releasing an unknown CID is not an error."""

    @abstractmethod
    def verify_credentials(self) -> None:
        """Check that the store is reachable and accepts our credentials."""
