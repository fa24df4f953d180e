"""In-memory content store.

No network calls. Useful for local development and tests, and as a template
for new store adapters: implement BaseContentStore and register the provider
in ContentStoreFactory.
"""

from recordvault.storage.base import BaseContentStore
from recordvault.storage.cid import compute_raw_cid
from recordvault.storage.exceptions import ContentNotFoundError


class InMemoryContentStore(BaseContentStore):
    """Holds ciphertext in a dict keyed by its raw-codec CIDv1."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._tags: dict[str, dict[str, str]] = {}
        self.unpinned: list[str] = []

    def put(
        self,
        ciphertext: bytes,
        tags: dict[str, str],
        *,
        timeout: float | None = None,
    ) -> str:
        _ = timeout
        cid = compute_raw_cid(ciphertext)
        self._objects[cid] = bytes(ciphertext)
        self._tags[cid] = dict(tags)
        return cid

    def get(self, cid: str, *, timeout: float | None = None) -> bytes:
        _ = timeout
        try:
            return self._objects[cid]
        except KeyError:
            raise ContentNotFoundError(f"CID {cid} not found") from None

    def unpin(self, cid: str, *, timeout: float | None = None) -> None:
        _ = timeout
        self.unpinned.append(cid)
        self._objects.pop(cid, None)
        self._tags.pop(cid, None)

    def verify_credentials(self) -> None:
        return None

    def tags_for(self, cid: str) -> dict[str, str]:
        return dict(self._tags.get(cid, {}))

    def __contains__(self, cid: object) -> bool:
        return cid in self._objects
