import json
import time

import httpx

from recordvault.logging.logger import Log
from recordvault.storage.base import BaseContentStore
from recordvault.storage.cid import is_valid_cid
from recordvault.storage.exceptions import (
    ContentNotFoundError,
    ContentStoreError,
    ContentStoreUnreachableError,
)
from recordvault.storage.http_errors import raise_for_status, timeout_kwargs


class PinataContentStore(BaseContentStore):
    """Content store backed by the Pinata pinning API.

    Uploads and unpins go through ``api_client`` (which carries credentials);
    downloads go through ``gateway_client`` so credentials never reach the
    public gateway.
    """

    def __init__(
        self,
        *,
        api_client: httpx.Client,
        gateway_client: httpx.Client,
        cid_version: int = 0,
    ) -> None:
        self._api = api_client
        self._gateway = gateway_client
        self._cid_version = cid_version

    def put(
        self,
        ciphertext: bytes,
        tags: dict[str, str],
        *,
        timeout: float | None = None,
    ) -> str:
        name = tags.get("name") or f"medical-record-{int(time.time() * 1000)}"
        metadata = {
            "name": name,
            "keyvalues": {k: str(v) for k, v in tags.items() if k != "name"},
        }
        try:
            response = self._api.post(
                "/pinning/pinFileToIPFS",
                files={"file": (name, ciphertext, "application/octet-stream")},
                data={
                    "pinataMetadata": json.dumps(metadata),
                    "pinataOptions": json.dumps({"cidVersion": self._cid_version}),
                },
                **timeout_kwargs(timeout),
            )
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Pinata upload failed: {exc}") from exc
        raise_for_status(response, "Pinata upload")

        cid = str(self._json(response).get("IpfsHash") or "").strip()
        if not cid:
            raise ContentStoreError("Pinata upload response is missing IpfsHash")
        if not is_valid_cid(cid):
            raise ContentStoreError(f"Pinata returned a malformed CID: {cid!r}")
        Log.info("Pinned ciphertext on Pinata", cid=cid, size=len(ciphertext))
        return cid

    def get(self, cid: str, *, timeout: float | None = None) -> bytes:
        try:
            response = self._gateway.get(f"/ipfs/{cid}", **timeout_kwargs(timeout))
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Gateway download failed: {exc}") from exc
        raise_for_status(response, f"Gateway download of {cid}")
        return response.content

    def unpin(self, cid: str, *, timeout: float | None = None) -> None:
        try:
            response = self._api.delete(f"/pinning/unpin/{cid}", **timeout_kwargs(timeout))
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Pinata unpin failed: {exc}") from exc
        try:
            raise_for_status(response, f"Pinata unpin of {cid}")
        except ContentNotFoundError:
            Log.warning("Unpin requested for a CID Pinata does not hold", cid=cid)
            return
        Log.info("Unpinned ciphertext from Pinata", cid=cid)

    def verify_credentials(self) -> None:
        try:
            response = self._api.get("/data/testAuthentication")
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Pinata unreachable: {exc}") from exc
        raise_for_status(response, "Pinata authentication check")
        Log.info("Pinata authentication successful")

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, object]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise ContentStoreError(f"Pinata returned invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ContentStoreError("Pinata response must be a JSON object")
        return payload
