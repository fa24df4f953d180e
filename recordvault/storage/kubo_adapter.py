import json

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

_NOT_FOUND_MARKERS = ("not found", "no link named", "invalid path")
_NOT_PINNED_MARKER = "not pinned"


class KuboContentStore(BaseContentStore):
    """Content store backed by a Kubo (go-ipfs) node's RPC API."""

    def __init__(self, *, client: httpx.Client, cid_version: int = 0) -> None:
        self._client = client
        self._cid_version = cid_version

    def put(
        self,
        ciphertext: bytes,
        tags: dict[str, str],
        *,
        timeout: float | None = None,
    ) -> str:
        name = tags.get("name") or "medical-record"
        try:
            response = self._client.post(
                "/api/v0/add",
                params={
                    "pin": "true",
                    "cid-version": str(self._cid_version),
                    "wrap-with-directory": "false",
                    "progress": "false",
                },
                files={"file": (name, ciphertext, "application/octet-stream")},
                **timeout_kwargs(timeout),
            )
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Kubo add failed: {exc}") from exc
        raise_for_status(response, "Kubo add")

        cid = self._parse_add_response(response.text)
        Log.info("Added ciphertext to Kubo", cid=cid, size=len(ciphertext))
        return cid

    def get(self, cid: str, *, timeout: float | None = None) -> bytes:
        try:
            response = self._client.post(
                "/api/v0/cat", params={"arg": cid}, **timeout_kwargs(timeout)
            )
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Kubo cat failed: {exc}") from exc
        if response.status_code == 500 and self._error_matches(response, _NOT_FOUND_MARKERS):
            raise ContentNotFoundError(f"Kubo does not hold {cid}")
        raise_for_status(response, f"Kubo cat of {cid}")
        return response.content

    def unpin(self, cid: str, *, timeout: float | None = None) -> None:
        try:
            response = self._client.post(
                "/api/v0/pin/rm", params={"arg": cid}, **timeout_kwargs(timeout)
            )
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Kubo pin/rm failed: {exc}") from exc
        if response.status_code == 500 and self._error_matches(response, (_NOT_PINNED_MARKER,)):
            Log.warning("Unpin requested for a CID Kubo has not pinned", cid=cid)
            return
        raise_for_status(response, f"Kubo pin/rm of {cid}")
        Log.info("Unpinned ciphertext from Kubo", cid=cid)

    def verify_credentials(self) -> None:
        try:
            response = self._client.post("/api/v0/version")
        except httpx.TransportError as exc:
            raise ContentStoreUnreachableError(f"Kubo unreachable: {exc}") from exc
        raise_for_status(response, "Kubo version check")
        try:
            version = response.json().get("Version", "unknown")
        except (ValueError, AttributeError) as exc:
            raise ContentStoreError(f"Kubo version check returned malformed JSON: {exc}") from exc
        Log.info("Kubo node reachable", version=version)

    @staticmethod
    def _parse_add_response(raw: str) -> str:
        """Kubo's add endpoint returns NDJSON; the last object describes the root."""
        last_obj: dict[str, object] | None = None
        for line in raw.strip().splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(obj, dict):
                last_obj = obj
        if last_obj is None:
            raise ContentStoreError(f"Kubo add returned no JSON object: {raw[:200]}")
        cid = str(last_obj.get("Hash") or "").strip()
        if not cid:
            raise ContentStoreError(f"Kubo add response is missing Hash: {last_obj!r}")
        if not is_valid_cid(cid):
            raise ContentStoreError(f"Kubo add returned a malformed CID: {cid!r}")
        return cid

    @staticmethod
    def _error_matches(response: httpx.Response, markers: tuple[str, ...]) -> bool:
        try:
            message = str(response.json().get("Message", ""))
        except ValueError:
            message = response.text
        message = message.lower()
        return any(marker in message for marker in markers)
