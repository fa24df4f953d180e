from typing import Any

import httpx

from recordvault.storage.exceptions import (
    ContentNotFoundError,
    ContentStoreAuthError,
    ContentStoreError,
    ContentStoreUnreachableError,
)


def timeout_kwargs(timeout: float | None) -> dict[str, Any]:
    """Per-request timeout override; None keeps the client default."""
    return {} if timeout is None else {"timeout": timeout}


def raise_for_status(response: httpx.Response, action: str) -> None:
    """Map an HTTP error status onto the content store exception hierarchy."""
    status = response.status_code
    if status < 400:
        return
    detail = f"{action} failed: HTTP {status} {response.text[:200]}"
    if status in (401, 403):
        raise ContentStoreAuthError(detail)
    if status == 404:
        raise ContentNotFoundError(detail)
    if status == 429 or status >= 500:
        raise ContentStoreUnreachableError(detail)
    raise ContentStoreError(detail)
