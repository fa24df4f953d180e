"""CID helpers.

Validation is a shape check, not a multiformats parser:
  - CIDv0 (base58btc) starts with "Qm" and is 46 characters long.
  - CIDv1 (base32 lowercase) starts with "b" and uses the RFC4648 alphabet a-z2-7.
"""

import base64
import hashlib
import re

_CIDV0_RE = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")
_CIDV1_BASE32_RE = re.compile(r"^b[a-z2-7]{10,}$")

_CID_VERSION_1 = b"\x01"
_CODEC_RAW = b"\x55"
_MULTIHASH_SHA2_256 = b"\x12\x20"


def compute_raw_cid(data: bytes) -> str:
    """Return the CIDv1 (raw codec, sha2-256, base32) of data."""
    digest = hashlib.sha256(data).digest()
    binary = _CID_VERSION_1 + _CODEC_RAW + _MULTIHASH_SHA2_256 + digest
    return "b" + base64.b32encode(binary).decode("ascii").lower().rstrip("=")


def is_valid_cid(cid: str, max_len: int = 128) -> bool:
    value = (cid or "").strip()
    if not value or len(value) > max_len:
        return False
    return bool(_CIDV0_RE.match(value) or _CIDV1_BASE32_RE.match(value))
