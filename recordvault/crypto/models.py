from dataclasses import dataclass


@dataclass(frozen=True)
class EncryptedPayload:
    """Ciphertext (IV-prefixed) plus the per-file key that produced it."""

    ciphertext: bytes
    key: bytes
    algorithm: str

    @property
    def key_hex(self) -> str:
        """At-rest representation of the key."""
        return self.key.hex()

    def __repr__(self) -> str:
        return (
            f"EncryptedPayload(algorithm={self.algorithm!r}, "
            f"ciphertext=<{len(self.ciphertext)} bytes>, key=<redacted>)"
        )
