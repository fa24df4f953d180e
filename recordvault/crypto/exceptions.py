class CipherError(Exception):
    """Base exception for all cipher engine errors."""


class KeyLengthInvalidError(CipherError):
    """Raised when a key is not exactly 32 bytes."""


class IVLengthInvalidError(CipherError):
    """Raised when ciphertext is too short to carry its IV or nonce."""


class CorruptPayloadError(CipherError):
    """Raised when decrypted data fails padding or authentication checks."""
