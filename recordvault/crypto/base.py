from abc import ABC, abstractmethod

from recordvault.crypto.exceptions import IVLengthInvalidError, KeyLengthInvalidError
from recordvault.crypto.models import EncryptedPayload

KEY_SIZE = 32


class BaseCipher(ABC):
    """Contract for all symmetric cipher adapters.

    Ciphertext is always framed as ``iv_or_nonce || body``; the prefix length is
    adapter specific and exposed as ``IV_SIZE``.
    """

    ALGORITHM: str = ""
    IV_SIZE: int = 16

    @abstractmethod
    def encrypt(self, plaintext: bytes) -> EncryptedPayload:
        """Encrypt plaintext under a freshly generated 256-bit key.

        Returns:
            EncryptedPayload with IV-prefixed ciphertext and the key.

        Raises:
            CipherError: on any failure.
        """

    @abstractmethod
    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        """Split the IV prefix and decrypt the remainder.

        Raises:
            KeyLengthInvalidError: if key is not 32 bytes.
            IVLengthInvalidError: if ciphertext is shorter than the IV.
            CorruptPayloadError: if padding or authentication fails.
        """

    def _check_key(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise KeyLengthInvalidError(
                f"{self.ALGORITHM} key must be {KEY_SIZE} bytes, got {len(key)}"
            )

    def _split_iv(self, ciphertext: bytes) -> tuple[bytes, bytes]:
        if len(ciphertext) < self.IV_SIZE:
            raise IVLengthInvalidError(
                f"ciphertext of {len(ciphertext)} bytes is shorter than "
                f"the {self.IV_SIZE}-byte IV"
            )
        return ciphertext[: self.IV_SIZE], ciphertext[self.IV_SIZE :]
