import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from recordvault.crypto.base import KEY_SIZE, BaseCipher
from recordvault.crypto.exceptions import CorruptPayloadError
from recordvault.crypto.models import EncryptedPayload


class AesCbcCipher(BaseCipher):
    """AES-256-CBC with PKCS7 padding.

    Provides confidentiality only: there is no integrity tag, so a tampered
    body that still unpads cleanly is not detected here.
    """

    ALGORITHM = "aes-256-cbc"
    IV_SIZE = 16

    def encrypt(self, plaintext: bytes) -> EncryptedPayload:
        key = os.urandom(KEY_SIZE)
        iv = os.urandom(self.IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        body = encryptor.update(padded) + encryptor.finalize()
        return EncryptedPayload(ciphertext=iv + body, key=key, algorithm=self.ALGORITHM)

    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        self._check_key(key)
        iv, body = self._split_iv(ciphertext)
        if not body or len(body) % (algorithms.AES.block_size // 8) != 0:
            raise CorruptPayloadError(
                f"ciphertext body of {len(body)} bytes is not a whole number of blocks"
            )
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise CorruptPayloadError("invalid padding after decryption") from exc
