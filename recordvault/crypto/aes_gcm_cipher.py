import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from recordvault.crypto.base import KEY_SIZE, BaseCipher
from recordvault.crypto.exceptions import CorruptPayloadError
from recordvault.crypto.models import EncryptedPayload

_TAG_SIZE = 16


class AesGcmCipher(BaseCipher):
    """AES-256-GCM authenticated encryption.

    Wire format: ``nonce (12 bytes) || ciphertext || tag (16 bytes)``.
    """

    ALGORITHM = "aes-256-gcm"
    IV_SIZE = 12

    def encrypt(self, plaintext: bytes) -> EncryptedPayload:
        key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
        nonce = os.urandom(self.IV_SIZE)
        body = AESGCM(key).encrypt(nonce, plaintext, None)
        return EncryptedPayload(ciphertext=nonce + body, key=key, algorithm=self.ALGORITHM)

    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        self._check_key(key)
        nonce, body = self._split_iv(ciphertext)
        if len(body) < _TAG_SIZE:
            raise CorruptPayloadError("ciphertext is missing its authentication tag")
        try:
            return AESGCM(key).decrypt(nonce, body, None)
        except InvalidTag as exc:
            raise CorruptPayloadError("authentication tag mismatch") from exc
