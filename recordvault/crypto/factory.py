from recordvault.config.settings import Settings
from recordvault.crypto.aes_cbc_cipher import AesCbcCipher
from recordvault.crypto.aes_gcm_cipher import AesGcmCipher
from recordvault.crypto.base import BaseCipher


class CipherFactory:
    """Creates the cipher engine for an algorithm name."""

    ADAPTERS: dict[str, type[BaseCipher]] = {
        AesCbcCipher.ALGORITHM: AesCbcCipher,
        AesGcmCipher.ALGORITHM: AesGcmCipher,
    }

    @classmethod
    def create(cls, algorithm: str) -> BaseCipher:
        adapter_cls = cls.ADAPTERS.get(algorithm.lower())
        if adapter_cls is None:
            raise ValueError(
                f"Unknown cipher algorithm '{algorithm}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()

    @classmethod
    def from_settings(cls, settings: Settings) -> BaseCipher:
        return cls.create(settings.cipher_algorithm)
