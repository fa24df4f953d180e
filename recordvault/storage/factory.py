import httpx

from recordvault.config.settings import Settings
from recordvault.storage.base import BaseContentStore
from recordvault.storage.kubo_adapter import KuboContentStore
from recordvault.storage.memory_adapter import InMemoryContentStore
from recordvault.storage.pinata_adapter import PinataContentStore


class ContentStoreFactory:
    """Creates the configured content store adapter."""

    PROVIDERS = ("pinata", "kubo", "memory")

    @classmethod
    def create(cls, settings: Settings) -> BaseContentStore:
        provider = settings.content_store_provider.lower()
        if provider == "memory":
            return InMemoryContentStore()
        if provider == "pinata":
            return PinataContentStore(
                api_client=httpx.Client(
                    base_url=settings.pinata_api_url,
                    headers=cls._pinata_auth_headers(settings),
                    timeout=settings.content_store_timeout_seconds,
                ),
                gateway_client=httpx.Client(
                    base_url=settings.pinata_gateway_url,
                    timeout=settings.content_store_timeout_seconds,
                    follow_redirects=True,
                ),
            )
        if provider == "kubo":
            return KuboContentStore(
                client=httpx.Client(
                    base_url=settings.kubo_api_url,
                    timeout=settings.content_store_timeout_seconds,
                ),
            )
        raise ValueError(
            f"Unknown content store provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )

    @classmethod
    def _pinata_auth_headers(cls, settings: Settings) -> dict[str, str]:
        if settings.pinata_jwt:
            return {"Authorization": f"Bearer {settings.pinata_jwt}"}
        if settings.pinata_api_key and settings.pinata_secret_key:
            return {
                "pinata_api_key": settings.pinata_api_key,
                "pinata_secret_api_key": settings.pinata_secret_key,
            }
        raise ValueError(
            "pinata_jwt or pinata_api_key + pinata_secret_key is required for "
            "content_store_provider=pinata"
        )
