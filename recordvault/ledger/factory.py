from web3 import Web3

from recordvault.config.settings import Settings
from recordvault.ledger.base import BaseLedgerAnchor
from recordvault.ledger.memory_adapter import InMemoryLedger
from recordvault.ledger.web3_adapter import Web3LedgerAnchor


class LedgerAnchorFactory:
    """Creates the configured ledger anchor adapter."""

    PROVIDERS = ("web3", "memory")

    @classmethod
    def create(cls, settings: Settings) -> BaseLedgerAnchor:
        provider = settings.ledger_provider.lower()
        if provider == "memory":
            return InMemoryLedger()
        if provider == "web3":
            w3 = Web3(
                Web3.HTTPProvider(
                    settings.ledger_rpc_url,
                    request_kwargs={"timeout": settings.ledger_timeout_seconds},
                )
            )
            return Web3LedgerAnchor(
                w3=w3,
                contract_address=settings.ledger_contract_address,
                private_key=settings.ledger_private_key,
                receipt_timeout_seconds=settings.ledger_receipt_timeout_seconds,
                from_block=settings.ledger_from_block,
                log_chunk_blocks=settings.ledger_log_chunk_blocks,
            )
        raise ValueError(
            f"Unknown ledger provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )
