import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from recordvault.ledger.abi import RECORD_REGISTRY_ABI
from recordvault.ledger.base import BaseLedgerAnchor
from recordvault.ledger.exceptions import (
    InsufficientResourcesError,
    InvalidSubjectError,
    LedgerError,
    LedgerRejectedError,
    LedgerUnreachableError,
)
from recordvault.ledger.models import LedgerReceipt
from recordvault.logging.logger import Log


class Web3LedgerAnchor(BaseLedgerAnchor):
    """Anchors records through an EVM record-registry contract.

    Transactions are signed locally with the hospital account and submitted
    as raw transactions; the receipt's transaction hash is the anchor receipt.
    """

    def __init__(
        self,
        *,
        w3: Web3,
        contract_address: str,
        private_key: str,
        receipt_timeout_seconds: float = 120,
        from_block: int = 0,
        log_chunk_blocks: int = 5000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not contract_address:
            raise ValueError("ledger_contract_address is required for ledger_provider=web3")
        if not private_key:
            raise ValueError("ledger_private_key is required for ledger_provider=web3")
        if log_chunk_blocks < 1:
            raise ValueError("ledger_log_chunk_blocks must be at least 1")
        self._w3 = w3
        self._contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=RECORD_REGISTRY_ABI,
        )
        self._account = w3.eth.account.from_key(private_key)
        self._receipt_timeout = receipt_timeout_seconds
        self._from_block = from_block
        self._log_chunk_blocks = log_chunk_blocks
        self._clock = clock

    @property
    def submitter_identity(self) -> str:
        return str(self._account.address)

    def anchor(
        self,
        subject_identity: str,
        cid: str,
        *,
        timeout: float | None = None,
    ) -> LedgerReceipt:
        patient = self._checksum(subject_identity)
        try:
            tx = self._contract.functions.addRecord(patient, cid).build_transaction(
                {
                    "from": self._account.address,
                    "nonce": self._w3.eth.get_transaction_count(
                        self._account.address, "pending"
                    ),
                    "chainId": self._w3.eth.chain_id,
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            raise self._classify(exc, "submit") from exc

        tx_hex = Web3.to_hex(tx_hash)
        Log.info("Ledger transaction sent, waiting for receipt", tx=tx_hex, cid=cid)
        return self._await_receipt(tx_hex, timeout)

    def wait_for_receipt(
        self, receipt_id: str, *, timeout: float | None = None
    ) -> LedgerReceipt:
        Log.info("Waiting again for pending ledger transaction", tx=receipt_id)
        return self._await_receipt(receipt_id, timeout)

    def query_by_subject(self, subject_identity: str) -> list[str]:
        patient = self._checksum(subject_identity)
        try:
            records = self._contract.functions.getPatientRecords(patient).call()
        except Exception as exc:
            raise self._classify(exc, "query") from exc
        return [str(cid) for cid in records]

    def count_by_subject(self, subject_identity: str) -> int:
        patient = self._checksum(subject_identity)
        try:
            return int(self._contract.functions.getRecordCount(patient).call())
        except Exception as exc:
            raise self._classify(exc, "count") from exc

    def find_receipt(
        self, subject_identity: str, cid: str, *, timeout: float | None = None
    ) -> LedgerReceipt | None:
        """Scan RecordAdded logs newest block window first, stopping at ``timeout``."""
        patient = self._checksum(subject_identity)
        expires_at = None if timeout is None else self._clock() + timeout
        event = self._contract.events.RecordAdded()
        try:
            to_block = int(self._w3.eth.block_number)
        except Exception as exc:
            raise self._classify(exc, "log scan") from exc

        while to_block >= self._from_block:
            if expires_at is not None and self._clock() >= expires_at:
                raise LedgerUnreachableError(
                    f"Log scan for {cid} ran out of time at block {to_block}"
                )
            from_block = max(self._from_block, to_block - self._log_chunk_blocks + 1)
            try:
                logs = event.get_logs(
                    from_block=from_block,
                    to_block=to_block,
                    argument_filters={"patient": patient},
                )
            except Exception as exc:
                raise self._classify(exc, "log scan") from exc

            for log in logs:
                args: Any = log["args"]
                if args["ipfsHash"] != cid:
                    continue
                return LedgerReceipt(
                    receipt_id=Web3.to_hex(log["transactionHash"]),
                    block_number=int(log["blockNumber"]),
                    anchored_at=datetime.fromtimestamp(int(args["timestamp"]), tz=UTC),
                )
            to_block = from_block - 1
        return None

    def verify_connection(self) -> None:
        try:
            chain_id = self._w3.eth.chain_id
            balance = self._w3.eth.get_balance(self._account.address)
        except Exception as exc:
            raise self._classify(exc, "connect") from exc
        Log.info(
            "Connected to ledger",
            chain_id=chain_id,
            wallet=self._account.address,
            balance=Web3.from_wei(balance, "ether"),
        )
        if balance == 0:
            raise InsufficientResourcesError(
                f"Anchoring wallet {self._account.address} has no funds for gas"
            )

    def _await_receipt(self, tx_hex: str, timeout: float | None) -> LedgerReceipt:
        wait = self._receipt_timeout if timeout is None else min(self._receipt_timeout, timeout)
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hex, timeout=wait)
        except TimeExhausted as exc:
            raise LedgerUnreachableError(
                f"No receipt for {tx_hex} within {wait:.0f}s; it may still be mined",
                pending_receipt_id=tx_hex,
            ) from exc
        except Exception as exc:
            raise self._classify(exc, "receipt") from exc

        if receipt["status"] != 1:
            raise LedgerRejectedError(f"Ledger reverted transaction {tx_hex}")

        Log.info(
            "Ledger transaction confirmed",
            tx=tx_hex,
            block=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed"),
        )
        return LedgerReceipt(
            receipt_id=Web3.to_hex(receipt["transactionHash"]),
            block_number=int(receipt["blockNumber"]),
            anchored_at=datetime.now(UTC),
        )

    @staticmethod
    def _checksum(subject_identity: str) -> str:
        if not Web3.is_address(subject_identity):
            raise InvalidSubjectError(f"Invalid subject address '{subject_identity}'")
        return Web3.to_checksum_address(subject_identity)

    @staticmethod
    def _classify(exc: Exception, action: str) -> LedgerError:
        message = str(exc)
        lowered = message.lower()
        if isinstance(exc, ContractLogicError) or "revert" in lowered:
            return LedgerRejectedError(f"Ledger rejected {action}: {message}")
        if "insufficient funds" in lowered:
            return InsufficientResourcesError(f"Insufficient funds for {action}: {message}")
        if isinstance(exc, (RequestException, ConnectionError, TimeoutError, TimeExhausted)):
            return LedgerUnreachableError(f"Ledger unreachable during {action}: {message}")
        return LedgerError(f"Ledger {action} failed: {message}")
