from unittest.mock import MagicMock

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from recordvault.ledger.exceptions import (
    InsufficientResourcesError,
    InvalidSubjectError,
    LedgerError,
    LedgerRejectedError,
    LedgerUnreachableError,
)
from recordvault.ledger.web3_adapter import Web3LedgerAnchor
from recordvault.pipeline.context import IngestionContext
from recordvault.pipeline.exceptions import TransientInfraError
from recordvault.pipeline.models import SubjectIdentity
from recordvault.pipeline.retry import Deadline, RetryPolicy
from recordvault.pipeline.steps import AnchorStep

PATIENT = "0x" + "ab" * 20
HOSPITAL = Web3.to_checksum_address("0x" + "cd" * 20)
CONTRACT = "0x" + "12" * 20
CID = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"
TX_HASH = b"\x01" * 32
TX_HEX = "0x" + "01" * 32


def _make_anchor(**kwargs) -> tuple[Web3LedgerAnchor, MagicMock, MagicMock]:
    """Return (anchor, mock_w3, mock_contract) with a successful anchoring path wired up."""
    w3 = MagicMock()
    w3.eth.account.from_key.return_value.address = HOSPITAL
    w3.eth.chain_id = 1043
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.block_number = 10
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 1,
        "blockNumber": 42,
        "transactionHash": TX_HASH,
        "gasUsed": 51234,
    }
    contract = w3.eth.contract.return_value
    anchor = Web3LedgerAnchor(
        w3=w3,
        contract_address=CONTRACT,
        private_key="0x" + "11" * 32,
        receipt_timeout_seconds=60,
        **kwargs,
    )
    return anchor, w3, contract


class TestConstruction:
    def test_requires_contract_address(self) -> None:
        with pytest.raises(ValueError, match="ledger_contract_address"):
            Web3LedgerAnchor(w3=MagicMock(), contract_address="", private_key="0x11")

    def test_requires_private_key(self) -> None:
        with pytest.raises(ValueError, match="ledger_private_key"):
            Web3LedgerAnchor(w3=MagicMock(), contract_address=CONTRACT, private_key="")

    def test_submitter_identity_is_account_address(self) -> None:
        anchor, _, _ = _make_anchor()
        assert anchor.submitter_identity == HOSPITAL


class TestAnchor:
    def test_returns_transaction_hash_as_receipt(self) -> None:
        anchor, _, _ = _make_anchor()

        receipt = anchor.anchor(PATIENT, CID)

        assert receipt.receipt_id == "0x" + "01" * 32
        assert receipt.block_number == 42

    def test_calls_add_record_with_checksummed_patient(self) -> None:
        anchor, _, contract = _make_anchor()

        anchor.anchor(PATIENT, CID)

        contract.functions.addRecord.assert_called_once_with(
            Web3.to_checksum_address(PATIENT), CID
        )
        tx_params = contract.functions.addRecord.return_value.build_transaction.call_args.args[0]
        assert tx_params["from"] == HOSPITAL
        assert tx_params["nonce"] == 7
        assert tx_params["chainId"] == 1043

    def test_caps_receipt_wait_by_remaining_time(self) -> None:
        anchor, w3, _ = _make_anchor()

        anchor.anchor(PATIENT, CID, timeout=5)

        assert w3.eth.wait_for_transaction_receipt.call_args.kwargs["timeout"] == 5

    def test_reverted_receipt_raises_rejected(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 42,
            "transactionHash": TX_HASH,
        }
        with pytest.raises(LedgerRejectedError):
            anchor.anchor(PATIENT, CID)

    def test_receipt_timeout_raises_unreachable(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")
        with pytest.raises(LedgerUnreachableError, match="may still be mined") as exc_info:
            anchor.anchor(PATIENT, CID)
        assert exc_info.value.pending_receipt_id == TX_HEX

    def test_connection_error_raises_unreachable(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.send_raw_transaction.side_effect = RequestsConnectionError("rpc down")
        with pytest.raises(LedgerUnreachableError) as exc_info:
            anchor.anchor(PATIENT, CID)
        assert exc_info.value.pending_receipt_id is None

    def test_insufficient_funds_raises_insufficient_resources(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.send_raw_transaction.side_effect = ValueError(
            {"code": -32000, "message": "insufficient funds for gas * price + value"}
        )
        with pytest.raises(InsufficientResourcesError):
            anchor.anchor(PATIENT, CID)

    def test_contract_revert_raises_rejected(self) -> None:
        anchor, _, contract = _make_anchor()
        contract.functions.addRecord.return_value.build_transaction.side_effect = (
            ContractLogicError("execution reverted: Only hospitals can add records")
        )
        with pytest.raises(LedgerRejectedError):
            anchor.anchor(PATIENT, CID)

    def test_unknown_failure_raises_base_ledger_error(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.send_raw_transaction.side_effect = RuntimeError("nonce too low")
        with pytest.raises(LedgerError) as exc_info:
            anchor.anchor(PATIENT, CID)
        assert type(exc_info.value) is LedgerError

    def test_invalid_subject_is_rejected_before_submission(self) -> None:
        anchor, w3, _ = _make_anchor()
        with pytest.raises(InvalidSubjectError):
            anchor.anchor("not-an-address", CID)
        w3.eth.send_raw_transaction.assert_not_called()


class TestQueries:
    def test_query_by_subject_returns_cids(self) -> None:
        anchor, _, contract = _make_anchor()
        contract.functions.getPatientRecords.return_value.call.return_value = ["cid-1", "cid-2"]

        assert anchor.query_by_subject(PATIENT) == ["cid-1", "cid-2"]

    def test_find_receipt_matches_cid_in_events(self) -> None:
        anchor, _, contract = _make_anchor()
        contract.events.RecordAdded.return_value.get_logs.return_value = [
            {
                "args": {"patient": PATIENT, "ipfsHash": "other", "timestamp": 1700000000},
                "transactionHash": b"\x02" * 32,
                "blockNumber": 3,
            },
            {
                "args": {"patient": PATIENT, "ipfsHash": CID, "timestamp": 1700000100},
                "transactionHash": b"\x03" * 32,
                "blockNumber": 4,
            },
        ]

        receipt = anchor.find_receipt(PATIENT, CID)

        assert receipt is not None
        assert receipt.receipt_id == "0x" + "03" * 32
        assert receipt.block_number == 4
        get_logs_kwargs = contract.events.RecordAdded.return_value.get_logs.call_args.kwargs
        assert get_logs_kwargs["argument_filters"] == {
            "patient": Web3.to_checksum_address(PATIENT)
        }

    def test_find_receipt_returns_none_without_match(self) -> None:
        anchor, _, contract = _make_anchor()
        contract.events.RecordAdded.return_value.get_logs.return_value = []
        assert anchor.find_receipt(PATIENT, CID) is None


class TestVerifyConnection:
    def test_passes_with_funded_wallet(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.get_balance.return_value = 10**18
        anchor.verify_connection()

    def test_empty_wallet_raises_insufficient_resources(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.get_balance.return_value = 0
        with pytest.raises(InsufficientResourcesError):
            anchor.verify_connection()


class TestLogScan:
    def _event(self, cid: str, block: int) -> dict:
        return {
            "args": {"patient": PATIENT, "ipfsHash": cid, "timestamp": 1700000000},
            "transactionHash": bytes([block]) * 32,
            "blockNumber": block,
        }

    def test_scans_newest_block_window_first(self) -> None:
        anchor, w3, contract = _make_anchor(log_chunk_blocks=5000)
        w3.eth.block_number = 12000
        get_logs = contract.events.RecordAdded.return_value.get_logs
        get_logs.side_effect = [[], [self._event(CID, 9)], []]

        receipt = anchor.find_receipt(PATIENT, CID)

        assert receipt is not None
        assert receipt.block_number == 9
        windows = [(c.kwargs["from_block"], c.kwargs["to_block"]) for c in get_logs.call_args_list]
        assert windows == [(7001, 12000), (2001, 7000)]

    def test_stops_at_configured_from_block(self) -> None:
        anchor, w3, contract = _make_anchor(from_block=9000, log_chunk_blocks=5000)
        w3.eth.block_number = 12000
        get_logs = contract.events.RecordAdded.return_value.get_logs
        get_logs.return_value = []

        assert anchor.find_receipt(PATIENT, CID) is None
        windows = [(c.kwargs["from_block"], c.kwargs["to_block"]) for c in get_logs.call_args_list]
        assert windows == [(9000, 12000)]

    def test_scan_stops_when_timeout_elapses(self) -> None:
        now = [100.0]

        def get_logs(**_kwargs):
            now[0] += 3
            return []

        anchor, w3, contract = _make_anchor(log_chunk_blocks=10, clock=lambda: now[0])
        w3.eth.block_number = 1000
        contract.events.RecordAdded.return_value.get_logs.side_effect = get_logs

        with pytest.raises(LedgerUnreachableError, match="ran out of time"):
            anchor.find_receipt(PATIENT, CID, timeout=5)
        assert contract.events.RecordAdded.return_value.get_logs.call_count == 2

    def test_count_by_subject_uses_record_count(self) -> None:
        anchor, _, contract = _make_anchor()
        contract.functions.getRecordCount.return_value.call.return_value = 3

        assert anchor.count_by_subject(PATIENT) == 3
        contract.functions.getRecordCount.assert_called_once_with(
            Web3.to_checksum_address(PATIENT)
        )


class TestPendingTransaction:
    def _stored_context(self) -> IngestionContext:
        context = IngestionContext(
            subject_identifier="patient@example.com",
            classification_value="lab-test",
            submitter_identity=HOSPITAL,
            deadline=Deadline(None),
        )
        context.subject = SubjectIdentity(
            subject_id=1, email="patient@example.com", subject_identity=PATIENT
        )
        context.cid = CID
        return context

    def test_wait_for_receipt_does_not_resubmit(self) -> None:
        anchor, w3, _ = _make_anchor()

        receipt = anchor.wait_for_receipt(TX_HEX, timeout=5)

        assert receipt.receipt_id == TX_HEX
        w3.eth.send_raw_transaction.assert_not_called()
        w3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HEX, timeout=5)

    def test_receipt_timeout_is_followed_by_a_wait_not_a_second_send(self) -> None:
        anchor, w3, contract = _make_anchor()
        w3.eth.send_raw_transaction.side_effect = [TX_HASH, b"\x02" * 32]
        mined = w3.eth.wait_for_transaction_receipt.return_value
        w3.eth.wait_for_transaction_receipt.side_effect = [TimeExhausted("pending"), mined]
        contract.events.RecordAdded.return_value.get_logs.return_value = []

        context = AnchorStep(anchor, RetryPolicy(), sleep=lambda _s: None).run(
            self._stored_context()
        )

        assert w3.eth.send_raw_transaction.call_count == 1
        waited = [c.args[0] for c in w3.eth.wait_for_transaction_receipt.call_args_list]
        assert waited == [TX_HEX, TX_HEX]
        assert context.receipt.receipt_id == TX_HEX
        assert context.pending_receipt_id == ""
        contract.events.RecordAdded.return_value.get_logs.assert_not_called()

    def test_still_pending_after_retries_names_the_transaction(self) -> None:
        anchor, w3, _ = _make_anchor()
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("pending")
        context = self._stored_context()

        with pytest.raises(TransientInfraError, match="may still be mined"):
            AnchorStep(anchor, RetryPolicy(), sleep=lambda _s: None).run(context)

        assert w3.eth.send_raw_transaction.call_count == 1
        assert context.pending_receipt_id == TX_HEX
