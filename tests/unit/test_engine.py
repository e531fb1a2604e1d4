"""
Unit tests for the ExecutionEngine — submission outcomes and sequence ownership.
"""

import pytest

from fakes import (
    CHAIN_ID,
    CONTRACT,
    GWEI,
    USER_KEY,
    FakeLedger,
    make_domain,
    make_signed_intent,
    make_stored_intent,
    make_wallet,
    nonce_error,
)
from intent_relayer.core.abi import EXECUTE_SWAP
from intent_relayer.core.address import ZERO_ADDRESS
from intent_relayer.core.ledger import LedgerConnectionError, LedgerError, ReceiptTimeout
from intent_relayer.crypto.typed_data import sign_intent, signed_intent_hash
from intent_relayer.errors import SequenceDesync, SubmissionFailure, SubmissionFailureKind
from intent_relayer.relayer.engine import ExecutionEngine, ExecutionStatus
from intent_relayer.relayer.guard import ExecutionQuote

QUOTE = ExecutionQuote(fee_level=20 * GWEI, gas_limit=200_000)


def _make_engine(tx_count=0):
    ledger = FakeLedger()
    ledger.tx_count = tx_count
    wallet = make_wallet()
    engine = ExecutionEngine(ledger, wallet)
    engine.initialize()
    return engine, ledger, wallet


class TestInitialize:

    def test_loads_context(self):
        engine, _, _ = _make_engine(tx_count=7)
        assert engine.chain_id == CHAIN_ID
        assert engine.sequence == 7
        assert engine.domain == make_domain()

    def test_submit_before_initialize(self):
        engine = ExecutionEngine(FakeLedger(), make_wallet())
        with pytest.raises(RuntimeError, match="initialize"):
            engine.fulfill_stored(make_stored_intent(), QUOTE)


class TestFulfillStored:

    def test_confirmed(self):
        engine, ledger, wallet = _make_engine(tx_count=3)
        result = engine.fulfill_stored(make_stored_intent(7), QUOTE)

        assert result.status is ExecutionStatus.CONFIRMED
        assert result.success
        assert result.block_number == ledger.block
        assert engine.sequence == 4
        assert engine.is_stored_terminal(7)

        tx = wallet.signed[0]
        assert tx["nonce"] == 3
        assert tx["to"] == CONTRACT
        assert tx["gas"] == QUOTE.gas_limit
        assert tx["gasPrice"] == QUOTE.fee_level
        assert tx["chainId"] == CHAIN_ID
        assert tx["value"] == 0

    def test_consecutive_sequences(self):
        engine, _, wallet = _make_engine()
        engine.fulfill_stored(make_stored_intent(1), QUOTE)
        engine.fulfill_stored(make_stored_intent(2), QUOTE)
        assert [tx["nonce"] for tx in wallet.signed] == [0, 1]

    def test_sequence_error_resyncs(self):
        engine, ledger, _ = _make_engine(tx_count=3)
        ledger.send_error = nonce_error()
        ledger.tx_count = 5

        result = engine.fulfill_stored(make_stored_intent(7), QUOTE)

        assert result.status is ExecutionStatus.RETRYABLE
        assert isinstance(result.error, SequenceDesync)
        assert result.error.submitted == 3
        assert result.error.resynced == 5
        assert engine.sequence == 5
        assert not engine.is_stored_terminal(7)

    def test_network_error_is_retryable(self):
        engine, ledger, _ = _make_engine(tx_count=3)
        ledger.send_error = LedgerConnectionError("connection refused")

        result = engine.fulfill_stored(make_stored_intent(7), QUOTE)

        assert result.retryable
        assert result.error.kind is SubmissionFailureKind.NETWORK_ERROR
        assert engine.sequence == 3
        assert not engine.is_stored_terminal(7)

    def test_rejected_submission_is_retryable(self):
        engine, ledger, _ = _make_engine(tx_count=3)
        ledger.send_error = LedgerError("execution reverted: Intent expired")

        result = engine.fulfill_stored(make_stored_intent(7), QUOTE)

        assert result.status is ExecutionStatus.RETRYABLE
        assert isinstance(result.error, SubmissionFailure)
        assert result.error.kind is SubmissionFailureKind.REVERTED
        assert result.error.retryable
        assert engine.sequence == 3
        assert not engine.is_stored_terminal(7)

    def test_mined_revert_resyncs_counter(self):
        engine, ledger, _ = _make_engine(tx_count=3)
        ledger.receipt_status = 0

        result = engine.fulfill_stored(make_stored_intent(7), QUOTE)

        assert result.status is ExecutionStatus.RETRYABLE
        assert result.error.kind is SubmissionFailureKind.REVERTED
        assert result.tx_hash is not None
        assert result.block_number == ledger.block
        # the fake ledger counted the mined transaction
        assert engine.sequence == 4
        assert not engine.is_stored_terminal(7)

    def test_receipt_timeout(self):
        engine, ledger, _ = _make_engine(tx_count=3)
        ledger.receipt_error = ReceiptTimeout("not mined")

        result = engine.fulfill_stored(make_stored_intent(7), QUOTE)

        assert result.retryable
        assert result.tx_hash is not None
        assert engine.sequence == 4
        assert engine.submitted_count == 1


class TestExecuteSigned:

    def test_confirmed_marks_hash(self):
        engine, _, wallet = _make_engine()
        intent = make_signed_intent()
        signature = sign_intent(USER_KEY, intent, engine.domain)

        result = engine.execute_signed(intent, signature, QUOTE)

        assert result.success
        assert result.key == signed_intent_hash(intent)
        assert engine.is_signed_terminal(signed_intent_hash(intent))
        assert wallet.signed[0]["value"] == 0

    def test_native_asset_carries_value(self):
        engine, _, wallet = _make_engine()
        intent = make_signed_intent(from_token=ZERO_ADDRESS, amount_in=5 * 10**17)
        signature = sign_intent(USER_KEY, intent, engine.domain)

        engine.execute_signed(intent, signature, QUOTE)

        assert wallet.signed[0]["value"] == 5 * 10**17

    def test_calldata_selector(self):
        engine, _, wallet = _make_engine()
        intent = make_signed_intent()
        signature = sign_intent(USER_KEY, intent, engine.domain)

        engine.execute_signed(intent, signature, QUOTE)

        assert wallet.signed[0]["data"].startswith("0x" + EXECUTE_SWAP.selector.hex())

    def test_estimate_swap(self):
        engine, ledger, _ = _make_engine()
        intent = make_signed_intent()
        signature = sign_intent(USER_KEY, intent, engine.domain)
        assert engine.estimate_swap(intent, signature) == ledger.gas_estimate
