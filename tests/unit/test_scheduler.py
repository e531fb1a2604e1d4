"""
Unit tests for IntentRelayer — startup checks, cycles and push handling.
"""

import logging
import time

import pytest

from fakes import (
    CONTRACT,
    ETHER,
    GWEI,
    RELAYER_KEY,
    USER_KEY,
    FakeLedger,
    make_domain,
    make_signed_intent,
    make_stored_intent,
    make_wallet,
    nonce_error,
)
from intent_relayer.core import abi
from intent_relayer.core.config import RelayerConfig
from intent_relayer.core.ledger import LedgerConnectionError, LedgerError
from intent_relayer.crypto.typed_data import sign_intent
from intent_relayer.errors import FatalInitError, FatalInitKind, RejectionReason
from intent_relayer.relayer.pipeline import IntentState
from intent_relayer.relayer.scheduler import IntentRelayer
from intent_relayer.relayer.sources import QueuedSignedIntentSource


def _make_config(**overrides):
    fields = {"rpc_url": "http://node", "private_key": RELAYER_KEY, "contract_address": CONTRACT}
    fields.update(overrides)
    return RelayerConfig(**fields)


def _make_relayer(ledger=None, initialize=True, **kwargs):
    ledger = ledger or FakeLedger()
    relayer = IntentRelayer(ledger, make_wallet(), _make_config(poll_interval_ms=20), **kwargs)
    if initialize:
        relayer.initialize()
    return relayer, ledger


# ==============================================================================
# Startup
# ==============================================================================


class TestInitialize:

    def test_no_contract_code(self):
        ledger = FakeLedger()
        ledger.code = "0x"
        relayer, _ = _make_relayer(ledger, initialize=False)
        with pytest.raises(FatalInitError) as exc:
            relayer.initialize()
        assert exc.value.kind is FatalInitKind.CONTRACT_NOT_FOUND

    def test_zero_balance(self):
        ledger = FakeLedger()
        ledger.balance = 0
        relayer, _ = _make_relayer(ledger, initialize=False)
        with pytest.raises(FatalInitError) as exc:
            relayer.initialize()
        assert exc.value.kind is FatalInitKind.INSUFFICIENT_BALANCE

    def test_low_balance_warns(self, caplog):
        ledger = FakeLedger()
        ledger.balance = 10**15
        relayer, _ = _make_relayer(ledger, initialize=False)
        with caplog.at_level(logging.WARNING, logger="intent_relayer.scheduler"):
            relayer.initialize()
        assert "Low balance" in caplog.text

    def test_unauthorized_warns(self, caplog):
        ledger = FakeLedger()
        ledger.authorized = False
        relayer, _ = _make_relayer(ledger, initialize=False)
        with caplog.at_level(logging.WARNING, logger="intent_relayer.scheduler"):
            relayer.initialize()
        assert "not an authorized fulfiller" in caplog.text

    def test_authorization_read_failure_is_not_fatal(self):
        ledger = FakeLedger()
        ledger.authorized = LedgerError("execution reverted")
        relayer, _ = _make_relayer(ledger, initialize=False)
        relayer.initialize()
        assert relayer.validator.domain == make_domain()

    def test_from_config_bad_key(self):
        with pytest.raises(FatalInitError) as exc:
            IntentRelayer.from_config(_make_config(private_key="0x1234"))
        assert exc.value.kind is FatalInitKind.MISSING_CONFIG

    def test_contract_info(self):
        relayer, ledger = _make_relayer()
        ledger.next_id = 9
        info = relayer.contract_info()
        assert info.next_intent_id == 9
        assert info.fee_bps == 30
        assert info.relayer_address == relayer.wallet.address


# ==============================================================================
# Cycles
# ==============================================================================


class TestCycle:

    def test_requires_initialize(self):
        relayer, _ = _make_relayer(initialize=False)
        with pytest.raises(RuntimeError, match="initialize"):
            relayer.run_cycle()

    def test_fulfills_scanned_intents(self):
        relayer, ledger = _make_relayer()
        ledger.add_intent(make_stored_intent(1))
        ledger.add_intent(make_stored_intent(2, fulfilled=True))

        report = relayer.run_cycle()

        assert report.scanned == 2
        assert report.count(IntentState.CONFIRMED) == 1
        assert report.count(IntentState.REJECTED) == 1
        assert len(ledger.sent) == 1

    def test_second_cycle_skips_terminal(self):
        relayer, ledger = _make_relayer()
        ledger.add_intent(make_stored_intent(1))
        relayer.run_cycle()
        report = relayer.run_cycle()
        assert report.scanned == 0
        assert len(ledger.sent) == 1

    def test_paused_contract_skips(self):
        relayer, ledger = _make_relayer()
        ledger.add_intent(make_stored_intent(1))
        ledger.is_paused = True

        report = relayer.run_cycle()

        assert report.paused
        assert ledger.sent == []

    def test_signed_intake(self):
        relayer, ledger = _make_relayer()
        intent = make_signed_intent(amount_in=ETHER, min_amount_out=ETHER // 2)
        signature = sign_intent(USER_KEY, intent, make_domain())

        intent_hash = relayer.submit_signed(intent, signature)
        report = relayer.run_cycle()

        assert report.signed == 1
        assert report.outcomes[0].key == intent_hash
        assert report.outcomes[0].state is IntentState.CONFIRMED

    def test_external_signed_source(self):
        source = QueuedSignedIntentSource()
        relayer, ledger = _make_relayer(signed_source=source)
        intent = make_signed_intent(amount_in=ETHER, min_amount_out=ETHER // 2)
        source.submit(intent, sign_intent(USER_KEY, intent, make_domain()))

        report = relayer.run_cycle()

        assert report.signed == 1
        assert len(ledger.sent) == 1

    def test_status(self):
        relayer, _ = _make_relayer()
        status = relayer.status()
        assert status["address"] == relayer.wallet.address
        assert status["sequence"] == 0
        assert status["running"] is False
        assert status["registry"] == {"stored": 0, "signed": 0}


# ==============================================================================
# Push notifications and lifecycle
# ==============================================================================


def _created_log(intent_id: int, block: int) -> dict:
    return {
        "topics": [abi.event_topic("IntentCreated"), "0x" + f"{intent_id:064x}"],
        "data": "0x",
        "blockNumber": hex(block),
        "transactionHash": "0x" + "cd" * 32,
    }


class TestPush:

    def test_created_event_enqueues(self):
        relayer, ledger = _make_relayer()
        relayer._subscribe()
        relayer.watcher.poll_once()

        ledger.block = 101
        ledger.logs = [_created_log(4, 101)]
        relayer.watcher.poll_once()

        assert relayer.pipeline.pending() == 1
        assert ledger.sent == []  # the watcher thread never executes

    def test_push_and_scan_execute_once(self):
        relayer, ledger = _make_relayer()
        ledger.add_intent(make_stored_intent(1))
        relayer._subscribe()
        relayer.watcher.poll_once()
        ledger.block = 101
        ledger.logs = [_created_log(1, 101)]
        relayer.watcher.poll_once()

        relayer.run_cycle()

        assert len(ledger.sent) == 1

    def test_no_enqueue_after_stop(self):
        relayer, ledger = _make_relayer()
        relayer._subscribe()
        relayer.watcher.poll_once()
        relayer.stop()

        ledger.block = 101
        ledger.logs = [_created_log(4, 101)]
        relayer.watcher.poll_once()

        assert relayer.pipeline.pending() == 0

    def test_start_and_stop(self):
        relayer, ledger = _make_relayer()
        ledger.add_intent(make_stored_intent(1))

        relayer.start()
        deadline = time.monotonic() + 5
        while not ledger.sent and time.monotonic() < deadline:
            time.sleep(0.01)
        relayer.stop(timeout=5)

        assert len(ledger.sent) == 1
        assert not relayer.running
        assert relayer.cycles >= 1


# ==============================================================================
# Retries across cycles
# ==============================================================================


def _signed(relayer, **overrides):
    intent = make_signed_intent(amount_in=ETHER, min_amount_out=ETHER // 2, **overrides)
    return relayer.submit_signed(intent, sign_intent(USER_KEY, intent, make_domain()))


class TestSignedRetry:

    def test_gas_price_rejection_retried_next_cycle(self):
        relayer, ledger = _make_relayer()
        intent_hash = _signed(relayer)
        ledger.fee_level = 60 * GWEI

        first = relayer.run_cycle()
        assert [(o.state, o.reason) for o in first.outcomes] == [(IntentState.REJECTED, "GasPriceExceeded")]
        assert relayer.status()["retrying"] == 1

        ledger.fee_level = 1 * GWEI
        second = relayer.run_cycle()

        assert second.retried == 1
        assert [o.key for o in second.outcomes] == [intent_hash]
        assert second.outcomes[0].state is IntentState.CONFIRMED
        assert len(ledger.sent) == 1
        assert relayer.status()["retrying"] == 0

    def test_network_failure_retried_next_cycle(self):
        relayer, ledger = _make_relayer()
        _signed(relayer)
        ledger.send_error = LedgerConnectionError("connection reset")

        first = relayer.run_cycle()
        assert first.outcomes[0].state is IntentState.RETRYABLE_FAILURE

        ledger.send_error = None
        relayer.run_cycle()

        assert len(ledger.sent) == 1

    def test_reverted_submission_retried_next_cycle(self):
        relayer, ledger = _make_relayer()
        _signed(relayer)
        ledger.send_error = LedgerError("execution reverted: insufficient liquidity")

        first = relayer.run_cycle()
        assert first.outcomes[0].state is IntentState.RETRYABLE_FAILURE

        ledger.send_error = None
        relayer.run_cycle()

        assert len(ledger.sent) == 1

    def test_sequence_desync_retried_with_fresh_sequence(self):
        relayer, ledger = _make_relayer()
        _signed(relayer)
        ledger.send_error = nonce_error()
        ledger.tx_count = 5

        relayer.run_cycle()
        ledger.send_error = None
        relayer.run_cycle()

        assert len(ledger.sent) == 1
        assert relayer.wallet.signed[-1]["nonce"] == 5

    def test_dropped_once_past_deadline(self):
        now = [time.time()]
        relayer, ledger = _make_relayer(clock=lambda: now[0])
        _signed(relayer, deadline=int(now[0]) + 100)
        ledger.fee_level = 60 * GWEI
        relayer.run_cycle()

        now[0] += 200
        ledger.fee_level = 1 * GWEI
        second = relayer.run_cycle()

        assert second.outcomes[0].reason == RejectionReason.EXPIRED.value
        assert relayer.status()["retrying"] == 0
        assert relayer.run_cycle().outcomes == []
        assert ledger.sent == []

    def test_validation_rejection_not_retried(self):
        relayer, ledger = _make_relayer()
        intent = make_signed_intent(amount_in=ETHER, min_amount_out=ETHER // 2)
        relayer.submit_signed(intent, "0x" + "00" * 65)

        relayer.run_cycle()

        assert relayer.status()["retrying"] == 0
        assert relayer.run_cycle().outcomes == []


# ==============================================================================
# Unexpected errors
# ==============================================================================


class FailingSource:

    def poll_pending_signed_intents(self):
        raise RuntimeError("feed unavailable")


class TestUnexpectedErrors:

    def test_failing_signed_source_does_not_abort_cycle(self, caplog):
        relayer, ledger = _make_relayer(signed_source=FailingSource())
        ledger.add_intent(make_stored_intent(1))

        with caplog.at_level(logging.ERROR, logger="intent_relayer.scheduler"):
            report = relayer.run_cycle()

        assert report.count(IntentState.CONFIRMED) == 1
        assert "Signed intent source failed" in caplog.text

    def test_loop_survives_non_rpc_error(self):
        relayer, ledger = _make_relayer()
        ledger.is_paused = ValueError("Non-hexadecimal digit found")

        relayer.start()
        try:
            deadline = time.monotonic() + 5
            while relayer.cycles < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert relayer.running

            ledger.is_paused = False
            ledger.add_intent(make_stored_intent(1))
            deadline = time.monotonic() + 5
            while not ledger.sent and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            relayer.stop(timeout=5)

        assert len(ledger.sent) == 1
