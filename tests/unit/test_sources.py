"""
Unit tests for intent sources and the dedup registry.
"""

import pytest

from fakes import FakeLedger, make_signed_intent
from intent_relayer.relayer.registry import DedupRegistry
from intent_relayer.relayer.sources import (
    NullSignedIntentSource,
    QueuedSignedIntentSource,
    StoredIntentScanner,
)


class TestScanner:

    def test_window_newest_first(self):
        ledger = FakeLedger()
        ledger.next_id = 8
        scanner = StoredIntentScanner(ledger, window=3)
        assert scanner.scan() == [7, 6, 5]

    def test_window_clamped_at_one(self):
        ledger = FakeLedger()
        ledger.next_id = 3
        scanner = StoredIntentScanner(ledger, window=100)
        assert scanner.scan() == [2, 1]

    def test_no_intents_yet(self):
        ledger = FakeLedger()
        ledger.next_id = 1
        assert StoredIntentScanner(ledger).scan() == []

    def test_skips_terminal(self):
        ledger = FakeLedger()
        ledger.next_id = 6
        scanner = StoredIntentScanner(ledger, window=10)
        assert scanner.scan(is_terminal=lambda i: i % 2 == 0) == [5, 3, 1]

    def test_bad_window(self):
        with pytest.raises(ValueError, match="positive"):
            StoredIntentScanner(FakeLedger(), window=0)


class TestSignedSources:

    def test_null_source(self):
        assert list(NullSignedIntentSource().poll_pending_signed_intents()) == []

    def test_queued_source_drains(self):
        source = QueuedSignedIntentSource()
        intent = make_signed_intent()
        source.submit(intent, "0xsig")
        assert len(source) == 1
        assert source.poll_pending_signed_intents() == [(intent, "0xsig")]
        assert source.poll_pending_signed_intents() == []

    def test_queued_source_bounded(self):
        source = QueuedSignedIntentSource(maxlen=2)
        for nonce in range(3):
            source.submit(make_signed_intent(nonce=nonce), f"0x{nonce}")
        pending = source.poll_pending_signed_intents()
        assert [sig for _, sig in pending] == ["0x1", "0x2"]


class TestDedupRegistry:

    def test_mark_stored(self):
        registry = DedupRegistry()
        assert registry.mark_stored(42)
        assert not registry.mark_stored(42)
        assert registry.is_stored_terminal(42)
        assert not registry.is_stored_terminal(43)

    def test_signed_case_insensitive(self):
        registry = DedupRegistry()
        registry.mark_signed("0xABCDEF")
        assert registry.is_signed_terminal("0xabcdef")
        assert not registry.mark_signed("0xabcdef")

    def test_stats(self):
        registry = DedupRegistry()
        registry.mark_stored(1)
        registry.mark_stored(2)
        registry.mark_signed("0x01")
        assert registry.stats() == {"stored": 2, "signed": 1}
        assert len(registry) == 3
