"""
Intent sources feeding the pipeline.

- StoredIntentScanner: bounded backward scan over the most recent stored ids
- SignedIntentSource:  anything exposing `poll_pending_signed_intents()`
  (NullSignedIntentSource, QueuedSignedIntentSource)

The live `IntentCreated` feed is wired by the scheduler on top of
`intent_relayer.core.events.EventWatcher`.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Sequence
from typing import Protocol

from intent_relayer.core.ledger import LedgerClient
from intent_relayer.core.models import SignedIntent

logger = logging.getLogger("intent_relayer.sources")

DEFAULT_SCAN_WINDOW = 100


class StoredIntentScanner:
    """
    Yield recent stored intent ids not yet terminal.

    Usage:
        scanner = StoredIntentScanner(ledger, window=100)
        ids = scanner.scan(is_terminal=engine.is_stored_terminal)
    """

    def __init__(self, ledger: LedgerClient, window: int = DEFAULT_SCAN_WINDOW) -> None:
        if window <= 0:
            raise ValueError(f"Scan window must be positive, got {window}")
        self._ledger = ledger
        self.window = window

    def scan(self, is_terminal: Callable[[int], bool] = lambda _: False) -> list[int]:
        """
        Return ids in `[max(1, next - window), next)`, newest first, skipping terminal ones.
        """
        next_id = self._ledger.next_intent_id()
        start = max(1, next_id - self.window)
        ids = [i for i in range(next_id - 1, start - 1, -1) if not is_terminal(i)]
        if ids:
            logger.debug(f"Scan window [{start}, {next_id}): {len(ids)} candidate(s)")
        return ids


class SignedIntentSource(Protocol):
    def poll_pending_signed_intents(self) -> Sequence[tuple[SignedIntent, str]]: ...


class NullSignedIntentSource:
    """A source that never has signed intents."""

    def poll_pending_signed_intents(self) -> Sequence[tuple[SignedIntent, str]]:
        return []


class QueuedSignedIntentSource:
    """
    Thread-safe in-memory intake of (intent, signature) pairs.

    Producers (e.g. the HTTP API) call `submit`; the scheduler drains with
    `poll_pending_signed_intents`. Bounded: the oldest entries are dropped
    once `maxlen` is reached.
    """

    def __init__(self, maxlen: int = 10_000) -> None:
        self._pending: deque[tuple[SignedIntent, str]] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def submit(self, intent: SignedIntent, signature: str) -> None:
        with self._lock:
            if len(self._pending) == self._pending.maxlen:
                logger.warning("Signed intent intake full, dropping oldest entry")
            self._pending.append((intent, signature))

    def poll_pending_signed_intents(self) -> list[tuple[SignedIntent, str]]:
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
