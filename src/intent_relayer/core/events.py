"""
EventWatcher: push-style notifications for IntentSwap contract events.

A background thread polls `eth_getLogs` over new block ranges and hands each
decoded event to the handlers subscribed for its name. Handlers run on the
watcher thread, so they must be cheap: the relayer's handlers only enqueue.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from intent_relayer.core import abi
from intent_relayer.core.ledger import LedgerClient, LedgerError
from intent_relayer.core.models import LedgerEvent

logger = logging.getLogger("intent_relayer.events")

EventHandler = Callable[[LedgerEvent], None]

# Upper bound on blocks requested per eth_getLogs call
MAX_BLOCK_RANGE = 2_000


class Subscription:
    """Handle returned by `EventWatcher.subscribe`."""

    def __init__(self, watcher: EventWatcher, event_name: str, handler: EventHandler) -> None:
        self._watcher = watcher
        self.event_name = event_name
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._watcher._remove(self)
            self.active = False


class EventWatcher:
    """
    Poll the contract's logs and dispatch them to subscribers.

    Usage:
        watcher = EventWatcher(ledger, poll_interval=2.0)
        sub = watcher.subscribe("IntentCreated", lambda ev: queue.put(ev.intent_id))
        watcher.start()
        ...
        sub.unsubscribe()
        watcher.stop()
    """

    def __init__(self, ledger: LedgerClient, poll_interval: float = 2.0) -> None:
        self._ledger = ledger
        self.poll_interval = poll_interval
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._next_block: int | None = None

    def subscribe(self, event_name: str, handler: EventHandler) -> Subscription:
        if event_name not in abi.EVENT_SIGNATURES:
            raise ValueError(f"Unknown event: {event_name}")
        sub = Subscription(self, event_name, handler)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="event-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except LedgerError as e:
                logger.warning(f"Event poll failed: {e}")
            except Exception:
                logger.exception("Unexpected error while polling events")
            self._stop.wait(self.poll_interval)

    def poll_once(self) -> int:
        """
        Fetch logs since the last poll and dispatch them.

        The first poll only records the current head; history is covered by
        the scheduled scan.

        Returns:
            int: number of events dispatched
        """
        head = self._ledger.block_number()
        if self._next_block is None:
            self._next_block = head + 1
            return 0
        if head < self._next_block:
            return 0

        to_block = min(head, self._next_block + MAX_BLOCK_RANGE - 1)
        topics = [list(abi.EVENT_NAMES_BY_TOPIC)]
        logs = self._ledger.get_logs(self._next_block, to_block, topics=topics)
        self._next_block = to_block + 1

        dispatched = 0
        for log in logs:
            event = _decode_log(log)
            if event is None:
                continue
            dispatched += self._dispatch(event)
        return dispatched

    def _dispatch(self, event: LedgerEvent) -> int:
        with self._lock:
            handlers = [s.handler for s in self._subscriptions if s.event_name == event.name]
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Handler for {event.name} #{event.intent_id} raised")
        return len(handlers)


def _decode_log(log: dict) -> LedgerEvent | None:
    topics = [t.lower() for t in log.get("topics", [])]
    if not topics:
        return None
    name = abi.EVENT_NAMES_BY_TOPIC.get(topics[0])
    if name is None:
        return None
    data = log.get("data", "0x")
    try:
        intent_id = abi.decode_intent_id(topics, data)
    except ValueError:
        logger.warning(f"Undecodable {name} log in tx {log.get('transactionHash')}")
        return None
    block = log.get("blockNumber", "0x0")
    return LedgerEvent(
        name=name,
        intent_id=intent_id,
        block_number=int(block, 16) if isinstance(block, str) else int(block),
        tx_hash=log.get("transactionHash", ""),
        topics=topics,
        data=data,
    )
