"""
IntentRelayer: wires the relayer together and drives its cycles.

Two triggers feed the same pipeline queue:

    scheduled scan  every `poll_interval`, recent stored ids + pending signed intents
                    + signed intents whose last attempt was retryable
    push            `IntentCreated` logs from the EventWatcher thread

Only the scheduler thread drains the queue, so every submission happens on
one thread, one intent at a time. Between cycles the scheduler keeps
draining pushed items so a new deposit does not wait a full interval.

Shutdown is cooperative: `stop()` stops new cycles and new items, removes
the event subscriptions and lets an in-flight submission finish.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from intent_relayer.core.config import RelayerConfig
from intent_relayer.core.events import EventWatcher, Subscription
from intent_relayer.core.ledger import LedgerClient, LedgerError
from intent_relayer.core.models import WEI_PER_ETHER, ContractInfo, LedgerEvent, SignedIntent
from intent_relayer.core.wallet import RelayerWallet, WalletError
from intent_relayer.crypto.typed_data import signed_intent_hash
from intent_relayer.errors import FatalInitError, FatalInitKind
from intent_relayer.relayer.engine import ExecutionEngine
from intent_relayer.relayer.guard import DefaultProfitabilityPolicy, ExecutionGuard, ProfitabilityPolicy
from intent_relayer.relayer.pipeline import IntentPipeline, IntentState, PipelineOutcome
from intent_relayer.relayer.sources import (
    QueuedSignedIntentSource,
    SignedIntentSource,
    StoredIntentScanner,
)
from intent_relayer.relayer.validator import IntentValidator

logger = logging.getLogger("intent_relayer.scheduler")

# Longest a between-cycle wait blocks before rechecking the stop flag
_PUSH_WAIT = 0.5


@dataclass
class CycleReport:
    """What one scheduled cycle did."""
    scanned: int = 0
    signed: int = 0
    retried: int = 0
    paused: bool = False
    outcomes: list[PipelineOutcome] = field(default_factory=list)

    def count(self, state: IntentState) -> int:
        return sum(1 for o in self.outcomes if o.state is state)

    def summary(self) -> dict[str, int]:
        return dict(Counter(o.state.value for o in self.outcomes))


class IntentRelayer:
    """
    The relayer process: startup checks, scheduled cycles and push handling.

    Usage:
        relayer = IntentRelayer.from_config(RelayerConfig.from_env())
        relayer.initialize()
        relayer.run()          # blocks until stop()
    """

    def __init__(
        self,
        ledger: LedgerClient,
        wallet: RelayerWallet,
        config: RelayerConfig,
        signed_source: SignedIntentSource | None = None,
        watcher: EventWatcher | None = None,
        policy: ProfitabilityPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.wallet = wallet
        self.engine = ExecutionEngine(
            ledger,
            wallet,
            domain_name=config.domain_name,
            domain_version=config.domain_version,
            confirmation_timeout=config.confirmation_timeout,
        )
        self.validator = IntentValidator(ledger, clock=clock)
        self.guard = ExecutionGuard(
            ledger,
            max_gas_price=config.max_gas_price_wei,
            default_gas_limit=config.default_gas_limit,
            policy=policy or DefaultProfitabilityPolicy(min_intent_size=config.min_intent_size_wei),
        )
        self.pipeline = IntentPipeline(ledger, self.validator, self.guard, self.engine)
        self.scanner = StoredIntentScanner(ledger, window=config.scan_window)
        self.intake = QueuedSignedIntentSource()
        self.signed_source = signed_source
        self.watcher = watcher or EventWatcher(ledger, poll_interval=config.event_poll_interval)

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._subscriptions: list[Subscription] = []
        self._initialized = False
        self._running = False
        self.cycles = 0
        self.last_report: CycleReport | None = None

    @classmethod
    def from_config(cls, config: RelayerConfig, **kwargs: Any) -> IntentRelayer:
        """
        Build a relayer with a JSON-RPC ledger client and the configured key.

        Raises:
            FatalInitError: MISSING_CONFIG if the private key is malformed
        """
        try:
            wallet = RelayerWallet.from_private_key(config.private_key)
        except WalletError as e:
            raise FatalInitError(FatalInitKind.MISSING_CONFIG, str(e)) from e
        ledger = LedgerClient(config.rpc_url, config.contract_address, timeout=config.rpc_timeout)
        return cls(ledger, wallet, config, **kwargs)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Check the contract and the relayer account, then load the engine context.

        Raises:
            FatalInitError: CONTRACT_NOT_FOUND or INSUFFICIENT_BALANCE
            LedgerError: if the node cannot be queried
        """
        contract = self.ledger.contract_address
        logger.info(f"Relayer address: {self.wallet.address}")
        logger.info(f"Contract address: {contract}")

        code = self.ledger.get_code(contract)
        if code in ("", "0x") or int(code, 16) == 0:
            raise FatalInitError(
                FatalInitKind.CONTRACT_NOT_FOUND, f"No contract code at {contract}",
            )

        balance = self.ledger.get_balance(self.wallet.address)
        logger.info(f"Relayer balance: {balance / WEI_PER_ETHER:.6f} ETH")
        if balance == 0:
            raise FatalInitError(
                FatalInitKind.INSUFFICIENT_BALANCE,
                f"Relayer {self.wallet.address} has no balance to pay fees",
            )
        if balance < self.config.low_balance_warning_wei:
            logger.warning("Low balance! Please fund the relayer account")

        try:
            if not self.ledger.authorized_fulfillers(self.wallet.address):
                logger.warning("Relayer is not an authorized fulfiller. Only the owner can fulfill intents.")
        except LedgerError as e:
            logger.warning(f"Could not check fulfiller authorization: {e}")

        self.engine.initialize()
        self.validator.domain = self.engine.domain
        self._initialized = True

    def contract_info(self) -> ContractInfo:
        return ContractInfo(
            paused=self.ledger.paused(),
            fee_bps=self.ledger.fee_bps(),
            fee_recipient=self.ledger.fee_recipient(),
            next_intent_id=self.ledger.next_intent_id(),
            relayer_address=self.wallet.address,
        )

    def status(self) -> dict[str, Any]:
        """Process-local state; makes no ledger calls."""
        return {
            "address": self.wallet.address,
            "contract": self.ledger.contract_address,
            "chain_id": self.engine.chain_id,
            "sequence": self.engine.sequence,
            "registry": self.engine.registry_stats(),
            "running": self.running,
            "cycles": self.cycles,
            "pending": self.pipeline.pending() + len(self.intake),
            "retrying": self.pipeline.retrying(),
            "submitted": self.engine.submitted_count,
        }

    # ------------------------------------------------------------------
    # Signed intent intake (any thread)
    # ------------------------------------------------------------------

    def submit_signed(self, intent: SignedIntent, signature: str) -> str:
        """
        Accept a signed intent for the next cycle.

        Returns:
            str: the signed-intent hash used for deduplication

        Raises:
            ValueError: if the intent fields cannot be ABI-encoded
        """
        intent_hash = signed_intent_hash(intent)
        self.intake.submit(intent, signature)
        logger.debug(f"Signed intent {intent_hash[:10]}... queued")
        return intent_hash

    # ------------------------------------------------------------------
    # Cycles (scheduler thread)
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleReport:
        """Scan, collect signed intents and drain the pipeline once."""
        if not self._initialized:
            raise RuntimeError("IntentRelayer.initialize() has not run")
        self.cycles += 1
        report = CycleReport()

        try:
            paused = self.ledger.paused()
        except LedgerError as e:
            logger.warning(f"Could not read paused flag, skipping cycle: {e}")
            return self._finish(report)
        if paused:
            logger.warning("Contract is paused, skipping cycle")
            report.paused = True
            return self._finish(report)

        try:
            ids = self.scanner.scan(is_terminal=self.engine.is_stored_terminal)
        except LedgerError as e:
            logger.warning(f"Error scanning stored intents: {e}")
            ids = []
        for intent_id in ids:
            self.pipeline.enqueue_stored(intent_id)
        report.scanned = len(ids)

        signed = list(self.intake.poll_pending_signed_intents())
        if self.signed_source is not None:
            try:
                signed.extend(self.signed_source.poll_pending_signed_intents())
            except Exception:
                logger.exception("Signed intent source failed")
        for intent, signature in signed:
            self.pipeline.enqueue_signed(intent, signature)
        report.signed = len(signed)
        report.retried = self.pipeline.requeue_signed()

        report.outcomes = self.pipeline.drain(should_stop=self._stop.is_set)
        return self._finish(report)

    def _finish(self, report: CycleReport) -> CycleReport:
        self.last_report = report
        if report.outcomes:
            logger.info(f"Cycle {self.cycles}: {report.summary()}")
        return report

    def run(self) -> None:
        """Run cycles until `stop()` is called. Blocks the calling thread."""
        if not self._initialized:
            self.initialize()
        self._subscribe()
        self.watcher.start()
        self._running = True
        logger.info(f"Relayer started. Polling every {self.config.poll_interval:.1f}s")
        try:
            while not self._stop.is_set():
                try:
                    self.run_cycle()
                except LedgerError as e:
                    logger.error(f"Cycle {self.cycles} failed: {e}")
                except Exception:
                    logger.exception(f"Cycle {self.cycles} failed unexpectedly")
                self._process_pushed(self.config.poll_interval)
        finally:
            self._running = False
            self._unsubscribe()
            self.watcher.stop()
            logger.info("Relayer stopped")

    def _process_pushed(self, interval: float) -> None:
        """Handle pushed items until the next cycle is due."""
        deadline = time.monotonic() + interval
        while not self._stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            item = self.pipeline.next_item(timeout=min(_PUSH_WAIT, remaining))
            if item is None:
                continue
            try:
                self.pipeline.process(item)
            except Exception:
                logger.exception(f"Failed to process pushed item {item.key}")

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> threading.Thread:
        """Run in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="intent-relayer", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, wait: bool = True, timeout: float | None = None) -> None:
        logger.info("Stopping relayer...")
        self._stop.set()
        self._unsubscribe()
        self.watcher.stop()
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    # ------------------------------------------------------------------
    # Push notifications (watcher thread)
    # ------------------------------------------------------------------

    def _subscribe(self) -> None:
        if self._subscriptions:
            return
        self._subscriptions = [
            self.watcher.subscribe("IntentCreated", self._on_created),
            self.watcher.subscribe("IntentFulfilled", self._on_terminal),
            self.watcher.subscribe("IntentCancelled", self._on_terminal),
        ]

    def _unsubscribe(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

    def _on_created(self, event: LedgerEvent) -> None:
        if self._stop.is_set():
            return
        logger.info(f"New intent created: {event.intent_id}")
        self.pipeline.enqueue_stored(event.intent_id, origin="push")

    def _on_terminal(self, event: LedgerEvent) -> None:
        if self._stop.is_set():
            return
        self.pipeline.enqueue_terminal(event.intent_id, event.name)
