"""
IntentPipeline: the single serialized path from discovery to execution.

Every trigger (scheduled scan, push notification, signed-intent intake)
only enqueues work items. Exactly one worker, the scheduler thread, takes
items off the queue and carries each one to completion before starting the
next:

    DISCOVERED -> VALIDATED -> GUARDED -> SUBMITTED -> CONFIRMED
                     |            |            `-> RETRYABLE_FAILURE
                     v            v
                  REJECTED     REJECTED

Stored intents come back through the scheduled scan. Signed intents have no
ledger copy to rediscover, so the pipeline keeps the ones whose last attempt
was retryable and `requeue_signed()` offers them again each cycle, until
they confirm or fail validation (an expired deadline included).

Because the engine is only ever driven from here, two triggers can never
race on the relayer's sequence counter.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from intent_relayer.core.ledger import LedgerClient, LedgerError
from intent_relayer.core.models import SignedIntent
from intent_relayer.crypto.typed_data import signed_intent_hash
from intent_relayer.errors import GuardRejection, RejectionReason, ValidationError
from intent_relayer.relayer.engine import ExecutionEngine, ExecutionResult, ExecutionStatus
from intent_relayer.relayer.guard import ExecutionGuard
from intent_relayer.relayer.validator import IntentValidator

logger = logging.getLogger("intent_relayer.pipeline")

# Stored intents rejected for these reasons can never become executable
_FINAL_REASONS = (RejectionReason.EXPIRED, RejectionReason.ALREADY_TERMINAL)


# ------------------------------------------------------------------
# Work items
# ------------------------------------------------------------------

@dataclass(frozen=True)
class StoredWork:
    intent_id: int
    origin: str = "scan"

    @property
    def key(self) -> str:
        return f"stored:{self.intent_id}"


@dataclass(frozen=True)
class SignedWork:
    intent: SignedIntent
    signature: str

    @property
    def key(self) -> str:
        try:
            return f"signed:{signed_intent_hash(self.intent)}"
        except ValueError:
            # unencodable fields; validation rejects it once dequeued
            return f"signed:malformed:{self.signature}"


@dataclass(frozen=True)
class TerminalNotice:
    """The ledger reported an intent fulfilled or cancelled."""
    intent_id: int
    event: str

    @property
    def key(self) -> str:
        return f"notice:{self.intent_id}:{self.event}"


WorkItem = StoredWork | SignedWork | TerminalNotice


# ------------------------------------------------------------------
# Outcomes
# ------------------------------------------------------------------

class IntentState(str, Enum):
    DISCOVERED = "discovered"
    VALIDATED = "validated"
    GUARDED = "guarded"
    SUBMITTED = "submitted"
    REJECTED = "rejected"
    CONFIRMED = "confirmed"
    RETRYABLE_FAILURE = "retryable_failure"
    SKIPPED = "skipped"


@dataclass
class PipelineOutcome:
    """Where one intent ended up in this pass, and why."""
    key: str
    history: list[IntentState] = field(default_factory=lambda: [IntentState.DISCOVERED])
    reason: str | None = None
    error: Exception | None = None
    result: ExecutionResult | None = None

    @property
    def state(self) -> IntentState:
        return self.history[-1]

    @property
    def retryable(self) -> bool:
        return self.state is IntentState.RETRYABLE_FAILURE

    def advance(self, state: IntentState) -> PipelineOutcome:
        self.history.append(state)
        return self

    def reject(self, reason: str, error: Exception | None = None) -> PipelineOutcome:
        self.reason = reason
        self.error = error
        return self.advance(IntentState.REJECTED)


_RESULT_STATES = {
    ExecutionStatus.CONFIRMED: IntentState.CONFIRMED,
    ExecutionStatus.RETRYABLE: IntentState.RETRYABLE_FAILURE,
}


class IntentPipeline:
    """
    Queue of work items plus the validate -> guard -> execute steps.

    Usage:
        pipeline = IntentPipeline(ledger, validator, guard, engine)
        pipeline.enqueue_stored(7, origin="push")   # any thread
        outcomes = pipeline.drain()                 # worker thread only
    """

    def __init__(
        self,
        ledger: LedgerClient,
        validator: IntentValidator,
        guard: ExecutionGuard,
        engine: ExecutionEngine,
    ) -> None:
        self._ledger = ledger
        self.validator = validator
        self.guard = guard
        self.engine = engine
        self._queue: queue.Queue[WorkItem] = queue.Queue()
        self._queued: set[str] = set()
        self._lock = threading.Lock()
        # signed intent hash -> (intent, signature), worker thread only
        self._retry: dict[str, tuple[SignedIntent, str]] = {}

    # ------------------------------------------------------------------
    # Producers (any thread)
    # ------------------------------------------------------------------

    def enqueue(self, item: WorkItem) -> bool:
        """Queue `item` unless an identical one is already waiting."""
        with self._lock:
            if item.key in self._queued:
                return False
            self._queued.add(item.key)
        self._queue.put(item)
        return True

    def enqueue_stored(self, intent_id: int, origin: str = "scan") -> bool:
        return self.enqueue(StoredWork(intent_id, origin))

    def enqueue_signed(self, intent: SignedIntent, signature: str) -> bool:
        return self.enqueue(SignedWork(intent, signature))

    def enqueue_terminal(self, intent_id: int, event: str) -> bool:
        return self.enqueue(TerminalNotice(intent_id, event))

    def pending(self) -> int:
        return self._queue.qsize()

    def retrying(self) -> int:
        return len(self._retry)

    def requeue_signed(self) -> int:
        """Queue every kept signed intent again. Returns how many were queued."""
        queued = 0
        for intent, signature in list(self._retry.values()):
            if self.enqueue_signed(intent, signature):
                queued += 1
        return queued

    # ------------------------------------------------------------------
    # Consumer (worker thread only)
    # ------------------------------------------------------------------

    def next_item(self, timeout: float | None = None) -> WorkItem | None:
        try:
            item = self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return None
        with self._lock:
            self._queued.discard(item.key)
        return item

    def drain(self, should_stop: Callable[[], bool] = lambda: False) -> list[PipelineOutcome]:
        """Process queued items until the queue is empty or `should_stop()`."""
        outcomes: list[PipelineOutcome] = []
        while not should_stop():
            item = self.next_item()
            if item is None:
                break
            outcome = self.process(item)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def process(self, item: WorkItem) -> PipelineOutcome | None:
        if isinstance(item, TerminalNotice):
            logger.info(f"Intent {item.intent_id} reported by {item.event}")
            self.engine.mark_stored_terminal(item.intent_id)
            return None
        if isinstance(item, StoredWork):
            return self.process_stored(item.intent_id)
        return self.process_signed(item.intent, item.signature)

    def process_stored(self, intent_id: int) -> PipelineOutcome:
        outcome = PipelineOutcome(key=str(intent_id))
        if self.engine.is_stored_terminal(intent_id):
            return outcome.advance(IntentState.SKIPPED)

        try:
            intent = self._ledger.get_intent(intent_id)
        except LedgerError as e:
            logger.warning(f"Error checking intent {intent_id}: {e}")
            outcome.error = e
            return outcome.advance(IntentState.RETRYABLE_FAILURE)

        try:
            self.validator.validate_stored(intent)
        except ValidationError as e:
            if e.reason in _FINAL_REASONS:
                self.engine.mark_stored_terminal(intent_id)
            logger.info(f"Intent {intent_id} rejected: {e.reason.value} ({e})")
            return outcome.reject(e.reason.value, e)
        outcome.advance(IntentState.VALIDATED)

        quote = self._guard(outcome, intent, lambda: self.engine.estimate_fulfill(intent_id))
        if quote is None:
            return outcome

        outcome.advance(IntentState.SUBMITTED)
        return self._settle(outcome, self.engine.fulfill_stored(intent, quote))

    def process_signed(self, intent: SignedIntent, signature: str) -> PipelineOutcome:
        outcome = self._process_signed(intent, signature)
        if _worth_retrying(outcome):
            if outcome.key not in self._retry:
                logger.info(f"Signed intent {outcome.key[:10]}... kept for the next cycle")
            self._retry[outcome.key] = (intent, signature)
        else:
            self._retry.pop(outcome.key, None)
        return outcome

    def _process_signed(self, intent: SignedIntent, signature: str) -> PipelineOutcome:
        try:
            intent_hash = signed_intent_hash(intent)
        except ValueError as e:
            outcome = PipelineOutcome(key="malformed")
            logger.info(f"Signed intent rejected: {RejectionReason.STRUCTURAL_INVALID.value} ({e})")
            return outcome.reject(RejectionReason.STRUCTURAL_INVALID.value, e)
        outcome = PipelineOutcome(key=intent_hash)
        if self.engine.is_signed_terminal(intent_hash):
            return outcome.advance(IntentState.SKIPPED)

        try:
            self.validator.validate_signed(intent, signature, is_terminal=self.engine.is_signed_terminal)
        except ValidationError as e:
            if e.reason is RejectionReason.EXPIRED:
                self.engine.mark_signed_terminal(intent_hash)
            logger.info(f"Signed intent {intent_hash[:10]}... rejected: {e.reason.value} ({e})")
            return outcome.reject(e.reason.value, e)
        except LedgerError as e:
            logger.warning(f"Error validating signed intent {intent_hash[:10]}...: {e}")
            outcome.error = e
            return outcome.advance(IntentState.RETRYABLE_FAILURE)
        outcome.advance(IntentState.VALIDATED)

        quote = self._guard(outcome, intent, lambda: self.engine.estimate_swap(intent, signature))
        if quote is None:
            return outcome

        outcome.advance(IntentState.SUBMITTED)
        return self._settle(outcome, self.engine.execute_signed(intent, signature, quote))

    def _guard(self, outcome: PipelineOutcome, intent, estimate):
        try:
            quote = self.guard.check(intent, estimate)
        except GuardRejection as e:
            logger.warning(f"Intent {outcome.key[:10]} not executed: {e}")
            outcome.reject(type(e).__name__, e)
            return None
        except LedgerError as e:
            logger.warning(f"Could not price intent {outcome.key[:10]}: {e}")
            outcome.error = e
            outcome.advance(IntentState.RETRYABLE_FAILURE)
            return None
        outcome.advance(IntentState.GUARDED)
        return quote

    @staticmethod
    def _settle(outcome: PipelineOutcome, result: ExecutionResult) -> PipelineOutcome:
        outcome.result = result
        outcome.error = result.error
        if result.error is not None:
            outcome.reason = type(result.error).__name__
        return outcome.advance(_RESULT_STATES[result.status])


def _worth_retrying(outcome: PipelineOutcome) -> bool:
    """Retryable failures and guard refusals; validation rejections are final for a signed intent."""
    if outcome.retryable:
        return True
    return outcome.state is IntentState.REJECTED and isinstance(outcome.error, GuardRejection)
