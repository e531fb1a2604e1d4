"""
ExecutionEngine: the only path by which the relayer submits transactions.

The engine exclusively owns the `RelayerContext`: the relayer account's
outgoing sequence counter and the dedup registry. Submissions are strictly
sequential. Each one blocks until a receipt arrives or the submission
definitively fails, so the local counter never runs ahead of what the
engine can account for.

Outcomes:
    confirmed            mark terminal in the registry, counter += 1
    sequence rejected    resync counter from the ledger, retryable
    rejected / network   not terminal, counter untouched, retryable next cycle
    mined but reverted   not terminal, counter resynced (the nonce was consumed)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from intent_relayer.core import abi
from intent_relayer.core.address import is_zero_address
from intent_relayer.core.ledger import LedgerClient, LedgerConnectionError, LedgerError, ReceiptTimeout
from intent_relayer.core.models import SignedIntent, StoredIntent, TxReceipt
from intent_relayer.core.wallet import RelayerWallet
from intent_relayer.crypto.typed_data import IntentDomain, signed_intent_hash
from intent_relayer.errors import (
    RelayerError,
    SequenceDesync,
    SubmissionFailure,
    SubmissionFailureKind,
)
from intent_relayer.relayer.guard import ExecutionQuote
from intent_relayer.relayer.registry import DedupRegistry

logger = logging.getLogger("intent_relayer.engine")

# Node error fragments meaning "the nonce you sent is not the one I expect"
_SEQUENCE_ERRORS = (
    "nonce too low",
    "nonce too high",
    "invalid nonce",
    "already known",
    "replacement transaction underpriced",
    "nonce has already been used",
)


class ExecutionStatus(str, Enum):
    CONFIRMED = "confirmed"
    RETRYABLE = "retryable"


@dataclass
class ExecutionResult:
    """Outcome of one submission attempt."""
    key: str  # stored intent id or signed intent hash
    status: ExecutionStatus
    tx_hash: str | None = None
    block_number: int | None = None
    error: RelayerError | None = None

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.CONFIRMED

    @property
    def retryable(self) -> bool:
        return self.status is ExecutionStatus.RETRYABLE


@dataclass
class RelayerContext:
    """Process-local state owned by the engine."""
    chain_id: int | None = None
    domain: IntentDomain | None = None
    sequence: int | None = None
    registry: DedupRegistry = field(default_factory=DedupRegistry)

    @property
    def domain_separator(self) -> bytes | None:
        return self.domain.separator if self.domain else None


class ExecutionEngine:
    """
    Submit fulfillment transactions one at a time.

    Usage:
        engine = ExecutionEngine(ledger, wallet)
        engine.initialize()
        result = engine.fulfill_stored(intent, quote)
    """

    def __init__(
        self,
        ledger: LedgerClient,
        wallet: RelayerWallet,
        domain_name: str = "IntentSwap",
        domain_version: str = "1",
        confirmation_timeout: float = 120.0,
        receipt_poll_interval: float = 1.0,
    ) -> None:
        self._ledger = ledger
        self._wallet = wallet
        self._domain_name = domain_name
        self._domain_version = domain_version
        self.confirmation_timeout = confirmation_timeout
        self.receipt_poll_interval = receipt_poll_interval
        self._ctx = RelayerContext()
        self.submitted_count = 0

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def initialize(self) -> RelayerContext:
        """Load chain id, domain separator and the ledger's sequence number."""
        chain_id = self._ledger.chain_id()
        self._ctx.chain_id = chain_id
        self._ctx.domain = IntentDomain(
            chain_id=chain_id,
            verifying_contract=self._ledger.contract_address,
            name=self._domain_name,
            version=self._domain_version,
        )
        self.resync_sequence()
        logger.info(f"Engine initialized on chain {chain_id}. Current sequence: {self._ctx.sequence}")
        return self._ctx

    @property
    def address(self) -> str:
        return self._wallet.address

    @property
    def domain(self) -> IntentDomain:
        if self._ctx.domain is None:
            raise RuntimeError("ExecutionEngine.initialize() has not run")
        return self._ctx.domain

    @property
    def chain_id(self) -> int | None:
        return self._ctx.chain_id

    @property
    def sequence(self) -> int | None:
        return self._ctx.sequence

    def resync_sequence(self) -> int:
        """Replace the local counter with the ledger's pending transaction count."""
        self._ctx.sequence = self._ledger.get_transaction_count(self._wallet.address, "pending")
        return self._ctx.sequence

    def registry_stats(self) -> dict[str, int]:
        return self._ctx.registry.stats()

    # ------------------------------------------------------------------
    # Dedup registry access
    # ------------------------------------------------------------------

    def is_stored_terminal(self, intent_id: int) -> bool:
        return self._ctx.registry.is_stored_terminal(intent_id)

    def is_signed_terminal(self, intent_hash: str) -> bool:
        return self._ctx.registry.is_signed_terminal(intent_hash)

    def mark_stored_terminal(self, intent_id: int) -> None:
        if self._ctx.registry.mark_stored(intent_id):
            logger.debug(f"Stored intent {intent_id} marked terminal")

    def mark_signed_terminal(self, intent_hash: str) -> None:
        if self._ctx.registry.mark_signed(intent_hash):
            logger.debug(f"Signed intent {intent_hash[:10]}... marked terminal")

    # ------------------------------------------------------------------
    # Gas estimation (read-only)
    # ------------------------------------------------------------------

    def estimate_fulfill(self, intent_id: int) -> int:
        return self._ledger.estimate_gas(self._call_object(abi.FULFILL_INTENT.encode_call(intent_id)))

    def estimate_swap(self, intent: SignedIntent, signature: str) -> int:
        data = abi.EXECUTE_SWAP.encode_call(intent.as_tuple(), _sig_bytes(signature))
        return self._ledger.estimate_gas(self._call_object(data, _swap_value(intent)))

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def fulfill_stored(self, intent: StoredIntent, quote: ExecutionQuote) -> ExecutionResult:
        """Submit `fulfillIntent(id)` and wait for the outcome."""
        key = str(intent.id)
        logger.info(f"Fulfilling stored intent: {intent.id}")
        result = self._submit(key, abi.FULFILL_INTENT.encode_call(intent.id), 0, quote)
        if result.success:
            self.mark_stored_terminal(intent.id)
        return result

    def execute_signed(self, intent: SignedIntent, signature: str, quote: ExecutionQuote) -> ExecutionResult:
        """Submit `executeSwap(intent, signature)` and wait for the outcome."""
        key = signed_intent_hash(intent)
        logger.info(f"Processing signed intent: {key[:10]}...")
        data = abi.EXECUTE_SWAP.encode_call(intent.as_tuple(), _sig_bytes(signature))
        result = self._submit(key, data, _swap_value(intent), quote)
        if result.success:
            self.mark_signed_terminal(key)
        return result

    def _submit(self, key: str, data: str, value: int, quote: ExecutionQuote) -> ExecutionResult:
        if self._ctx.sequence is None:
            raise RuntimeError("ExecutionEngine.initialize() has not run")
        sequence = self._ctx.sequence
        tx = {
            "to": self._ledger.contract_address,
            "data": data,
            "value": value,
            "gas": quote.gas_limit,
            "gasPrice": quote.fee_level,
            "nonce": sequence,
            "chainId": self._ctx.chain_id,
        }
        raw = self._wallet.sign_transaction(tx)

        logger.info(
            f"Submitting with sequence {sequence}, gas limit {quote.gas_limit}, "
            f"gas price {quote.fee_level / 1e9:.2f} gwei"
        )
        try:
            tx_hash = self._ledger.send_raw_transaction(raw)
        except LedgerConnectionError as e:
            return self._fail(key, SubmissionFailure(SubmissionFailureKind.NETWORK_ERROR, str(e)))
        except LedgerError as e:
            if _is_sequence_error(e):
                return self._desync(key, sequence, e)
            return self._fail(key, SubmissionFailure(SubmissionFailureKind.REVERTED, str(e)))

        self.submitted_count += 1
        logger.info(f"Transaction submitted: {tx_hash}")

        try:
            receipt = self._ledger.wait_for_receipt(
                tx_hash, timeout=self.confirmation_timeout, poll_interval=self.receipt_poll_interval,
            )
        except (ReceiptTimeout, LedgerError) as e:
            # the transaction may still be pending; only the ledger knows
            self._resync_quietly()
            return self._fail(
                key, SubmissionFailure(SubmissionFailureKind.NETWORK_ERROR, str(e), tx_hash=tx_hash),
            )
        return self._settle(key, sequence, tx_hash, receipt)

    def _settle(self, key: str, sequence: int, tx_hash: str, receipt: TxReceipt) -> ExecutionResult:
        if receipt.succeeded:
            self._ctx.sequence = sequence + 1
            logger.info(f"Confirmed {key[:10]} in block {receipt.block_number}")
            return ExecutionResult(
                key, ExecutionStatus.CONFIRMED, tx_hash=tx_hash, block_number=receipt.block_number,
            )
        self._resync_quietly()
        failure = SubmissionFailure(
            SubmissionFailureKind.REVERTED,
            f"Transaction {tx_hash} reverted in block {receipt.block_number}",
            tx_hash=tx_hash,
        )
        result = self._fail(key, failure)
        result.block_number = receipt.block_number
        return result

    def _desync(self, key: str, submitted: int, cause: LedgerError) -> ExecutionResult:
        logger.warning(f"Sequence {submitted} rejected ({cause.message}). Refreshing sequence...")
        resynced = self._resync_quietly()
        error = SequenceDesync(str(cause), submitted=submitted, resynced=resynced)
        return ExecutionResult(key, ExecutionStatus.RETRYABLE, error=error)

    def _fail(self, key: str, error: SubmissionFailure) -> ExecutionResult:
        logger.warning(f"Failed to execute {key[:10]}: {error.kind.value}: {error}")
        return ExecutionResult(key, ExecutionStatus.RETRYABLE, tx_hash=error.tx_hash, error=error)

    def _resync_quietly(self) -> int | None:
        try:
            return self.resync_sequence()
        except LedgerError as e:
            # keep the old value; the next sequence error resyncs again
            logger.error(f"Sequence resync failed: {e}")
            return None

    def _call_object(self, data: str, value: int = 0) -> dict[str, Any]:
        return {
            "from": self._wallet.address,
            "to": self._ledger.contract_address,
            "data": data,
            "value": value,
        }


def _is_sequence_error(error: LedgerError) -> bool:
    text = error.message.lower()
    return any(fragment in text for fragment in _SEQUENCE_ERRORS)


def _swap_value(intent: SignedIntent) -> int:
    """Native-asset swaps carry the input amount as call value."""
    return intent.amount_in if is_zero_address(intent.from_token) else 0


def _sig_bytes(signature: str) -> bytes:
    return bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)
