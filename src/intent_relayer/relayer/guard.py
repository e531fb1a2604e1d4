"""
Gas and profitability guard.

Every validated intent passes through `ExecutionGuard.check` before the
execution engine is allowed to spend gas on it. The guard rejects when the
network fee level is above the configured ceiling, then prices the
execution and asks a pluggable `ProfitabilityPolicy` whether it is worth it.

The default policy is a heuristic. It offers no protection against
adversarial transaction ordering.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from intent_relayer.core.ledger import LedgerClient, LedgerError
from intent_relayer.core.models import SignedIntent, StoredIntent
from intent_relayer.errors import GasPriceExceeded, Unprofitable

logger = logging.getLogger("intent_relayer.guard")

Intent = StoredIntent | SignedIntent

# Headroom added on top of eth_estimateGas, in percent
GAS_BUFFER_PCT = 20


@dataclass(frozen=True)
class ExecutionQuote:
    """Fee level and gas limit the engine will submit with."""
    fee_level: int  # wei per gas unit
    gas_limit: int
    estimated: bool = True  # False when the default limit was used

    @property
    def cost(self) -> int:
        """Worst-case execution cost in wei."""
        return self.fee_level * self.gas_limit


@dataclass(frozen=True)
class PolicyDecision:
    accepted: bool
    reason: str = ""


class ProfitabilityPolicy(Protocol):
    def evaluate(self, intent: Intent, quote: ExecutionQuote) -> PolicyDecision: ...


@dataclass
class DefaultProfitabilityPolicy:
    """
    Accept when the intent is large enough and gas is cheap relative to it.

    Args:
        min_intent_size: intents with `amount_in` below this are rejected outright
        max_cost_divisor: reject when cost exceeds `amount_in / max_cost_divisor`
    """
    min_intent_size: int = 10**15
    max_cost_divisor: int = 10

    def evaluate(self, intent: Intent, quote: ExecutionQuote) -> PolicyDecision:
        if intent.amount_in < self.min_intent_size:
            return PolicyDecision(
                False,
                f"Intent size {intent.amount_in} below minimum {self.min_intent_size}",
            )
        max_cost = intent.amount_in // self.max_cost_divisor
        if quote.cost > max_cost:
            return PolicyDecision(
                False,
                f"Estimated cost {quote.cost} exceeds 1/{self.max_cost_divisor} of input ({max_cost})",
            )
        return PolicyDecision(True)


class ExecutionGuard:
    """
    Decide whether executing an intent is economically acceptable.

    Usage:
        guard = ExecutionGuard(ledger, max_gas_price=50 * 10**9)
        quote = guard.check(intent, estimate_gas=lambda: engine.estimate_fulfill(intent.id))
    """

    def __init__(
        self,
        ledger: LedgerClient,
        max_gas_price: int,
        default_gas_limit: int = 500_000,
        policy: ProfitabilityPolicy | None = None,
    ) -> None:
        self._ledger = ledger
        self.max_gas_price = max_gas_price
        self.default_gas_limit = default_gas_limit
        self.policy = policy or DefaultProfitabilityPolicy()

    def check(self, intent: Intent, estimate_gas: Callable[[], int] | None = None) -> ExecutionQuote:
        """
        Price the execution of `intent` and apply the policy.

        Args:
            intent: a validated intent
            estimate_gas: returns raw gas units for the execution call; any
                `LedgerError` falls back to the default gas limit

        Returns:
            ExecutionQuote: the fee level and gas limit to submit with

        Raises:
            GasPriceExceeded: fee level above the ceiling
            Unprofitable: the policy rejected the intent
        """
        fee_level = self._ledger.gas_price()
        if fee_level > self.max_gas_price:
            raise GasPriceExceeded(fee_level, self.max_gas_price)

        quote = ExecutionQuote(fee_level, self.default_gas_limit, estimated=False)
        if estimate_gas is not None:
            try:
                units = estimate_gas()
                quote = ExecutionQuote(fee_level, units * (100 + GAS_BUFFER_PCT) // 100)
            except LedgerError as e:
                logger.warning(f"Gas estimation failed, using default {self.default_gas_limit}: {e}")

        decision = self.policy.evaluate(intent, quote)
        if not decision.accepted:
            raise Unprofitable(decision.reason or "Rejected by profitability policy")
        return quote
