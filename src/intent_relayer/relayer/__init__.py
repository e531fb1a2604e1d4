"""
intent_relayer.relayer — Discovery, validation and execution of intents.

Provides:
- IntentValidator: ordered structural/temporal/terminal/nonce/signature checks
- ExecutionGuard: fee ceiling and profitability policy
- ExecutionEngine: sequential submission with sequence-counter ownership
- IntentPipeline: the single queue every trigger feeds
- IntentRelayer: startup checks, scheduled cycles and push handling
"""

from intent_relayer.relayer.engine import ExecutionEngine, ExecutionResult, ExecutionStatus
from intent_relayer.relayer.guard import (
    DefaultProfitabilityPolicy,
    ExecutionGuard,
    ExecutionQuote,
    ProfitabilityPolicy,
)
from intent_relayer.relayer.pipeline import IntentPipeline, IntentState, PipelineOutcome
from intent_relayer.relayer.registry import DedupRegistry
from intent_relayer.relayer.scheduler import CycleReport, IntentRelayer
from intent_relayer.relayer.sources import (
    NullSignedIntentSource,
    QueuedSignedIntentSource,
    StoredIntentScanner,
)
from intent_relayer.relayer.validator import IntentValidator

__all__ = [
    "CycleReport",
    "DedupRegistry",
    "DefaultProfitabilityPolicy",
    "ExecutionEngine",
    "ExecutionGuard",
    "ExecutionQuote",
    "ExecutionResult",
    "ExecutionStatus",
    "IntentPipeline",
    "IntentRelayer",
    "IntentState",
    "IntentValidator",
    "NullSignedIntentSource",
    "PipelineOutcome",
    "ProfitabilityPolicy",
    "QueuedSignedIntentSource",
    "StoredIntentScanner",
]
