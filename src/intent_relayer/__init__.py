"""
intent-relayer: off-chain relayer for IntentSwap swap intents.

Usage:
    from intent_relayer import IntentRelayer, RelayerConfig

    relayer = IntentRelayer.from_config(RelayerConfig.from_env())
    relayer.initialize()
    relayer.run()
"""

from intent_relayer.core.config import RelayerConfig
from intent_relayer.core.ledger import LedgerClient
from intent_relayer.core.models import ContractInfo, SignedIntent, StoredIntent
from intent_relayer.core.wallet import RelayerWallet
from intent_relayer.errors import FatalInitError, RejectionReason, RelayerError
from intent_relayer.relayer.scheduler import IntentRelayer

__version__ = "0.1.0"
__all__ = [
    "ContractInfo",
    "FatalInitError",
    "IntentRelayer",
    "LedgerClient",
    "RejectionReason",
    "RelayerConfig",
    "RelayerError",
    "RelayerWallet",
    "SignedIntent",
    "StoredIntent",
]
