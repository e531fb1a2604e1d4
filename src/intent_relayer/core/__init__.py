"""core module init"""
from intent_relayer.core.address import (
    ZERO_ADDRESS,
    AddressError,
    is_valid_address,
    is_zero_address,
    validate_address,
)
from intent_relayer.core.config import RelayerConfig
from intent_relayer.core.events import EventWatcher, Subscription
from intent_relayer.core.ledger import LedgerClient, LedgerConnectionError, LedgerError, ReceiptTimeout
from intent_relayer.core.models import ContractInfo, LedgerEvent, SignedIntent, StoredIntent, TxReceipt
from intent_relayer.core.wallet import RelayerWallet, WalletError

__all__ = [
    "AddressError",
    "ContractInfo",
    "EventWatcher",
    "LedgerClient",
    "LedgerConnectionError",
    "LedgerError",
    "LedgerEvent",
    "ReceiptTimeout",
    "RelayerConfig",
    "RelayerWallet",
    "SignedIntent",
    "StoredIntent",
    "Subscription",
    "TxReceipt",
    "WalletError",
    "ZERO_ADDRESS",
    "is_valid_address",
    "is_zero_address",
    "validate_address",
]
