"""
Relayer configuration.

Values come from the environment (see `RelayerConfig.from_env`) or are
passed directly. Amounts are stored in wei.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from eth_utils import to_wei

from intent_relayer.core.address import AddressError, validate_address
from intent_relayer.errors import FatalInitError, FatalInitKind

REQUIRED_ENV = ("RPC_URL", "PRIVATE_KEY", "CONTRACT_ADDRESS")


@dataclass
class RelayerConfig:
    """
    Configuration for the relayer process.

    Args:
        rpc_url:              JSON-RPC endpoint of the ledger node
        private_key:          relayer signing key (hex)
        contract_address:     IntentSwap contract address
        poll_interval_ms:     delay between discovery cycles
        max_gas_price_wei:    fee level ceiling; above it nothing is submitted
        default_gas_limit:    gas units used when estimation fails
        min_intent_size_wei:  intents with a smaller input amount are skipped
        scan_window:          how many recent stored intent ids each cycle scans
        confirmation_timeout: seconds to wait for a receipt
        event_poll_interval:  seconds between log polls for push notifications
        rpc_timeout:          HTTP timeout for JSON-RPC calls
        domain_name:          EIP-712 domain name of the verifier
        domain_version:       EIP-712 domain version of the verifier
    """
    rpc_url: str
    private_key: str
    contract_address: str
    poll_interval_ms: int = 5000
    max_gas_price_wei: int = 50 * 10**9
    default_gas_limit: int = 500_000
    min_intent_size_wei: int = 10**15
    scan_window: int = 100
    confirmation_timeout: float = 120.0
    event_poll_interval: float = 2.0
    rpc_timeout: float = 15.0
    domain_name: str = "IntentSwap"
    domain_version: str = "1"
    low_balance_warning_wei: int = 10**16

    def __post_init__(self) -> None:
        missing = [
            name for name, value in (
                ("rpc_url", self.rpc_url),
                ("private_key", self.private_key),
                ("contract_address", self.contract_address),
            ) if not value
        ]
        if missing:
            raise FatalInitError(
                FatalInitKind.MISSING_CONFIG,
                f"Missing required configuration: {', '.join(missing)}",
            )
        try:
            self.contract_address = validate_address(self.contract_address)
        except AddressError as e:
            raise FatalInitError(FatalInitKind.MISSING_CONFIG, f"Bad contract address: {e}") from e

    @property
    def poll_interval(self) -> float:
        """Polling interval in seconds."""
        return self.poll_interval_ms / 1000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RelayerConfig:
        """
        Build a config from environment variables.

        Required: RPC_URL, PRIVATE_KEY, CONTRACT_ADDRESS.
        Optional: POLLING_INTERVAL (ms), MAX_GAS_PRICE (gwei), GAS_LIMIT,
        MIN_PROFIT_ETH, SCAN_WINDOW, CONFIRMATION_TIMEOUT, EVENT_POLL_INTERVAL,
        RPC_TIMEOUT.

        Raises:
            FatalInitError: MISSING_CONFIG for absent or unparseable values
        """
        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED_ENV if not env.get(name)]
        if missing:
            raise FatalInitError(
                FatalInitKind.MISSING_CONFIG,
                f"Missing required environment variables: {', '.join(missing)}",
            )

        try:
            return cls(
                rpc_url=env["RPC_URL"],
                private_key=env["PRIVATE_KEY"],
                contract_address=env["CONTRACT_ADDRESS"],
                poll_interval_ms=int(env.get("POLLING_INTERVAL", "5000")),
                max_gas_price_wei=to_wei(Decimal(env.get("MAX_GAS_PRICE", "50")), "gwei"),
                default_gas_limit=int(env.get("GAS_LIMIT", "500000")),
                min_intent_size_wei=to_wei(Decimal(env.get("MIN_PROFIT_ETH", "0.001")), "ether"),
                scan_window=int(env.get("SCAN_WINDOW", "100")),
                confirmation_timeout=float(env.get("CONFIRMATION_TIMEOUT", "120")),
                event_poll_interval=float(env.get("EVENT_POLL_INTERVAL", "2")),
                rpc_timeout=float(env.get("RPC_TIMEOUT", "15")),
            )
        except (ValueError, InvalidOperation) as e:
            raise FatalInitError(FatalInitKind.MISSING_CONFIG, f"Invalid configuration value: {e}") from e
