"""
ABI surface of the IntentSwap ledger contract.

Only the functions and events the relayer touches are described here.
Calldata is `selector ‖ abi.encode(args)`; return data is decoded with the
listed output types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode
from eth_utils import keccak

SWAP_INTENT_TUPLE = "(address,address,uint256,uint256,address,uint256,uint256)"

# getIntent(uint256) returns the Intent struct in storage order
INTENT_STRUCT_TYPES = [
    "uint256",  # id
    "address",  # creator
    "address",  # fromToken
    "address",  # toToken
    "uint256",  # amountIn
    "uint256",  # minAmountOut
    "uint256",  # deadline
    "bool",     # fulfilled
    "bool",     # cancelled
]


@dataclass(frozen=True)
class ContractFunction:
    """A contract function: canonical signature plus output types."""
    name: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    def encode_call(self, *args: Any) -> str:
        """Return 0x-prefixed calldata for this function."""
        body = encode(list(self.inputs), list(args)) if self.inputs else b""
        return "0x" + (self.selector + body).hex()

    def decode_output(self, data: str | bytes) -> tuple[Any, ...]:
        raw = bytes.fromhex(data[2:] if data.startswith("0x") else data) if isinstance(data, str) else data
        return decode(list(self.outputs), raw)


GET_INTENT = ContractFunction("getIntent", ("uint256",), ("(" + ",".join(INTENT_STRUCT_TYPES) + ")",))
NEXT_INTENT_ID = ContractFunction("nextIntentId", (), ("uint256",))
USER_INTENTS = ContractFunction("userIntents", ("address",), ("uint256[]",))
NONCES = ContractFunction("nonces", ("address",), ("uint256",))
AUTHORIZED_FULFILLERS = ContractFunction("authorizedFulfillers", ("address",), ("bool",))
PAUSED = ContractFunction("paused", (), ("bool",))
FEE_BPS = ContractFunction("feeBps", (), ("uint256",))
FEE_RECIPIENT = ContractFunction("feeRecipient", (), ("address",))

FULFILL_INTENT = ContractFunction("fulfillIntent", ("uint256",))
EXECUTE_SWAP = ContractFunction("executeSwap", (SWAP_INTENT_TUPLE, "bytes"))


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------

EVENT_SIGNATURES: dict[str, str] = {
    "IntentCreated": "IntentCreated(uint256,address,address,address,uint256,uint256,uint256)",
    "IntentFulfilled": "IntentFulfilled(uint256,address)",
    "IntentCancelled": "IntentCancelled(uint256,address)",
}


def event_topic(name: str) -> str:
    """Return topic0 (0x-prefixed keccak of the event signature)."""
    return "0x" + keccak(text=EVENT_SIGNATURES[name]).hex()


EVENT_NAMES_BY_TOPIC: dict[str, str] = {event_topic(n): n for n in EVENT_SIGNATURES}


def decode_intent_id(topics: list[str], data: str) -> int:
    """
    Extract the intent id from a log.

    The id is the first indexed argument; logs emitted without indexed
    arguments carry it in the first data word instead.
    """
    if len(topics) > 1:
        return int(topics[1], 16)
    raw = data[2:] if data.startswith("0x") else data
    if len(raw) < 64:
        raise ValueError("Log carries no intent id")
    return int(raw[:64], 16)
