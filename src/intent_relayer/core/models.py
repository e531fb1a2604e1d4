"""
Core data models for the IntentSwap ledger.
All amounts are integers in the smallest unit (wei) internally.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

WEI_PER_ETHER = 10**18
WEI_PER_GWEI = 10**9


class StoredIntent(BaseModel):
    """An intent created on-ledger by a deposit. Read-only for the relayer."""
    id: int  # 0 = absent
    creator: str
    from_token: str
    to_token: str
    amount_in: int
    min_amount_out: int
    deadline: int  # unix seconds
    fulfilled: bool = False
    cancelled: bool = False

    @property
    def exists(self) -> bool:
        return self.id != 0

    @property
    def is_terminal(self) -> bool:
        """Fulfilled or cancelled; neither flag is ever cleared."""
        return self.fulfilled or self.cancelled


class SignedIntent(BaseModel):
    """
    An off-ledger swap intent authorised by the recipient's EIP-712 signature.

    Field order matches the SwapIntent type of the ledger's verifier.
    """
    from_token: str
    to_token: str
    amount_in: int
    min_amount_out: int
    recipient: str
    deadline: int
    nonce: int

    def as_tuple(self) -> tuple[str, str, int, int, str, int, int]:
        """The struct as passed to `executeSwap`."""
        return (
            self.from_token,
            self.to_token,
            self.amount_in,
            self.min_amount_out,
            self.recipient,
            self.deadline,
            self.nonce,
        )


class ContractInfo(BaseModel):
    """Snapshot of the ledger contract's configuration."""
    paused: bool
    fee_bps: int
    fee_recipient: str
    next_intent_id: int
    relayer_address: str

    @property
    def fee_pct(self) -> float:
        """Protocol fee in percent."""
        return self.fee_bps / 100


class TxReceipt(BaseModel):
    """A mined transaction receipt (subset of the JSON-RPC fields)."""
    tx_hash: str
    block_number: int
    status: int  # 1 = success, 0 = reverted
    gas_used: int = 0
    logs: list[dict] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class LedgerEvent(BaseModel):
    """A decoded contract log."""
    name: str
    intent_id: int
    block_number: int
    tx_hash: str
    topics: list[str] = Field(default_factory=list)
    data: str = "0x"
