from pydantic import BaseModel, Field

from intent_relayer.core.models import SignedIntent


class SignedIntentRequest(BaseModel):
    """Request model for submitting a signed swap intent."""

    from_token: str = Field(..., description="Token sold (zero address for the native asset)")
    to_token: str = Field(..., description="Token bought")
    amount_in: int = Field(..., description="Input amount in the token's smallest unit")
    min_amount_out: int = Field(..., description="Minimum acceptable output amount")
    recipient: str = Field(..., description="Owner of the intent; must be the signer")
    deadline: int = Field(..., description="Unix time after which the intent is void")
    nonce: int = Field(..., description="The recipient's current nonce on the contract")
    signature: str = Field(
        ...,
        pattern=r"^0x[0-9a-fA-F]{130}$",
        description="65-byte EIP-712 signature (r || s || v), 0x-prefixed hex",
    )

    def to_intent(self) -> SignedIntent:
        return SignedIntent(
            from_token=self.from_token,
            to_token=self.to_token,
            amount_in=self.amount_in,
            min_amount_out=self.min_amount_out,
            recipient=self.recipient,
            deadline=self.deadline,
            nonce=self.nonce,
        )


class SubmitResponse(BaseModel):
    """Response model for an accepted signed intent."""

    intent_hash: str = Field(..., description="Dedup hash of the signed intent")
    status: str = Field("queued", description="Intake status; validation happens on the next cycle")


class StatusResponse(BaseModel):
    """Response model for the relayer's process-local state."""

    address: str = Field(..., description="Relayer account address")
    contract: str = Field(..., description="IntentSwap contract address")
    chain_id: int | None = Field(None, description="Chain id, once initialized")
    sequence: int | None = Field(None, description="Next outgoing sequence number")
    registry: dict[str, int] = Field(default_factory=dict, description="Terminal intents seen, by kind")
    running: bool = Field(..., description="Whether the scheduler loop is running")
    cycles: int = Field(0, description="Scheduled cycles run so far")
    pending: int = Field(0, description="Work items and signed intents waiting")
    retrying: int = Field(0, description="Signed intents kept for another attempt")
    submitted: int = Field(0, description="Transactions broadcast so far")
