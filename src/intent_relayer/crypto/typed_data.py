"""
EIP-712 typed-data codec for IntentSwap signed intents.

Reproduces the ledger verifier's computation byte for byte:

    domainSeparator = keccak(abi.encode(
        EIP712DOMAIN_TYPEHASH, keccak(name), keccak(version), chainId, verifyingContract))
    structHash      = keccak(abi.encode(
        SWAP_INTENT_TYPEHASH, fromToken, toToken, amountIn, minAmountOut,
        recipient, deadline, nonce))
    digest          = keccak(0x19 ‖ 0x01 ‖ domainSeparator ‖ structHash)

Signer recovery uses secp256k1 public key recovery. The ledger verifier
rejects malleable (high-s) signatures and any `v` other than 27/28, so the
same rules apply here; otherwise a signature accepted off-chain could
revert on-chain.

Reference: https://eips.ethereum.org/EIPS/eip-712
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any

import ecdsa
from ecdsa.errors import MalformedPointError
from ecdsa.numbertheory import Error as NumberTheoryError
from ecdsa.util import sigdecode_string
from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak, to_checksum_address

from intent_relayer.core.models import SignedIntent

EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
SWAP_INTENT_TYPE = (
    "SwapIntent(address fromToken,address toToken,uint256 amountIn,"
    "uint256 minAmountOut,address recipient,uint256 deadline,uint256 nonce)"
)
EIP712_DOMAIN_TYPEHASH = keccak(text=EIP712_DOMAIN_TYPE)
SWAP_INTENT_TYPEHASH = keccak(text=SWAP_INTENT_TYPE)

DEFAULT_DOMAIN_NAME = "IntentSwap"
DEFAULT_DOMAIN_VERSION = "1"

# (name, abi type) in signing order
SWAP_INTENT_FIELDS: list[tuple[str, str]] = [
    ("fromToken", "address"),
    ("toToken", "address"),
    ("amountIn", "uint256"),
    ("minAmountOut", "uint256"),
    ("recipient", "address"),
    ("deadline", "uint256"),
    ("nonce", "uint256"),
]
_FIELD_TYPES = [t for _, t in SWAP_INTENT_FIELDS]

SECP256K1_N = ecdsa.SECP256k1.order
_HALF_N = SECP256K1_N // 2


class SignatureError(ValueError):
    """Raised for signatures that cannot be recovered under the verifier's rules."""
    pass


@dataclass(frozen=True)
class IntentDomain:
    """The EIP-712 domain binding signatures to one contract on one chain."""
    chain_id: int
    verifying_contract: str
    name: str = DEFAULT_DOMAIN_NAME
    version: str = DEFAULT_DOMAIN_VERSION
    separator: bytes = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "separator",
            domain_separator(self.name, self.version, self.chain_id, self.verifying_contract),
        )

    def digest(self, intent: SignedIntent) -> bytes:
        """Final signing digest of `intent` under this domain."""
        return typed_data_digest(self.separator, struct_hash(intent))


# ------------------------------------------------------------------
# Hashing
# ------------------------------------------------------------------

def domain_separator(name: str, version: str, chain_id: int, verifying_contract: str) -> bytes:
    return keccak(encode(
        ["bytes32", "bytes32", "bytes32", "uint256", "address"],
        [
            EIP712_DOMAIN_TYPEHASH,
            keccak(text=name),
            keccak(text=version),
            chain_id,
            to_checksum_address(verifying_contract),
        ],
    ))


def _intent_values(intent: SignedIntent) -> list[Any]:
    return [
        to_checksum_address(intent.from_token),
        to_checksum_address(intent.to_token),
        intent.amount_in,
        intent.min_amount_out,
        to_checksum_address(intent.recipient),
        intent.deadline,
        intent.nonce,
    ]


def _encode(types: list[str], values: list[Any]) -> bytes:
    try:
        return encode(types, values)
    except EncodingError as e:
        raise ValueError(f"Intent field out of ABI range: {e}") from e


def struct_hash(intent: SignedIntent) -> bytes:
    return keccak(_encode(["bytes32", *_FIELD_TYPES], [SWAP_INTENT_TYPEHASH, *_intent_values(intent)]))


def typed_data_digest(separator: bytes, struct: bytes) -> bytes:
    return keccak(b"\x19\x01" + separator + struct)


def signed_intent_hash(intent: SignedIntent) -> str:
    """
    Dedup key of a signed intent: keccak of the ABI-encoded fields.

    Independent of the domain, so the same intent relayed twice maps to the
    same key even across restarts of the domain computation.
    """
    return "0x" + keccak(_encode(_FIELD_TYPES, _intent_values(intent))).hex()


# ------------------------------------------------------------------
# Signatures
# ------------------------------------------------------------------

def _signature_bytes(signature: str | bytes) -> bytes:
    if isinstance(signature, bytes):
        return signature
    s = signature[2:] if signature.startswith("0x") else signature
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise SignatureError("Signature is not valid hex") from e


def recover_signer(digest: bytes, signature: str | bytes) -> str:
    """
    Recover the checksummed address that produced `signature` over `digest`.

    Args:
        digest: 32-byte message digest
        signature: 65-byte `r ‖ s ‖ v` signature, hex or raw bytes

    Returns:
        str: EIP-55 address of the signer

    Raises:
        SignatureError: if the signature is malformed, malleable, or unrecoverable
    """
    if len(digest) != 32:
        raise SignatureError(f"Digest must be 32 bytes, got {len(digest)}")
    sig = _signature_bytes(signature)
    if len(sig) != 65:
        raise SignatureError(f"Signature must be 65 bytes, got {len(sig)}")

    r = int.from_bytes(sig[:32], "big")
    s = int.from_bytes(sig[32:64], "big")
    v = sig[64]
    if v not in (27, 28):
        raise SignatureError(f"Invalid recovery id v={v}")
    if not (0 < r < SECP256K1_N) or not (0 < s < SECP256K1_N):
        raise SignatureError("Signature scalar out of range")
    if s > _HALF_N:
        raise SignatureError("Malleable signature (high s)")

    try:
        candidates = ecdsa.VerifyingKey.from_public_key_recovery_with_digest(
            sig[:64],
            digest,
            ecdsa.SECP256k1,
            hashfunc=hashlib.sha256,
            sigdecode=sigdecode_string,
        )
    except (MalformedPointError, NumberTheoryError, ValueError) as e:
        raise SignatureError(f"Public key recovery failed: {e}") from e

    # candidates[0] comes from the even-y R point (recovery id 0)
    index = v - 27
    if index >= len(candidates):
        raise SignatureError("No public key for recovery id")
    public_key = candidates[index].to_string("raw")
    return to_checksum_address("0x" + keccak(public_key)[-20:].hex())


def build_typed_message(intent: SignedIntent, domain: IntentDomain) -> dict[str, Any]:
    """Return the EIP-712 JSON message a wallet signs for `intent`."""
    values = _intent_values(intent)
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "SwapIntent": [{"name": n, "type": t} for n, t in SWAP_INTENT_FIELDS],
        },
        "primaryType": "SwapIntent",
        "domain": {
            "name": domain.name,
            "version": domain.version,
            "chainId": domain.chain_id,
            "verifyingContract": to_checksum_address(domain.verifying_contract),
        },
        "message": {n: v for (n, _), v in zip(SWAP_INTENT_FIELDS, values)},
    }


def sign_intent(private_key: str, intent: SignedIntent, domain: IntentDomain) -> str:
    """
    Sign `intent` the way a user's wallet does (eth_signTypedData_v4).

    Returns:
        str: 0x-prefixed 65-byte signature
    """
    from eth_account import Account
    from eth_account.messages import encode_typed_data

    signable = encode_typed_data(full_message=build_typed_message(intent, domain))
    signed = Account.sign_message(signable, private_key)
    return "0x" + bytes(signed.signature).hex()
