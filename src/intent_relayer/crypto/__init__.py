"""
intent_relayer.crypto — EIP-712 typed data for signed swap intents.

Provides:
- Domain separator and SwapIntent struct hashing
- Signed-intent dedup hashes
- secp256k1 signer recovery with the verifier's v/s rules
- Wallet-style signing (for tests and the `sign` command)
"""

from intent_relayer.crypto.typed_data import (
    SWAP_INTENT_TYPEHASH,
    IntentDomain,
    SignatureError,
    build_typed_message,
    domain_separator,
    recover_signer,
    sign_intent,
    signed_intent_hash,
    struct_hash,
)

__all__ = [
    "IntentDomain",
    "SWAP_INTENT_TYPEHASH",
    "SignatureError",
    "build_typed_message",
    "domain_separator",
    "recover_signer",
    "sign_intent",
    "signed_intent_hash",
    "struct_hash",
]
