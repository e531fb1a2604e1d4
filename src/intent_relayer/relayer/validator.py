"""
IntentValidator: decides whether a candidate intent may be executed now.

Checks run in a fixed order and stop at the first failure:

    1. structural     addresses, distinct tokens, positive amounts
    2. temporal       deadline strictly in the future
    3. terminal-state stored: not fulfilled/cancelled; signed: not already relayed
    4. nonce          signed only: equals ledger.nonces(recipient)
    5. cryptographic  signed only: signature recovers to the recipient

A failure raises `ValidationError` carrying the `RejectionReason`.
The validator has no side effects; it only reads ledger state.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from intent_relayer.core.address import AddressError, is_zero_address, same_address, validate_address
from intent_relayer.core.ledger import LedgerClient
from intent_relayer.core.models import SignedIntent, StoredIntent
from intent_relayer.crypto.typed_data import (
    IntentDomain,
    SignatureError,
    recover_signer,
    signed_intent_hash,
)
from intent_relayer.errors import RejectionReason, ValidationError

UINT256_MAX = 2**256 - 1


class IntentValidator:
    """
    Validate stored and signed intents against current ledger state.

    Usage:
        validator = IntentValidator(ledger, domain)
        validator.validate_signed(intent, signature, is_terminal=engine.is_signed_terminal)
    """

    def __init__(
        self,
        ledger: LedgerClient,
        domain: IntentDomain | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ledger = ledger
        self.domain = domain
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def _domain(self) -> IntentDomain:
        if self.domain is None:
            raise RuntimeError("Signing domain not set; initialize the engine first")
        return self.domain

    # ------------------------------------------------------------------
    # Stored intents
    # ------------------------------------------------------------------

    def validate_stored(self, intent: StoredIntent) -> None:
        """
        Validate an on-ledger intent as just read from `getIntent`.

        Raises:
            ValidationError: with the first failing reason
        """
        if intent.id <= 0:
            raise ValidationError(RejectionReason.STRUCTURAL_INVALID, "Intent does not exist")
        self._check_structure(
            intent.from_token, intent.to_token, intent.creator, intent.amount_in, intent.min_amount_out,
        )
        self._check_deadline(intent.deadline)
        if intent.fulfilled or intent.cancelled:
            state = "fulfilled" if intent.fulfilled else "cancelled"
            raise ValidationError(RejectionReason.ALREADY_TERMINAL, f"Intent {intent.id} already {state}")

    # ------------------------------------------------------------------
    # Signed intents
    # ------------------------------------------------------------------

    def validate_signed(
        self,
        intent: SignedIntent,
        signature: str,
        is_terminal: Callable[[str], bool] = lambda _: False,
    ) -> None:
        """
        Validate an off-ledger signed intent.

        Args:
            intent: the signed intent
            signature: 0x-prefixed 65-byte signature
            is_terminal: predicate over signed-intent hashes already relayed

        Raises:
            ValidationError: with the first failing reason
        """
        self._check_structure(
            intent.from_token, intent.to_token, intent.recipient, intent.amount_in, intent.min_amount_out,
        )
        if not signature:
            raise ValidationError(RejectionReason.STRUCTURAL_INVALID, "Missing signature")
        if not all(0 <= v <= UINT256_MAX for v in (intent.deadline, intent.nonce)):
            raise ValidationError(RejectionReason.STRUCTURAL_INVALID, "Field out of uint256 range")
        self._check_deadline(intent.deadline)

        if is_terminal(signed_intent_hash(intent)):
            raise ValidationError(RejectionReason.ALREADY_TERMINAL, "Signed intent already relayed")

        current = self._ledger.nonces(intent.recipient)
        if intent.nonce != current:
            raise ValidationError(
                RejectionReason.NONCE_MISMATCH,
                f"Invalid nonce. Expected: {current}, Got: {intent.nonce}",
            )

        try:
            signer = recover_signer(self._domain().digest(intent), signature)
        except SignatureError as e:
            raise ValidationError(RejectionReason.INVALID_SIGNATURE, str(e)) from e
        if not same_address(signer, intent.recipient):
            raise ValidationError(
                RejectionReason.INVALID_SIGNATURE,
                f"Signature recovers to {signer}, not {intent.recipient}",
            )

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _check_structure(
        self,
        from_token: str,
        to_token: str,
        owner: str,
        amount_in: int,
        min_amount_out: int,
    ) -> None:
        try:
            src = validate_address(from_token)
            dst = validate_address(to_token)
            validate_address(owner)
        except AddressError as e:
            raise ValidationError(RejectionReason.STRUCTURAL_INVALID, str(e)) from e
        # token addresses may be zero (native asset); the owner may not
        if is_zero_address(owner):
            raise ValidationError(RejectionReason.STRUCTURAL_INVALID, "Zero owner address")
        if src == dst:
            raise ValidationError(RejectionReason.STRUCTURAL_INVALID, "Source and destination tokens match")
        if not (0 < amount_in <= UINT256_MAX) or not (0 < min_amount_out <= UINT256_MAX):
            raise ValidationError(RejectionReason.STRUCTURAL_INVALID, "Invalid amounts")

    def _check_deadline(self, deadline: int) -> None:
        if deadline <= self.now():
            raise ValidationError(RejectionReason.EXPIRED, "Intent expired")
