"""
Error taxonomy of the relayer.

Per-intent errors (validation, guard, submission) are caught by the
pipeline and reported; only `FatalInitError` is allowed to stop the process.
"""

from __future__ import annotations

from enum import Enum


class RelayerError(Exception):
    """Base class for all relayer errors."""

    retryable: bool = False


class RejectionReason(str, Enum):
    STRUCTURAL_INVALID = "structural_invalid"
    EXPIRED = "expired"
    ALREADY_TERMINAL = "already_terminal"
    NONCE_MISMATCH = "nonce_mismatch"
    INVALID_SIGNATURE = "invalid_signature"


class ValidationError(RelayerError):
    """A candidate intent failed validation. Never retried within the same pass."""

    def __init__(self, reason: RejectionReason, message: str = "") -> None:
        super().__init__(message or reason.value)
        self.reason = reason


class GuardRejection(RelayerError):
    """The guard refused execution; nothing was consumed."""

    retryable = True


class GasPriceExceeded(GuardRejection):
    def __init__(self, fee_level: int, ceiling: int) -> None:
        super().__init__(
            f"Gas price too high: {fee_level / 1e9:.2f} gwei > ceiling {ceiling / 1e9:.2f} gwei"
        )
        self.fee_level = fee_level
        self.ceiling = ceiling


class Unprofitable(GuardRejection):
    pass


class SubmissionFailureKind(str, Enum):
    REVERTED = "reverted"
    NETWORK_ERROR = "network_error"


class SubmissionFailure(RelayerError):
    """
    Submission did not confirm. The intent is not marked terminal and stays
    eligible on later cycles until its deadline; `kind` tells a revert from a
    network problem.
    """

    retryable = True

    def __init__(self, kind: SubmissionFailureKind, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.tx_hash = tx_hash


class SequenceDesync(RelayerError):
    """The submitted sequence number no longer matched the ledger's."""

    retryable = True

    def __init__(self, message: str, submitted: int, resynced: int | None = None) -> None:
        super().__init__(message)
        self.submitted = submitted
        self.resynced = resynced


class FatalInitKind(str, Enum):
    MISSING_CONFIG = "missing_config"
    CONTRACT_NOT_FOUND = "contract_not_found"
    INSUFFICIENT_BALANCE = "insufficient_balance"


class FatalInitError(RelayerError):
    """Unrecoverable startup condition."""

    def __init__(self, kind: FatalInitKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
