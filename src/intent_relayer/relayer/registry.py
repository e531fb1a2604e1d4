"""
DedupRegistry: intents the relayer has already brought to a terminal outcome.

Process-lifetime only. It is a liveness optimisation: the ledger stays the
source of truth and every submission path re-validates against it.
"""

from __future__ import annotations


class DedupRegistry:
    """
    Two sets of terminal keys: stored intent ids and signed intent hashes.

    Usage:
        registry = DedupRegistry()
        registry.mark_stored(42)
        registry.is_stored_terminal(42)  # True
    """

    def __init__(self) -> None:
        self._stored: set[int] = set()
        self._signed: set[str] = set()

    def mark_stored(self, intent_id: int) -> bool:
        """Record a stored intent id. Returns False if it was already present."""
        if intent_id in self._stored:
            return False
        self._stored.add(intent_id)
        return True

    def mark_signed(self, intent_hash: str) -> bool:
        """Record a signed intent hash. Returns False if it was already present."""
        key = intent_hash.lower()
        if key in self._signed:
            return False
        self._signed.add(key)
        return True

    def is_stored_terminal(self, intent_id: int) -> bool:
        return intent_id in self._stored

    def is_signed_terminal(self, intent_hash: str) -> bool:
        return intent_hash.lower() in self._signed

    def stats(self) -> dict[str, int]:
        return {"stored": len(self._stored), "signed": len(self._signed)}

    def __len__(self) -> int:
        return len(self._stored) + len(self._signed)
