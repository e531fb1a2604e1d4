"""
RelayerWallet: the relayer's signing credential.

Private keys never leave this module. The rest of the relayer only sees the
address and signed raw transactions.
"""

from __future__ import annotations

from typing import Any

from eth_account import Account


class WalletError(Exception):
    pass


class RelayerWallet:
    """
    Holds the relayer's private key and signs outgoing transactions.

    Usage:
        wallet = RelayerWallet.from_private_key(os.environ["PRIVATE_KEY"])
        raw = wallet.sign_transaction({"to": ..., "nonce": 7, ...})
    """

    def __init__(self, account: Any) -> None:
        self._account = account
        self.address: str = account.address

    @classmethod
    def from_private_key(cls, private_key: str) -> RelayerWallet:
        """
        Load a wallet from a hex private key (with or without 0x prefix).

        Raises:
            WalletError: if the key is malformed
        """
        key = private_key if private_key.startswith("0x") else "0x" + private_key
        try:
            account = Account.from_key(key)
        except (ValueError, TypeError) as e:
            raise WalletError("Invalid relayer private key") from e
        return cls(account)

    def sign_transaction(self, tx: dict[str, Any]) -> str:
        """
        Sign a legacy transaction dict.

        Args:
            tx: fields `to`, `data`, `value`, `gas`, `gasPrice`, `nonce`, `chainId`

        Returns:
            str: 0x-prefixed raw signed transaction
        """
        signed = self._account.sign_transaction(tx)
        return "0x" + bytes(signed.raw_transaction).hex()

    def __repr__(self) -> str:
        return f"RelayerWallet(address={self.address!r})"
