"""
LedgerClient: JSON-RPC client for an EVM node and the IntentSwap contract.

Pure I/O boundary. Contract reads go through `eth_call`; writes are
pre-signed raw transactions handed to `eth_sendRawTransaction`.

Docs: https://ethereum.org/en/developers/docs/apis/json-rpc/
"""

from __future__ import annotations

import itertools
import time
from typing import Any

import httpx
from eth_abi.exceptions import DecodingError

from intent_relayer.core import abi
from intent_relayer.core.address import validate_address
from intent_relayer.core.models import StoredIntent, TxReceipt


class LedgerError(Exception):
    """Raised when the node returns a JSON-RPC error."""

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class LedgerConnectionError(LedgerError):
    """Raised when the node cannot be reached or answers with a non-RPC payload."""
    pass


class ReceiptTimeout(LedgerError):
    """Raised when a transaction is not mined within the wait window."""
    pass


class LedgerClient:
    """
    Synchronous client for the ledger.

    Usage:
        ledger = LedgerClient("http://localhost:8545", "0xContract...")
        next_id = ledger.next_intent_id()
        intent = ledger.get_intent(next_id - 1)
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.contract_address = validate_address(contract_address)
        self._client = client or httpx.Client(
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Chain info
    # ------------------------------------------------------------------

    def chain_id(self) -> int:
        return _to_int(self._rpc("eth_chainId", []))

    def block_number(self) -> int:
        return _to_int(self._rpc("eth_blockNumber", []))

    def gas_price(self) -> int:
        """Current fee level in wei per gas unit."""
        return _to_int(self._rpc("eth_gasPrice", []))

    def get_code(self, address: str) -> str:
        return str(self._rpc("eth_getCode", [address, "latest"]))

    def get_balance(self, address: str) -> int:
        return _to_int(self._rpc("eth_getBalance", [address, "latest"]))

    def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """The ledger's authoritative next sequence number for `address`."""
        return _to_int(self._rpc("eth_getTransactionCount", [address, block]))

    # ------------------------------------------------------------------
    # Contract reads
    # ------------------------------------------------------------------

    def get_intent(self, intent_id: int) -> StoredIntent:
        """Return the stored intent; `id == 0` means it does not exist."""
        (fields,) = self._call(abi.GET_INTENT, intent_id)
        return StoredIntent(
            id=fields[0],
            creator=fields[1],
            from_token=fields[2],
            to_token=fields[3],
            amount_in=fields[4],
            min_amount_out=fields[5],
            deadline=fields[6],
            fulfilled=fields[7],
            cancelled=fields[8],
        )

    def next_intent_id(self) -> int:
        return int(self._call(abi.NEXT_INTENT_ID)[0])

    def user_intents(self, address: str) -> list[int]:
        """Intent ids created by `address`."""
        return [int(i) for i in self._call(abi.USER_INTENTS, address)[0]]

    def nonces(self, address: str) -> int:
        """Current signed-intent nonce of `address`."""
        return int(self._call(abi.NONCES, address)[0])

    def authorized_fulfillers(self, address: str) -> bool:
        return bool(self._call(abi.AUTHORIZED_FULFILLERS, address)[0])

    def paused(self) -> bool:
        return bool(self._call(abi.PAUSED)[0])

    def fee_bps(self) -> int:
        return int(self._call(abi.FEE_BPS)[0])

    def fee_recipient(self) -> str:
        return str(self._call(abi.FEE_RECIPIENT)[0])

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def estimate_gas(self, tx: dict[str, Any]) -> int:
        """
        Estimate gas units for a call.

        Args:
            tx: call object with `from`, `to`, `data` and optional `value`
                (integers are hex-encoded here)
        """
        return _to_int(self._rpc("eth_estimateGas", [_hexify(tx)]))

    def send_raw_transaction(self, raw_tx: str) -> str:
        """
        Broadcast a signed transaction.

        Returns:
            str: transaction hash
        """
        return str(self._rpc("eth_sendRawTransaction", [raw_tx]))

    def get_transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        data = self._rpc("eth_getTransactionReceipt", [tx_hash])
        if not data:
            return None
        return TxReceipt(
            tx_hash=data.get("transactionHash", tx_hash),
            block_number=_to_int(data["blockNumber"]),
            status=_to_int(data.get("status", "0x1")),
            gas_used=_to_int(data.get("gasUsed", "0x0")),
            logs=data.get("logs", []),
        )

    def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 1.0,
    ) -> TxReceipt:
        """
        Block until `tx_hash` is mined.

        Raises:
            ReceiptTimeout: if no receipt appears within `timeout` seconds
        """
        deadline = time.monotonic() + timeout
        while True:
            receipt = self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            if time.monotonic() >= deadline:
                raise ReceiptTimeout(f"Transaction {tx_hash} not mined after {timeout:.0f}s")
            time.sleep(poll_interval)

    def get_logs(
        self,
        from_block: int,
        to_block: int,
        topics: list[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return raw logs emitted by the contract in the block range."""
        params: dict[str, Any] = {
            "address": self.contract_address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        if topics:
            params["topics"] = topics
        return list(self._rpc("eth_getLogs", [params]) or [])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _call(self, fn: abi.ContractFunction, *args: Any) -> tuple[Any, ...]:
        data = self._rpc(
            "eth_call",
            [{"to": self.contract_address, "data": fn.encode_call(*args)}, "latest"],
        )
        if not data or data == "0x":
            raise LedgerError(f"Empty return data from {fn.signature}")
        try:
            return fn.decode_output(data)
        except (DecodingError, ValueError) as e:
            raise LedgerError(f"Undecodable return data from {fn.signature}: {e}") from e

    def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self._client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise LedgerConnectionError(f"{method} failed: {e}") from e
        if response.status_code != 200:
            raise LedgerConnectionError(
                f"RPC error {response.status_code} for {method}: {response.text}"
            )
        try:
            body = response.json()
        except ValueError as e:
            raise LedgerConnectionError(f"Non-JSON reply to {method}: {response.text[:200]}") from e
        if not isinstance(body, dict):
            raise LedgerConnectionError(f"Unexpected reply to {method}: {body!r}")
        if "error" in body:
            err = body["error"] or {}
            raise LedgerError(
                str(err.get("message", err)),
                code=err.get("code"),
                data=err.get("data"),
            )
        return body.get("result")

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> LedgerClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(str(value), 16) if str(value).startswith("0x") else int(value)


def _hexify(tx: dict[str, Any]) -> dict[str, Any]:
    return {k: hex(v) if isinstance(v, int) else v for k, v in tx.items()}
