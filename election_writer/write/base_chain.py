"""
election_writer/write/base_chain.py
-----------------------------------

Minimal JSON-RPC client for the base chain plus the elections contract
calls the writer needs.

Only the handful of ``eth_*`` methods used by the run loop are wrapped.
Quantities come back as hex strings and are converted to ints here so the
rest of the package deals in plain integers (wei, gas, block numbers).
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from eth_abi import decode, encode
from eth_utils import add_0x_prefix, function_signature_to_4byte_selector, to_checksum_address

from ..errors import BaseChainRpcError

GAS_HEADROOM_PERCENT = 20
MAX_GAS_LIMIT = 2_000_000


def to_base_address(address: str) -> str:
    """Checksummed ``0x`` address; registry and config addresses may come unprefixed."""
    return to_checksum_address(add_0x_prefix(address.strip().lower()))


def _quantity(value: Any, method: str) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise BaseChainRpcError(method, f"expected hex quantity, got {value!r}")
    try:
        return int(value, 16)
    except ValueError as e:
        raise BaseChainRpcError(method, f"bad hex quantity {value!r}") from e


@dataclass(frozen=True)
class TxReceipt:
    block_number: int
    status: int
    gas_used: int


class BaseChainClient:
    def __init__(self, endpoint: str, timeout: float = 20.0, client: Optional[httpx.Client] = None) -> None:
        self.endpoint = endpoint
        self._client = client or httpx.Client(timeout=timeout)
        self._ids = itertools.count(1)

    def close(self) -> None:
        self._client.close()

    def _rpc(self, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            r = self._client.post(self.endpoint, json=body)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            raise BaseChainRpcError(method, str(e)) from e
        except ValueError as e:
            raise BaseChainRpcError(method, f"invalid JSON response: {e}") from e

        if not isinstance(data, dict):
            raise BaseChainRpcError(method, "response is not a JSON object")
        err = data.get("error")
        if err:
            if isinstance(err, dict):
                raise BaseChainRpcError(method, str(err.get("message", err)), err.get("code"))
            raise BaseChainRpcError(method, str(err))
        return data.get("result")

    # --- reads ---

    def get_chain_id(self) -> int:
        return _quantity(self._rpc("eth_chainId", []), "eth_chainId")

    def get_gas_price(self) -> int:
        return _quantity(self._rpc("eth_gasPrice", []), "eth_gasPrice")

    def get_balance(self, address: str) -> int:
        return _quantity(self._rpc("eth_getBalance", [to_base_address(address), "latest"]), "eth_getBalance")

    def get_transaction_count(self, address: str, block: str = "latest") -> int:
        result = self._rpc("eth_getTransactionCount", [to_base_address(address), block])
        return _quantity(result, "eth_getTransactionCount")

    def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return _quantity(self._rpc("eth_estimateGas", [tx]), "eth_estimateGas")

    def get_transaction_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """None while the tx is not mined yet."""
        method = "eth_getTransactionReceipt"
        result = self._rpc(method, [tx_hash])
        if result is None:
            return None
        if not isinstance(result, dict) or result.get("blockNumber") is None:
            return None
        return TxReceipt(
            block_number=_quantity(result["blockNumber"], method),
            status=_quantity(result.get("status", "0x1"), method),
            gas_used=_quantity(result.get("gasUsed", "0x0"), method),
        )

    def call(self, tx: Dict[str, Any], block: str = "latest") -> bytes:
        result = self._rpc("eth_call", [tx, block])
        if not isinstance(result, str):
            raise BaseChainRpcError("eth_call", f"expected hex data, got {result!r}")
        try:
            return bytes.fromhex(result[2:] if result.startswith("0x") else result)
        except ValueError as e:
            raise BaseChainRpcError("eth_call", f"bad hex data {result[:20]!r}") from e

    # --- writes ---

    def send_raw_transaction(self, raw_transaction: str) -> str:
        result = self._rpc("eth_sendRawTransaction", [raw_transaction])
        return str(result or "").lower()


# ---------------------------------------------------------------------------
# Elections contract
# ---------------------------------------------------------------------------


def encode_call(signature: str, types: List[str], args: List[Any]) -> str:
    data = function_signature_to_4byte_selector(signature)
    if types:
        data += encode(types, args)
    return "0x" + data.hex()


class ElectionsContract:
    """Call data builders and the one read-only query on the elections contract."""

    def __init__(self, chain: BaseChainClient, address: str) -> None:
        self.chain = chain
        self.address = to_base_address(address)

    def ready_to_sync_data(self) -> str:
        return encode_call("readyToSync()", [], [])

    def ready_for_committee_data(self) -> str:
        return encode_call("readyForCommittee()", [], [])

    def vote_unready_data(self, subject: str, expiration: int) -> str:
        return encode_call(
            "voteUnready(address,uint256)", ["address", "uint256"], [to_base_address(subject), int(expiration)]
        )

    def vote_out_data(self, subject: str) -> str:
        return encode_call("voteOut(address)", ["address"], [to_base_address(subject)])

    def can_join_committee(self, sender: str) -> bool:
        data = encode_call("canJoinCommittee(address)", ["address"], [to_base_address(sender)])
        raw = self.chain.call({"from": to_base_address(sender), "to": self.address, "data": data})
        if len(raw) < 32:
            raise BaseChainRpcError("eth_call", f"canJoinCommittee returned {len(raw)} bytes")
        (ok,) = decode(["bool"], raw)
        return bool(ok)

    def gas_limit(self, sender: str, data: str) -> int:
        estimate = self.chain.estimate_gas({"from": to_base_address(sender), "to": self.address, "data": data})
        return min(estimate * (100 + GAS_HEADROOM_PERCENT) // 100, MAX_GAS_LIMIT)
