"""
election_writer/write/signer.py
-------------------------------

Client for the node's signing service.

The writer never holds a key. It hands the unsigned transaction fields to
the signer sidecar (``POST <endpoint>/eth-sign``) and gets back the
serialized signed transaction and its hash, ready for
``eth_sendRawTransaction``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

import requests

from ..errors import SignerError, SignerRequestError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedTx:
    raw_transaction: str
    tx_hash: str


class SignerClient:
    def __init__(self, endpoint: str, timeout: float = 20.0) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.timeout = float(timeout)

    def sign(self, tx_fields: Dict[str, Any], chain_id: int) -> SignedTx:
        url = f"{self.endpoint}/eth-sign"
        body = {"transaction": tx_fields, "chainId": int(chain_id)}
        try:
            resp = requests.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise SignerRequestError(f"POST {url} failed: {e}") from e

        if not resp.ok:
            raise SignerRequestError(f"POST {url} returned HTTP-{resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise SignerError(f"Signer returned non-JSON body (HTTP-{resp.status_code}).") from e

        raw = data.get("rawTransaction") if isinstance(data, dict) else None
        tx_hash = data.get("transactionHash") if isinstance(data, dict) else None
        if not raw or not tx_hash:
            # never log the payload itself
            raise SignerError(
                f"Could not sign tx to {tx_fields.get('to')} with nonce {tx_fields.get('nonce')}."
            )
        return SignedTx(raw_transaction=str(raw), tx_hash=str(tx_hash).lower())
