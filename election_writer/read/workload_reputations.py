"""
Workload-chain reputation reader.

Each chain exposes the committee reputation query result at
``<chain endpoint><vchain_reputations_path>`` as two parallel lists::

    {"Addresses": ["<hex internal address>", ...], "Reputations": [0, 5, ...]}

A chain whose query fails gets an empty table for this tick.
"""

from __future__ import annotations

import logging
from typing import Dict, List

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import WorkloadReadError
from ..runtime.state import NodeState, normalize_internal_address
from .workload_metrics import chain_endpoint

log = logging.getLogger(__name__)


class ReputationsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    addresses: List[str] = Field(..., alias="Addresses")
    reputations: List[int] = Field(..., alias="Reputations")


def fetch_reputations(url: str, timeout: float = 20.0) -> Dict[str, int]:
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise WorkloadReadError(f"GET {url} failed: {e}") from e
    if not resp.ok:
        raise WorkloadReadError(f"GET {url} returned HTTP-{resp.status_code}")
    try:
        m = ReputationsModel.model_validate_json(resp.text)
    except ValidationError as e:
        raise WorkloadReadError(f"Invalid reputations response for {url}: {e}") from e
    if len(m.addresses) != len(m.reputations):
        raise WorkloadReadError(
            f"Reputations length mismatch for {url}: {len(m.addresses)} != {len(m.reputations)}"
        )
    return {normalize_internal_address(a): int(r) for a, r in zip(m.addresses, m.reputations)}


def fetch_reputation_score(url: str, address: str, timeout: float = 20.0) -> int:
    """Score of one internal address; raises ``WorkloadReadError`` if the chain does not report it."""
    table = fetch_reputations(url, timeout=timeout)
    key = normalize_internal_address(address)
    if key not in table:
        raise WorkloadReadError(f"{url}: no reputation reported for {address}")
    return table[key]


def read_all_workload_reputations(
    endpoint_schema: str, path: str, state: NodeState, now: int, timeout: float = 20.0
) -> int:
    fresh: Dict[str, Dict[str, int]] = {}
    successful = 0
    for chain_id in state.workload_chains:
        url = chain_endpoint(chain_id, endpoint_schema) + path
        try:
            fresh[chain_id] = fetch_reputations(url, timeout=timeout)
            successful += 1
        except WorkloadReadError as e:
            log.warning("workload chain %s reputations unavailable: %s", chain_id, e)
            fresh[chain_id] = {}

    state.workload_reputations = fresh
    state.workload_reputations_last_poll_time = now
    log.info("Fetched workload chain reputations, chains succeeded: %d/%d.", successful, len(state.workload_chains))
    return successful
