"""
election_writer/read/registry.py
--------------------------------

Registry (management service) reader.

Fetches ``<endpoint>/status`` and replaces the registry slice of the node
state in one go. On any fetch or decode failure the previous slice is kept
untouched and the error propagates to the caller.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import RegistryDecodeError, RegistryFetchError
from ..runtime.state import CommitteeMember, ElectionStatus, NodeState, WorkloadChain, normalize_internal_address

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Wire models (names follow the management service JSON)
# ---------------------------------------------------------------------


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ElectionsStatusModel(_Wire):
    last_update_time: int = Field(..., alias="LastUpdateTime")
    ready_to_sync: bool = Field(..., alias="ReadyToSync")
    ready_for_committee: bool = Field(..., alias="ReadyForCommittee")
    time_to_stale: int = Field(..., alias="TimeToStale")


class GuardianModel(_Wire):
    orbs_address: str = Field(..., alias="OrbsAddress")
    name: str = Field("", alias="Name")
    elections_status: Optional[ElectionsStatusModel] = Field(None, alias="ElectionsStatus")


class CommitteeNodeModel(_Wire):
    eth_address: str = Field(..., alias="EthAddress")
    weight: int = Field(0, alias="Weight")


class CandidateNodeModel(_Wire):
    eth_address: str = Field(..., alias="EthAddress")
    is_standby: bool = Field(False, alias="IsStandby")


class VirtualChainModel(_Wire):
    expiration: int = Field(0, alias="Expiration")
    rollout_group: str = Field("", alias="RolloutGroup")
    identity_type: int = Field(0, alias="IdentityType")
    tier: str = Field("", alias="Tier")
    genesis_ref_time: int = Field(..., alias="GenesisRefTime")


class RegistryPayload(_Wire):
    current_ref_time: int = Field(..., alias="CurrentRefTime")
    current_ref_block: int = Field(0, alias="CurrentRefBlock")
    current_committee: List[CommitteeNodeModel] = Field(default_factory=list, alias="CurrentCommittee")
    current_candidates: List[CandidateNodeModel] = Field(default_factory=list, alias="CurrentCandidates")
    current_virtual_chains: Dict[str, VirtualChainModel] = Field(
        default_factory=dict, alias="CurrentVirtualChains"
    )
    guardians: Dict[str, GuardianModel] = Field(default_factory=dict, alias="Guardians")


class RegistryStatus(_Wire):
    payload: RegistryPayload = Field(..., alias="Payload")


# ---------------------------------------------------------------------
# Fetch + apply
# ---------------------------------------------------------------------


def fetch_registry_status(url: str, timeout: float = 20.0) -> RegistryStatus:
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RegistryFetchError(f"GET {url} failed: {e}") from e

    if not resp.ok:
        raise RegistryFetchError(f"GET {url} returned HTTP-{resp.status_code}: {resp.text[:500]}")

    try:
        return RegistryStatus.model_validate_json(resp.text)
    except ValidationError as e:
        raise RegistryDecodeError(f"Invalid registry status response (HTTP-{resp.status_code}): {e}") from e


def _election_status(model: Optional[ElectionsStatusModel]) -> Optional[ElectionStatus]:
    if model is None:
        return None
    return ElectionStatus(
        last_update_time=model.last_update_time,
        ready_to_sync=model.ready_to_sync,
        ready_for_committee=model.ready_for_committee,
        time_to_stale=model.time_to_stale,
    )


def apply_registry_status(status: RegistryStatus, my_internal_address: str, state: NodeState, now: int) -> None:
    p = status.payload

    address_mapping = {eth.lower(): normalize_internal_address(g.orbs_address) for eth, g in p.guardians.items()}
    others = {}
    for eth, g in p.guardians.items():
        es = _election_status(g.elections_status)
        if es is not None:
            others[eth.lower()] = es

    state.registry_ref_time = p.current_ref_time
    state.registry_ref_block = p.current_ref_block
    state.address_mapping = address_mapping
    state.others_election_status = others
    state.workload_chains = {
        chain_id: WorkloadChain(
            genesis_ref_time=vc.genesis_ref_time,
            expiration=vc.expiration,
            rollout_group=vc.rollout_group,
            identity_type=vc.identity_type,
            tier=vc.tier,
        )
        for chain_id, vc in p.current_virtual_chains.items()
    }
    state.current_committee = [
        CommitteeMember(address=n.eth_address.lower(), weight=n.weight) for n in p.current_committee
    ]
    state.current_standbys = [n.eth_address.lower() for n in p.current_candidates if n.is_standby]

    me = state.find_address_by_internal(my_internal_address)
    state.my_address = me
    state.in_committee = bool(me) and any(m.address == me for m in state.current_committee)
    state.is_standby = bool(me) and me in state.current_standbys
    state.my_election_status = others.get(me) if me else None

    if not (state.in_committee or state.is_standby):
        state.time_entered_topology = 0
    elif not state.time_entered_topology:
        state.time_entered_topology = now

    # last, after everything that could raise
    state.registry_last_poll_time = now


def read_registry(endpoint: str, my_internal_address: str, state: NodeState, now: int, timeout: float = 20.0) -> None:
    url = f"{endpoint.rstrip('/')}/status"
    status = fetch_registry_status(url, timeout=timeout)
    apply_registry_status(status, my_internal_address, state, now)
    log.info(
        "Fetched registry status: ref time %s, %d workload chains, committee %d, standbys %d, in committee=%s, standby=%s.",
        state.registry_ref_time,
        len(state.workload_chains),
        len(state.current_committee),
        len(state.current_standbys),
        state.in_committee,
        state.is_standby,
    )
