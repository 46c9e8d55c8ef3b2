"""
election_writer/runtime/state.py
--------------------------------

The single long-lived record of the sidecar.

A ``NodeState`` is created once at process start and mutated in place on
every tick (reads fill their slice, the state machines write the two status
fields, the decision helpers maintain their hysteresis markers). It is
handed explicitly to everything that needs it; there is no module-level
instance.

Maps only hold entries that were actually observed. A missing key means
"unknown", never "good" or "zero".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .clock import now_seconds


class WorkloadSyncStatus(str, Enum):
    NOT_EXIST = "not-exist"
    EXIST_NOT_IN_SYNC = "exist-not-in-sync"
    IN_SYNC = "in-sync"


class WriteChannelStatus(str, Enum):
    OUT_OF_SYNC = "out-of-sync"
    OPERATIONAL = "operational"
    TX_PENDING = "tx-pending"
    NEED_RESET = "need-reset"


class TxType(str, Enum):
    READY_TO_SYNC = "ready-to-sync"
    READY_FOR_COMMITTEE = "ready-for-committee"
    VOTE_UNREADY = "vote-unready"
    VOTE_OUT = "vote-out"


class GasPriceStrategy(str, Enum):
    DISCOUNT = "discount"
    RECOMMENDED = "recommended"


class TxState(str, Enum):
    PENDING = "pending"
    FINAL = "final"  # final according to the registry reference block
    FAILED_SEND = "failed-send"
    TIMEOUT = "timeout"
    REVERT = "revert"


# ---------------------------------------------------------------------------
# Registry records
# ---------------------------------------------------------------------------


@dataclass
class ElectionStatus:
    last_update_time: int
    ready_to_sync: bool
    ready_for_committee: bool
    time_to_stale: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "LastUpdateTime": self.last_update_time,
            "ReadyToSync": self.ready_to_sync,
            "ReadyForCommittee": self.ready_for_committee,
            "TimeToStale": self.time_to_stale,
        }


@dataclass
class CommitteeMember:
    address: str
    weight: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"EthAddress": self.address, "Weight": self.weight}


@dataclass
class WorkloadChain:
    genesis_ref_time: int
    expiration: int = 0
    rollout_group: str = ""
    identity_type: int = 0
    tier: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "GenesisRefTime": self.genesis_ref_time,
            "Expiration": self.expiration,
            "RolloutGroup": self.rollout_group,
            "IdentityType": self.identity_type,
            "Tier": self.tier,
        }


# ---------------------------------------------------------------------------
# Workload chain health
# ---------------------------------------------------------------------------


@dataclass
class WorkloadMetrics:
    last_block_height: int
    last_block_time: int  # when the latest block was proposed (UTC seconds)
    uptime_seconds: int
    last_commit_time: int  # when we last saw the height advance (UTC seconds)

    @classmethod
    def unavailable(cls) -> "WorkloadMetrics":
        return cls(last_block_height=-1, last_block_time=-1, uptime_seconds=-1, last_commit_time=-1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "LastBlockHeight": self.last_block_height,
            "LastBlockTime": self.last_block_time,
            "UptimeSeconds": self.uptime_seconds,
            "LastCommitTime": self.last_commit_time,
        }


class BadReputationTable:
    """
    ``address -> chain id -> first-seen timestamp`` of sustained bad reputation.

    A missing entry (reported as 0) means "not currently bad". Only the
    removal decision functions mark and clear entries.
    """

    def __init__(self) -> None:
        self._since: Dict[str, Dict[str, int]] = {}

    def get(self, address: str, chain_id: str) -> int:
        return self._since.get(address, {}).get(chain_id, 0)

    def mark(self, address: str, chain_id: str, now: int) -> int:
        per_chain = self._since.setdefault(address, {})
        if not per_chain.get(chain_id):
            per_chain[chain_id] = now
        return per_chain[chain_id]

    def clear(self, address: str, chain_id: str) -> None:
        per_chain = self._since.get(address)
        if per_chain is None:
            return
        per_chain.pop(chain_id, None)
        if not per_chain:
            del self._since[address]

    def prune(self, addresses: Iterable[str], chain_ids: Iterable[str]) -> None:
        """Drop markers of peers that left the committee and of chains the registry dropped."""
        addresses = set(addresses)
        chain_ids = set(chain_ids)
        for address in list(self._since):
            kept = {c: t for c, t in self._since[address].items() if c in chain_ids}
            if address in addresses and kept:
                self._since[address] = kept
            else:
                del self._since[address]

    def __len__(self) -> int:
        return sum(len(v) for v in self._since.values())

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {addr: dict(chains) for addr, chains in self._since.items()}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass
class TxStatus:
    type: TxType
    send_time: int
    gas_price_strategy: GasPriceStrategy
    gas_price: int
    status: TxState
    tx_hash: str = ""
    base_block: int = 0
    last_poll_time: int = 0
    subject: str = ""  # peer address for removal votes

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "LastPollTime": self.last_poll_time,
            "Type": self.type.value,
            "SendTime": self.send_time,
            "GasPriceStrategy": self.gas_price_strategy.value,
            "GasPrice": self.gas_price,
            "Status": self.status.value,
            "TxHash": self.tx_hash,
            "EthBlock": self.base_block,
        }
        if self.subject:
            out["Subject"] = self.subject
        return out


# ---------------------------------------------------------------------------
# Node state
# ---------------------------------------------------------------------------


@dataclass
class NodeState:
    service_launch_time: int = field(default_factory=now_seconds)

    # derived statuses
    workload_sync_status: WorkloadSyncStatus = WorkloadSyncStatus.NOT_EXIST
    write_channel_status: WriteChannelStatus = WriteChannelStatus.OUT_OF_SYNC

    # registry
    registry_last_poll_time: int = 0
    registry_ref_time: int = 0
    registry_ref_block: int = 0
    my_address: str = ""
    address_mapping: Dict[str, str] = field(default_factory=dict)
    workload_chains: Dict[str, WorkloadChain] = field(default_factory=dict)
    in_committee: bool = False
    is_standby: bool = False
    my_election_status: Optional[ElectionStatus] = None
    others_election_status: Dict[str, ElectionStatus] = field(default_factory=dict)
    current_committee: List[CommitteeMember] = field(default_factory=list)
    current_standbys: List[str] = field(default_factory=list)

    # workload chains
    workload_metrics_last_poll_time: int = 0
    workload_metrics: Dict[str, WorkloadMetrics] = field(default_factory=dict)
    workload_reputations_last_poll_time: int = 0
    workload_reputations: Dict[str, Dict[str, int]] = field(default_factory=dict)

    # hysteresis markers
    time_entered_topology: int = 0  # 0 = not in committee or standbys
    time_entered_without_sync: int = 0
    bad_reputation_since: BadReputationTable = field(default_factory=BadReputationTable)

    # base chain
    last_elections_tx: Optional[TxStatus] = None
    last_vote_unready_tx: Optional[TxStatus] = None
    last_vote_out_tx: Optional[TxStatus] = None
    last_vote_unready_time: Dict[str, int] = field(default_factory=dict)
    last_vote_out_time: Dict[str, int] = field(default_factory=dict)
    base_balance_last_poll_time: int = 0
    base_balance: str = ""  # wei, as returned by the chain
    can_join_committee_last_poll_time: int = 0
    consecutive_tx_timeouts: int = 0
    committed_tx_stats: Dict[str, int] = field(default_factory=dict)
    successful_tx_stats: Dict[str, int] = field(default_factory=dict)
    fees_stats: Dict[str, int] = field(default_factory=dict)  # wei per ten-day period

    def internal_address_of(self, address: str) -> Optional[str]:
        return self.address_mapping.get(address)

    def find_address_by_internal(self, internal: str) -> str:
        """Reverse lookup in the address mapping; empty string if not found."""
        wanted = normalize_internal_address(internal)
        for external, mapped in self.address_mapping.items():
            if mapped == wanted:
                return external.lower()
        return ""


def increment_daily(stats: Dict[str, int], day: str) -> None:
    stats[day] = stats.get(day, 0) + 1


def normalize_internal_address(address: str) -> str:
    """Workload addresses are compared as lowercase hex without a ``0x`` prefix."""
    address = address.strip().lower()
    return address[2:] if address.startswith("0x") else address
