"""
election_writer/write/status.py
-------------------------------

Status file for operators and the node supervisor.

One JSON document, rewritten atomically at the end of every tick:
a one-line ``Status`` summary, the ``Timestamp`` of the tick, an ``Error``
when something needs attention, the full ``Payload`` of node state and the
effective ``Config``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config import Configuration
from ..runtime.state import NodeState, WriteChannelStatus
from .status_file import StatusFile

log = logging.getLogger(__name__)


def _role(state: NodeState) -> str:
    if state.in_committee:
        return "in committee"
    if state.is_standby:
        return "standby"
    return "not in topology"


def status_text(state: NodeState) -> str:
    return (
        f"Write channel: {state.write_channel_status.value}, "
        f"workload chains: {state.workload_sync_status.value}, {_role(state)}"
    )


def status_error(state: NodeState, config: Configuration, error: Optional[str] = None) -> Optional[str]:
    """First matching problem, most severe first."""
    if error:
        return error
    if state.write_channel_status == WriteChannelStatus.NEED_RESET:
        return "Write channel needs a reset (voted out, or failed to sync as standby)."
    if state.consecutive_tx_timeouts > 0:
        return f"Base chain tx timed out {state.consecutive_tx_timeouts} consecutive times."
    if state.base_balance and int(state.base_balance) < config.ethereum_min_balance:
        return f"Base chain balance {state.base_balance} wei is below {config.ethereum_min_balance} wei."
    return None


def _optional(obj: Any) -> Any:
    return obj.to_dict() if obj is not None else None


def build_payload(state: NodeState) -> Dict[str, Any]:
    return {
        "ServiceLaunchTime": state.service_launch_time,
        "VchainSyncStatus": state.workload_sync_status.value,
        "EthereumSyncStatus": state.write_channel_status.value,
        "ManagementLastPollTime": state.registry_last_poll_time,
        "ManagementRefTime": state.registry_ref_time,
        "ManagementEthRefBlock": state.registry_ref_block,
        "ManagementMyAddress": state.my_address,
        "ManagementInCommittee": state.in_committee,
        "ManagementIsStandby": state.is_standby,
        "ManagementMyElectionStatus": _optional(state.my_election_status),
        "ManagementCurrentCommittee": [m.to_dict() for m in state.current_committee],
        "ManagementCurrentStandbys": list(state.current_standbys),
        "ManagementVirtualChains": {k: v.to_dict() for k, v in state.workload_chains.items()},
        "VchainMetricsLastPollTime": state.workload_metrics_last_poll_time,
        "VchainMetrics": {k: v.to_dict() for k, v in state.workload_metrics.items()},
        "VchainReputationsLastPollTime": state.workload_reputations_last_poll_time,
        "VchainReputations": {k: dict(v) for k, v in state.workload_reputations.items()},
        "TimeEnteredTopology": state.time_entered_topology,
        "TimeEnteredWithoutSync": state.time_entered_without_sync,
        "TimeEnteredBadReputation": state.bad_reputation_since.to_dict(),
        "EthereumLastElectionsTx": _optional(state.last_elections_tx),
        "EthereumLastVoteUnreadyTx": _optional(state.last_vote_unready_tx),
        "EthereumLastVoteOutTx": _optional(state.last_vote_out_tx),
        "EthereumLastVoteUnreadyTime": dict(state.last_vote_unready_time),
        "EthereumLastVoteOutTime": dict(state.last_vote_out_time),
        "EthereumBalanceLastPollTime": state.base_balance_last_poll_time,
        "EtherBalance": state.base_balance,
        "EthereumCanJoinCommitteeLastPollTime": state.can_join_committee_last_poll_time,
        "EthereumConsecutiveTxTimeouts": state.consecutive_tx_timeouts,
        "EthereumCommittedTxStats": dict(state.committed_tx_stats),
        "EthereumSuccessfulTxStats": dict(state.successful_tx_stats),
        "EthereumFeesStats": dict(state.fees_stats),
    }


def build_status_snapshot(
    state: NodeState, config: Configuration, now: int, error: Optional[str] = None
) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "Status": status_text(state),
        "Timestamp": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
    }
    err = status_error(state, config, error)
    if err:
        doc["Error"] = err
    doc["Payload"] = build_payload(state)
    doc["Config"] = config.to_public_dict()
    return doc


def write_status(
    path: str,
    state: NodeState,
    config: Configuration,
    now: int,
    error: Optional[str] = None,
    keep_backups: int = 0,
) -> int:
    doc = build_status_snapshot(state, config, now, error)
    written = StatusFile(path, keep_backups=keep_backups).write(doc)
    log.debug("Wrote status JSON to %s (%d bytes).", path, written)
    return written
