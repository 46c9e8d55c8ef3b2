"""
Self-announcement decisions: when to send ready-to-sync (RTS) and
ready-for-committee (RFC) for this node.
"""

from __future__ import annotations

import logging

from ..config import Configuration
from .clock import today
from .state import NodeState, WorkloadSyncStatus, WriteChannelStatus

log = logging.getLogger(__name__)


def is_daily_committed_cap_reached(state: NodeState, config: Configuration, now: int) -> bool:
    return state.committed_tx_stats.get(today(now), 0) >= config.ethereum_max_committed_daily_tx


def should_announce_ready_to_sync(state: NodeState, config: Configuration, now: int) -> bool:
    if is_daily_committed_cap_reached(state, config, now):
        return False
    if state.write_channel_status != WriteChannelStatus.OPERATIONAL:
        return False

    if (
        not (state.is_standby or state.in_committee)
        and state.workload_sync_status == WorkloadSyncStatus.EXIST_NOT_IN_SYNC
        and (is_my_update_stale(state, config) or is_standby_available(state, config))
    ):
        log.info("should announce ready-to-sync: deployed, not in topology and no fresh RTS in place")
        return True

    if (
        config.elections_audit_only
        and state.is_standby
        and state.workload_sync_status == WorkloadSyncStatus.IN_SYNC
        and is_my_update_stale(state, config)
    ):
        log.info("should announce ready-to-sync: audit-only node in sync, keeping its standby position")
        return True

    return False


def should_announce_ready_for_committee(
    state: NodeState, config: Configuration, needs_refresh: bool, now: int
) -> bool:
    """
    ``needs_refresh`` lets the caller force the standby re-announcement even
    when the record is not stale yet (the run loop passes the result of the
    on-chain ``canJoinCommittee`` check).
    """
    if is_daily_committed_cap_reached(state, config, now):
        return False
    if state.write_channel_status != WriteChannelStatus.OPERATIONAL:
        return False
    if config.elections_audit_only:
        return False
    if state.workload_sync_status != WorkloadSyncStatus.IN_SYNC:
        return False

    mine = state.my_election_status
    if not state.in_committee and (mine is None or not mine.ready_for_committee):
        log.info("should announce ready-for-committee: registry thinks we are not ready, and now we are")
        return True

    if (
        state.is_standby
        and mine is not None
        and mine.ready_for_committee
        and (is_my_update_stale(state, config) or needs_refresh)
    ):
        log.info("should announce ready-for-committee: standby in sync, refreshing (forced=%s)", needs_refresh)
        return True

    return False


def should_check_can_join_committee(state: NodeState, config: Configuration) -> bool:
    return (
        state.write_channel_status == WriteChannelStatus.OPERATIONAL
        and state.workload_sync_status == WorkloadSyncStatus.IN_SYNC
        and not state.in_committee
        and not config.elections_audit_only
    )


# helpers


def is_my_update_stale(state: NodeState, config: Configuration) -> bool:
    mine = state.my_election_status
    if mine is None:
        return True
    if not mine.ready_to_sync:
        return True
    return mine.time_to_stale < config.elections_refresh_window_seconds


def is_standby_available(state: NodeState, config: Configuration) -> bool:
    if len(state.current_standbys) < config.max_standbys:
        return True
    for address in state.current_standbys:
        status = state.others_election_status.get(address)
        # unknown standby record counts as a slot that may open
        if status is None or status.time_to_stale <= 0:
            return True
    return False
