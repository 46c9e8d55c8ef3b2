"""
election_writer/runtime/removal.py
----------------------------------

Which committee peers to vote unready / vote out.

A peer qualifies when, on at least one workload chain, its reputation score
has been an outlier (bad while the chain median is good) for longer than the
grace period. A still-valid earlier vote against the peer protects it from a
duplicate vote, unless the peer has since published a newer election update.

Both decisions share the same walk; they differ in which daily counters cap
them (vote-unready: successful and committed, vote-out: committed), which
last-vote map and validity window they use, and whether chains that are
themselves behind are ignored (vote-unready only).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

from ..config import Configuration
from .clock import today
from .reputation import is_bad_reputation
from .state import CommitteeMember, NodeState, WorkloadSyncStatus, WriteChannelStatus

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemovalPolicy:
    name: str
    daily_caps: Tuple[Tuple[Dict[str, int], int], ...]  # (per-day counter, limit)
    last_vote_time: Dict[str, int]
    validity_seconds: int
    near_chains_only: bool
    suspended: bool


def vote_unready_policy(state: NodeState, config: Configuration) -> RemovalPolicy:
    return RemovalPolicy(
        name="vote-unready",
        daily_caps=(
            (state.successful_tx_stats, config.ethereum_max_successful_daily_tx),
            (state.committed_tx_stats, config.ethereum_max_committed_daily_tx),
        ),
        last_vote_time=state.last_vote_unready_time,
        validity_seconds=config.vote_unready_validity_seconds,
        near_chains_only=True,
        suspended=config.suspend_vote_unready,
    )


def vote_out_policy(state: NodeState, config: Configuration) -> RemovalPolicy:
    return RemovalPolicy(
        name="vote-out",
        daily_caps=((state.committed_tx_stats, config.ethereum_max_committed_daily_tx),),
        last_vote_time=state.last_vote_out_time,
        validity_seconds=config.vote_out_validity_seconds,
        near_chains_only=False,
        suspended=config.suspend_vote_out,
    )


def peers_to_vote_unready(state: NodeState, config: Configuration, now: int) -> List[CommitteeMember]:
    return peers_to_remove(state, config, vote_unready_policy(state, config), now)


def peers_to_vote_out(state: NodeState, config: Configuration, now: int) -> List[CommitteeMember]:
    return peers_to_remove(state, config, vote_out_policy(state, config), now)


def peers_to_remove(
    state: NodeState, config: Configuration, policy: RemovalPolicy, now: int
) -> List[CommitteeMember]:
    state.bad_reputation_since.prune((m.address for m in state.current_committee), state.workload_chains)
    if policy.suspended:
        return []
    if any(stats.get(today(now), 0) >= cap for stats, cap in policy.daily_caps):
        return []
    if state.write_channel_status != WriteChannelStatus.OPERATIONAL:
        return []
    if state.workload_sync_status != WorkloadSyncStatus.IN_SYNC:
        return []
    if not state.in_committee:
        return []

    out = []
    for member in state.current_committee:
        if has_valid_prior_vote(member.address, state, policy):
            continue
        if has_long_bad_reputation(member.address, state, config, policy, now):
            out.append(member)
    return out


# helpers


def has_valid_prior_vote(address: str, state: NodeState, policy: RemovalPolicy) -> bool:
    last_vote = policy.last_vote_time.get(address)
    if last_vote is None:
        return False
    if state.registry_ref_time - last_vote > policy.validity_seconds:
        return False
    # the peer announced again after our vote, so the vote no longer holds
    status = state.others_election_status.get(address)
    if status is not None and status.last_update_time > last_vote:
        return False
    return True


def has_long_bad_reputation(
    address: str, state: NodeState, config: Configuration, policy: RemovalPolicy, now: int
) -> bool:
    internal = state.internal_address_of(address)
    if not internal:
        return False

    found = False
    for chain_id, reputations in state.workload_reputations.items():
        if policy.near_chains_only and not is_chain_near(chain_id, state, config, now):
            continue

        if is_bad_reputation(
            internal,
            reputations,
            config.invalid_reputation_threshold,
            config.valid_reputation_threshold,
        ):
            since = state.bad_reputation_since.mark(address, chain_id, now)
        else:
            state.bad_reputation_since.clear(address, chain_id)
            continue

        # keep walking so every chain's marker is maintained this tick
        if not found and now - since > config.invalid_reputation_grace_seconds:
            log.info(
                "%s: address %s on workload chain %s has had bad reputation since %s",
                policy.name,
                internal,
                chain_id,
                since,
            )
            found = True

    return found


def is_chain_near(chain_id: str, state: NodeState, config: Configuration, now: int) -> bool:
    metrics = state.workload_metrics.get(chain_id)
    if metrics is None:
        return False
    return now - metrics.last_block_time <= config.vchain_out_of_sync_threshold_seconds
