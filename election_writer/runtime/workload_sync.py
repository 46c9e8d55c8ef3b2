"""
Workload-chain sync status.

Aggregates the per-chain metrics into one tri-state status:

- ``not-exist``          some chain has not been up long enough (or is unreachable)
- ``in-sync``            every live chain produced a block recently (near threshold)
- ``exist-not-in-sync``  some live chain is far behind (far threshold)

Between the near and far thresholds the previous status is held, which keeps
the status from flapping around a single threshold.

A chain is live once it is known to the registry, is past its genesis by the
near threshold and is not stuck (no local commit for the stuck threshold
while we have been in the topology at least that long).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Tuple

from ..config import Configuration
from .state import NodeState, WorkloadChain, WorkloadMetrics, WorkloadSyncStatus
from .statemachine import NO_CHANGE, StateMachine, Transition, always


@dataclass(frozen=True)
class WorkloadSyncView:
    metrics: Dict[str, WorkloadMetrics]
    chains: Dict[str, WorkloadChain]
    ref_time: int
    now: int
    uptime_required: int
    sync_threshold: int
    out_of_sync_threshold: int
    stuck_threshold: int
    time_entered_topology: int

    @classmethod
    def of(cls, state: NodeState, config: Configuration, now: int) -> "WorkloadSyncView":
        return cls(
            metrics=state.workload_metrics,
            chains=state.workload_chains,
            ref_time=state.registry_ref_time,
            now=now,
            uptime_required=config.vchain_uptime_required_seconds,
            sync_threshold=config.vchain_sync_threshold_seconds,
            out_of_sync_threshold=config.vchain_out_of_sync_threshold_seconds,
            stuck_threshold=config.vchain_stuck_threshold_seconds,
            time_entered_topology=state.time_entered_topology,
        )

    def live_metrics(self) -> Iterator[Tuple[str, WorkloadMetrics]]:
        for chain_id, metrics in self.metrics.items():
            if self.is_live(chain_id):
                yield chain_id, metrics

    def is_live(self, chain_id: str) -> bool:
        """Known to the registry, not stuck, and past genesis by at least the near threshold."""
        chain = self.chains.get(chain_id)
        if chain is None:
            return False
        if self.is_stuck(chain_id):
            return False
        return self.ref_time - chain.genesis_ref_time >= self.sync_threshold

    def is_stuck(self, chain_id: str) -> bool:
        """
        Our copy of the chain has not committed a block for a long time, and we
        have been in the topology for at least as long.
        """
        metrics = self.metrics.get(chain_id)
        if metrics is None or metrics.last_commit_time <= 0 or self.time_entered_topology <= 0:
            return False
        return (
            self.now - metrics.last_commit_time > self.stuck_threshold
            and self.now - self.time_entered_topology > self.stuck_threshold
        )


def _any_not_up_long_enough(v: WorkloadSyncView) -> bool:
    return any(m.uptime_seconds < v.uptime_required for m in v.metrics.values())


def _all_live_near(v: WorkloadSyncView) -> bool:
    return all(v.now - m.last_block_time <= v.sync_threshold for _, m in v.live_metrics())


def _any_live_far(v: WorkloadSyncView) -> bool:
    return any(v.now - m.last_block_time > v.out_of_sync_threshold for _, m in v.live_metrics())


WORKLOAD_SYNC_MACHINE: StateMachine[WorkloadSyncStatus, WorkloadSyncView] = StateMachine(
    "workload-sync",
    [
        Transition("uptime below required", _any_not_up_long_enough, WorkloadSyncStatus.NOT_EXIST),
        Transition("all live chains near", _all_live_near, WorkloadSyncStatus.IN_SYNC),
        Transition("a live chain is far", _any_live_far, WorkloadSyncStatus.EXIST_NOT_IN_SYNC),
        Transition("between thresholds", always, NO_CHANGE),
    ],
)


def calc_workload_sync_status(state: NodeState, config: Configuration, now: int) -> WorkloadSyncStatus:
    view = WorkloadSyncView.of(state, config, now)
    return WORKLOAD_SYNC_MACHINE.step(state.workload_sync_status, view)
