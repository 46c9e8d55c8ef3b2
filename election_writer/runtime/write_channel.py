"""
Write-channel status: whether this node may send transactions to the base
chain right now.

``need-reset`` is absorbing. Once entered, only a fresh ``NodeState`` (a
process restart) leaves it; the operator is expected to look at the node.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import Configuration
from .state import NodeState, TxState, WorkloadSyncStatus, WriteChannelStatus
from .statemachine import NO_CHANGE, StateMachine, Transition, always

log = logging.getLogger(__name__)


@dataclass
class WriteChannelContext:
    state: NodeState
    config: Configuration
    now: int


def _is_need_reset(ctx: WriteChannelContext) -> bool:
    return ctx.state.write_channel_status == WriteChannelStatus.NEED_RESET


def _is_registry_stale(ctx: WriteChannelContext) -> bool:
    return ctx.now - ctx.state.registry_ref_time > ctx.config.ethereum_sync_requirement_seconds


def _is_elections_tx_reverted(ctx: WriteChannelContext) -> bool:
    tx = ctx.state.last_elections_tx
    if tx is not None and tx.status == TxState.REVERT:
        log.error("Found an elections tx %s that is reverted, reset needed!", tx.tx_hash)
        return True
    return False


def _is_newly_voted_out(ctx: WriteChannelContext) -> bool:
    mine = ctx.state.my_election_status
    if mine is None or mine.ready_to_sync:
        return False
    # a false flag reported before we launched is old news
    if ctx.state.service_launch_time > mine.last_update_time:
        return False
    log.error("Found that we have been newly voted out since RTS is false, reset needed!")
    return True


def _is_failed_to_sync_as_standby(ctx: WriteChannelContext) -> bool:
    state = ctx.state
    if state.is_standby and state.workload_sync_status != WorkloadSyncStatus.IN_SYNC:
        if state.time_entered_without_sync == 0:
            state.time_entered_without_sync = ctx.now
    else:
        state.time_entered_without_sync = 0

    if state.time_entered_without_sync == 0:
        return False
    if ctx.now - state.time_entered_without_sync > ctx.config.fail_to_sync_vcs_timeout_seconds:
        log.error(
            "We're standby but can't sync workload chains since %s, reset needed!",
            state.time_entered_without_sync,
        )
        return True
    return False


def _is_elections_tx_pending(ctx: WriteChannelContext) -> bool:
    tx = ctx.state.last_elections_tx
    return tx is not None and tx.status == TxState.PENDING


WRITE_CHANNEL_MACHINE: StateMachine[WriteChannelStatus, WriteChannelContext] = StateMachine(
    "write-channel",
    [
        Transition("stuck until restart", _is_need_reset, NO_CHANGE),
        Transition("registry reference time stale", _is_registry_stale, WriteChannelStatus.OUT_OF_SYNC),
        Transition("elections tx reverted", _is_elections_tx_reverted, WriteChannelStatus.NEED_RESET),
        Transition("newly voted out", _is_newly_voted_out, WriteChannelStatus.NEED_RESET),
        Transition("standby without sync too long", _is_failed_to_sync_as_standby, WriteChannelStatus.NEED_RESET),
        Transition("elections tx pending", _is_elections_tx_pending, WriteChannelStatus.TX_PENDING),
        Transition("healthy", always, WriteChannelStatus.OPERATIONAL),
    ],
)


def calc_write_channel_status(state: NodeState, config: Configuration, now: int) -> WriteChannelStatus:
    ctx = WriteChannelContext(state=state, config=config, now=now)
    return WRITE_CHANNEL_MACHINE.step(state.write_channel_status, ctx)
