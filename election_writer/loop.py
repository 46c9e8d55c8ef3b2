"""
election_writer/loop.py
-----------------------

The run loop.

Every tick, in order:

1. rate-limited reads (registry, workload metrics, workload reputations,
   base-chain balance); a failed read keeps the previous slice and is
   retried next tick; a change in the registry chain set makes the workload
   reads due at once
2. track pending transactions (timeout, receipt, finality)
3. recompute the workload sync and write channel statuses
4. optionally ask the elections contract whether we could join the committee
5. at most one elections announcement (ready-to-sync before
   ready-for-committee)
6. at most one removal vote (vote-unready before vote-out), and none while
   any of our txs is still pending
7. write the status file

Ticks never overlap. An exception escaping a tick is logged, recorded in the
status file and the loop carries on with the next tick.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .config import Configuration
from .errors import BaseChainRpcError, ReadError
from .read.registry import read_registry
from .read.workload_metrics import read_all_workload_metrics
from .read.workload_reputations import read_all_workload_reputations
from .runtime.clock import now_seconds
from .runtime.elections import (
    should_announce_ready_for_committee,
    should_announce_ready_to_sync,
    should_check_can_join_committee,
)
from .runtime.removal import peers_to_vote_out, peers_to_vote_unready
from .runtime.state import NodeState, TxState, TxStatus, TxType
from .runtime.workload_sync import calc_workload_sync_status
from .runtime.write_channel import calc_write_channel_status
from .write.base_chain import BaseChainClient, ElectionsContract
from .write.signer import SignerClient
from .write.status import write_status
from .write.transactions import (
    TxSender,
    check_can_join_committee,
    read_balance,
    read_pending_tx_status,
    send_elections_tx,
    send_vote_out_tx,
    send_vote_unready_tx,
)

log = logging.getLogger(__name__)


class PollTimers:
    """
    Per-source poll intervals on a monotonic clock. A source is due when it
    has never succeeded or its interval has elapsed; it is marked only after
    a successful read.
    """

    def __init__(self, intervals: Dict[str, float]) -> None:
        self.intervals = dict(intervals)
        self._last: Dict[str, float] = {}

    def due(self, name: str, mono: float) -> bool:
        last = self._last.get(name)
        if last is None:
            return True
        return mono - last >= self.intervals[name]

    def mark(self, name: str, mono: float) -> None:
        self._last[name] = mono

    def reset(self, name: str) -> None:
        self._last.pop(name, None)


@dataclass
class TickResult:
    now: int
    error: Optional[str] = None
    read_failures: List[str] = field(default_factory=list)
    sent: List[TxType] = field(default_factory=list)


def _in_flight(tx: Optional[TxStatus]) -> bool:
    return tx is not None and tx.status == TxState.PENDING


def _timers_for(config: Configuration) -> PollTimers:
    return PollTimers(
        {
            "registry": config.management_poll_time_seconds,
            "metrics": config.vchain_metrics_poll_time_seconds,
            "reputations": config.vchain_reputations_poll_time_seconds,
            "balance": config.ethereum_balance_poll_time_seconds,
            "can_join": config.ethereum_can_join_committee_poll_time_seconds,
        }
    )


class RunLoop:
    def __init__(
        self,
        config: Configuration,
        sender: TxSender,
        state: Optional[NodeState] = None,
        clock: Callable[[], int] = now_seconds,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.sender = sender
        self.state = state or NodeState(service_launch_time=clock())
        self.interval = float(config.run_loop_poll_time_seconds)
        self.timers = _timers_for(config)
        self._chains: frozenset = frozenset()
        self._clock = clock
        self._monotonic = monotonic
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config: Configuration) -> "RunLoop":
        chain = BaseChainClient(config.ethereum_endpoint, timeout=config.http_timeout_seconds)
        contract = ElectionsContract(chain, config.ethereum_elections_contract)
        signer = SignerClient(config.signer_endpoint, timeout=config.http_timeout_seconds)
        return cls(config, TxSender(config, chain, contract, signer))

    # --- lifecycle ---

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="election-writer", daemon=True)
        self._thread.start()
        log.info("run loop started (interval=%ss)", self.interval)

    def stop(self, join_timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(join_timeout)

    def run_forever(self) -> None:
        log.info("run loop started in foreground (interval=%ss)", self.interval)
        self._run()

    def _run(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self.interval)
        log.info("run loop stopped")

    def run_once(self) -> TickResult:
        result = TickResult(now=self._clock())
        try:
            self.tick(result)
        except Exception as e:
            log.exception("tick failed")
            result.error = f"{type(e).__name__}: {e}"

        try:
            write_status(
                self.config.status_json_path,
                self.state,
                self.config,
                result.now,
                result.error,
                keep_backups=self.config.status_keep_backups,
            )
        except OSError:
            log.exception("could not write status file %s", self.config.status_json_path)
        return result

    # --- tick ---

    def tick(self, result: TickResult) -> None:
        now = result.now
        mono = self._monotonic()
        state = self.state
        config = self.config

        self._read_sources(now, mono, result)
        self._track_pending_txs(now, result)

        state.workload_sync_status = calc_workload_sync_status(state, config, now)
        state.write_channel_status = calc_write_channel_status(state, config, now)

        needs_refresh = False
        if should_check_can_join_committee(state, config) and self.timers.due("can_join", mono):
            try:
                needs_refresh = check_can_join_committee(self.sender, state, now)
                self.timers.mark("can_join", mono)
            except BaseChainRpcError as e:
                log.warning("canJoinCommittee check failed: %s", e)
                result.read_failures.append("can_join")

        if should_announce_ready_to_sync(state, config, now):
            send_elections_tx(TxType.READY_TO_SYNC, self.sender, state, now)
            result.sent.append(TxType.READY_TO_SYNC)
        elif should_announce_ready_for_committee(state, config, needs_refresh, now):
            send_elections_tx(TxType.READY_FOR_COMMITTEE, self.sender, state, now)
            result.sent.append(TxType.READY_FOR_COMMITTEE)

        self._vote(now, result)

    def _read_sources(self, now: int, mono: float, result: TickResult) -> None:
        state = self.state
        config = self.config
        timeout = config.http_timeout_seconds

        if self.timers.due("registry", mono):
            try:
                read_registry(config.management_service_endpoint, config.node_orbs_address, state, now, timeout)
                self.timers.mark("registry", mono)
            except ReadError as e:
                log.warning("registry read failed: %s", e, exc_info=True)
                result.read_failures.append("registry")

        chains = frozenset(state.workload_chains)
        if chains != self._chains:
            # the registry changed the chain set; read their health this tick
            self._chains = chains
            self.timers.reset("metrics")
            self.timers.reset("reputations")

        # per-chain failures are absorbed by the readers themselves
        if self.timers.due("metrics", mono):
            read_all_workload_metrics(config.virtual_chain_endpoint_schema, state, now, timeout)
            self.timers.mark("metrics", mono)

        if self.timers.due("reputations", mono):
            read_all_workload_reputations(
                config.virtual_chain_endpoint_schema, config.vchain_reputations_path, state, now, timeout
            )
            self.timers.mark("reputations", mono)

        if self.timers.due("balance", mono):
            try:
                read_balance(self.sender, state, now)
                self.timers.mark("balance", mono)
            except BaseChainRpcError as e:
                log.warning("balance read failed: %s", e, exc_info=True)
                result.read_failures.append("balance")

    def _track_pending_txs(self, now: int, result: TickResult) -> None:
        state = self.state
        for tx in (state.last_elections_tx, state.last_vote_unready_tx, state.last_vote_out_tx):
            try:
                read_pending_tx_status(tx, state, self.config, self.sender.chain, now)
            except BaseChainRpcError as e:
                log.warning("receipt read for %s failed: %s", tx.tx_hash if tx else "-", e)
                result.read_failures.append("receipt")

    def _vote(self, now: int, result: TickResult) -> None:
        state = self.state
        # both walks run every tick so the bad-reputation markers stay current
        unready = peers_to_vote_unready(state, self.config, now)
        out = peers_to_vote_out(state, self.config, now)

        # every send takes the "latest" nonce, so nothing may be in flight
        ours = (state.last_elections_tx, state.last_vote_unready_tx, state.last_vote_out_tx)
        if any(_in_flight(tx) for tx in ours):
            return
        if unready:
            send_vote_unready_tx(unready[0], self.sender, state, now)
            result.sent.append(TxType.VOTE_UNREADY)
        elif out:
            send_vote_out_tx(out[0], self.sender, state, now)
            result.sent.append(TxType.VOTE_OUT)
