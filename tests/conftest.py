# tests/conftest.py

import pytest

from election_writer.config import build_config
from election_writer.runtime.state import (
    CommitteeMember,
    ElectionStatus,
    NodeState,
    WorkloadChain,
    WorkloadMetrics,
    WorkloadSyncStatus,
    WriteChannelStatus,
)

# 2023-11-14T22:13:20Z
NOW = 1_700_000_000

MY_ADDRESS = "a1" * 20
MY_INTERNAL = "b1" * 20

REQUIRED = {
    "management_service_endpoint": "http://management:8080",
    "ethereum_endpoint": "http://ethereum:8545",
    "signer_endpoint": "http://signer:7777",
    "ethereum_elections_contract": "0x" + "ee" * 20,
    "node_orbs_address": MY_INTERNAL,
}


def make_config(**overrides):
    raw = dict(REQUIRED)
    raw.update(overrides)
    return build_config(raw)


def election_status(update_time=NOW - 100, rts=True, rfc=True, time_to_stale=7 * 24 * 3600):
    return ElectionStatus(
        last_update_time=update_time,
        ready_to_sync=rts,
        ready_for_committee=rfc,
        time_to_stale=time_to_stale,
    )


def fresh_metrics(now=NOW, height=100):
    return WorkloadMetrics(last_block_height=height, last_block_time=now - 10, uptime_seconds=3600, last_commit_time=now)


def make_state(**fields):
    """A healthy, registry-fresh node that is not in the topology yet."""
    state = NodeState(service_launch_time=NOW - 3600)
    state.registry_ref_time = NOW - 60
    state.registry_ref_block = 1000
    state.registry_last_poll_time = NOW - 60
    state.my_address = MY_ADDRESS
    state.address_mapping = {MY_ADDRESS: MY_INTERNAL}
    state.workload_chains = {"42": WorkloadChain(genesis_ref_time=NOW - 30 * 24 * 3600)}
    state.workload_metrics = {"42": fresh_metrics()}
    state.workload_sync_status = WorkloadSyncStatus.IN_SYNC
    state.write_channel_status = WriteChannelStatus.OPERATIONAL
    for k, v in fields.items():
        setattr(state, k, v)
    return state


def add_committee(state, members):
    """``members``: list of (external, internal) address pairs."""
    for external, internal in members:
        state.address_mapping[external] = internal
        state.current_committee.append(CommitteeMember(address=external, weight=1000))


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def state():
    return make_state()
