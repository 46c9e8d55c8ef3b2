# tests/test_removal.py

from conftest import MY_ADDRESS, MY_INTERNAL, NOW, add_committee, election_status, make_config, make_state
from election_writer.runtime.clock import today
from election_writer.runtime.removal import peers_to_vote_out, peers_to_vote_unready
from election_writer.runtime.state import WorkloadMetrics, WorkloadSyncStatus, WriteChannelStatus

PEER = "c1" * 20
PEER_INTERNAL = "d1" * 20
GRACE = 100


def _config(**overrides):
    overrides.setdefault("invalid_reputation_grace_seconds", GRACE)
    overrides.setdefault("suspend_vote_out", False)
    return make_config(**overrides)


def _committee_state(peer_score=6):
    state = make_state(in_committee=True)
    add_committee(
        state,
        [
            (MY_ADDRESS, MY_INTERNAL),
            (PEER, PEER_INTERNAL),
            ("c2" * 20, "d2" * 20),
            ("c3" * 20, "d3" * 20),
        ],
    )
    state.workload_reputations = {"42": {MY_INTERNAL: 0, PEER_INTERNAL: peer_score, "d2" * 20: 1, "d3" * 20: 1}}
    return state


def _addresses(members):
    return [m.address for m in members]


# ---------------------------------------------------------------------------
# Grace period and markers
# ---------------------------------------------------------------------------

def test_bad_peer_eligible_only_after_grace():
    config = _config()
    state = _committee_state()

    assert peers_to_vote_unready(state, config, NOW) == []
    assert state.bad_reputation_since.get(PEER, "42") == NOW

    assert peers_to_vote_unready(state, config, NOW + GRACE) == []
    assert _addresses(peers_to_vote_unready(state, config, NOW + GRACE + 1)) == [PEER]


def test_marker_cleared_when_reputation_recovers():
    config = _config()
    state = _committee_state()
    peers_to_vote_unready(state, config, NOW)
    assert len(state.bad_reputation_since) == 1

    state.workload_reputations["42"][PEER_INTERNAL] = 1
    assert peers_to_vote_unready(state, config, NOW + GRACE + 1) == []
    assert state.bad_reputation_since.get(PEER, "42") == 0


def test_markers_pruned_for_departed_peers_and_dropped_chains():
    config = _config()
    state = _committee_state()
    state.bad_reputation_since.mark(PEER, "42", NOW - 10)
    state.bad_reputation_since.mark(PEER, "99", NOW - 10)
    state.bad_reputation_since.mark("c9" * 20, "42", NOW - 10)

    peers_to_vote_out(state, config, NOW)
    assert state.bad_reputation_since.to_dict() == {PEER: {"42": NOW - 10}}

    state.current_committee = [m for m in state.current_committee if m.address != PEER]
    peers_to_vote_unready(state, config, NOW)
    assert len(state.bad_reputation_since) == 0


def test_whole_chain_bad_flags_nobody():
    config = _config()
    state = _committee_state()
    state.workload_reputations["42"] = {PEER_INTERNAL: 6, "d2" * 20: 6, "d3" * 20: 6}
    peers_to_vote_unready(state, config, NOW)
    assert peers_to_vote_unready(state, config, NOW + GRACE + 1) == []


def test_unmapped_member_never_flagged():
    config = _config()
    state = _committee_state()
    del state.address_mapping[PEER]
    peers_to_vote_unready(state, config, NOW)
    assert peers_to_vote_unready(state, config, NOW + GRACE + 1) == []


# ---------------------------------------------------------------------------
# Prior votes
# ---------------------------------------------------------------------------

def test_valid_prior_vote_protects_until_fresher_report():
    config = _config()
    state = _committee_state()
    state.bad_reputation_since.mark(PEER, "42", NOW - GRACE - 10)
    state.last_vote_unready_time[PEER] = state.registry_ref_time - 10

    assert peers_to_vote_unready(state, config, NOW) == []

    # the peer announced again after our vote
    state.others_election_status[PEER] = election_status(update_time=state.registry_ref_time - 5)
    assert _addresses(peers_to_vote_unready(state, config, NOW)) == [PEER]


def test_expired_prior_vote_does_not_protect():
    config = _config()
    state = _committee_state()
    state.bad_reputation_since.mark(PEER, "42", NOW - GRACE - 10)
    state.last_vote_unready_time[PEER] = state.registry_ref_time - config.vote_unready_validity_seconds - 1
    assert _addresses(peers_to_vote_unready(state, config, NOW)) == [PEER]


# ---------------------------------------------------------------------------
# Near filter (vote-unready only)
# ---------------------------------------------------------------------------

def test_far_chain_ignored_for_vote_unready_but_not_vote_out():
    config = _config()
    state = _committee_state()
    state.workload_metrics["42"] = WorkloadMetrics(
        last_block_height=5,
        last_block_time=NOW - config.vchain_out_of_sync_threshold_seconds - 1,
        uptime_seconds=3600,
        last_commit_time=NOW - 5000,
    )
    state.bad_reputation_since.mark(PEER, "42", NOW - GRACE - 10)

    assert peers_to_vote_unready(state, config, NOW) == []
    assert _addresses(peers_to_vote_out(state, config, NOW)) == [PEER]


def test_vote_out_suspended_by_default():
    config = make_config(invalid_reputation_grace_seconds=GRACE)
    state = _committee_state()
    state.bad_reputation_since.mark(PEER, "42", NOW - GRACE - 10)
    assert peers_to_vote_out(state, config, NOW) == []


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

def test_preconditions_return_empty():
    config = _config()

    def ready():
        state = _committee_state()
        state.bad_reputation_since.mark(PEER, "42", NOW - GRACE - 10)
        return state

    assert _addresses(peers_to_vote_unready(ready(), config, NOW)) == [PEER]

    state = ready()
    state.in_committee = False
    assert peers_to_vote_unready(state, config, NOW) == []

    state = ready()
    state.write_channel_status = WriteChannelStatus.TX_PENDING
    assert peers_to_vote_unready(state, config, NOW) == []

    state = ready()
    state.workload_sync_status = WorkloadSyncStatus.EXIST_NOT_IN_SYNC
    assert peers_to_vote_unready(state, config, NOW) == []


def test_daily_caps():
    config = _config()
    state = _committee_state()
    state.bad_reputation_since.mark(PEER, "42", NOW - GRACE - 10)

    state.successful_tx_stats[today(NOW)] = config.ethereum_max_successful_daily_tx
    assert peers_to_vote_unready(state, config, NOW) == []
    assert _addresses(peers_to_vote_out(state, config, NOW)) == [PEER]

    state.committed_tx_stats[today(NOW)] = config.ethereum_max_committed_daily_tx
    assert peers_to_vote_out(state, config, NOW) == []


def test_vote_unready_retries_capped_by_committed_counter():
    # timed out retries count as committed but never as successful
    config = _config()
    state = _committee_state()
    state.bad_reputation_since.mark(PEER, "42", NOW - GRACE - 10)
    state.committed_tx_stats[today(NOW)] = config.ethereum_max_committed_daily_tx
    assert state.successful_tx_stats == {}
    assert peers_to_vote_unready(state, config, NOW) == []
