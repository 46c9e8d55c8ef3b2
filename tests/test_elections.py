# tests/test_elections.py

from conftest import NOW, election_status, make_config, make_state
from election_writer.runtime.clock import today
from election_writer.runtime.elections import (
    is_my_update_stale,
    should_announce_ready_for_committee,
    should_announce_ready_to_sync,
    should_check_can_join_committee,
)
from election_writer.runtime.state import CommitteeMember, WorkloadSyncStatus, WriteChannelStatus

FRESH = 7 * 24 * 3600


def _with_full_standbys(state, time_to_stale=FRESH, count=5):
    state.current_standbys = [f"{i:02d}" * 20 for i in range(count)]
    for address in state.current_standbys:
        state.others_election_status[address] = election_status(time_to_stale=time_to_stale)
    return state


def _syncing_outsider():
    """Deployed but behind, not standby or committee, own record fresh."""
    state = make_state(workload_sync_status=WorkloadSyncStatus.EXIST_NOT_IN_SYNC)
    state.my_election_status = election_status(rts=True, rfc=False, time_to_stale=FRESH)
    return state


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------

def test_missing_record_is_stale(config, state):
    assert is_my_update_stale(state, config) is True


def test_rts_false_is_stale(config, state):
    state.my_election_status = election_status(rts=False)
    assert is_my_update_stale(state, config) is True


def test_close_to_stale_is_stale(config, state):
    state.my_election_status = election_status(time_to_stale=config.elections_refresh_window_seconds - 1)
    assert is_my_update_stale(state, config) is True


# ---------------------------------------------------------------------------
# Ready-to-sync
# ---------------------------------------------------------------------------

def test_full_standbys_fresh_record_no_rts(config):
    state = _with_full_standbys(_syncing_outsider())
    assert should_announce_ready_to_sync(state, config, NOW) is False


def test_rts_once_a_standby_goes_stale(config):
    state = _with_full_standbys(_syncing_outsider())
    state.others_election_status[state.current_standbys[2]].time_to_stale = 0
    assert should_announce_ready_to_sync(state, config, NOW) is True


def test_rts_once_a_standby_slot_opens(config):
    state = _with_full_standbys(_syncing_outsider(), count=4)
    assert should_announce_ready_to_sync(state, config, NOW) is True


def test_rts_when_own_record_stale(config):
    state = _with_full_standbys(_syncing_outsider())
    state.my_election_status = None
    assert should_announce_ready_to_sync(state, config, NOW) is True


def test_no_rts_when_already_standby(config):
    state = _with_full_standbys(_syncing_outsider(), count=4)
    state.is_standby = True
    assert should_announce_ready_to_sync(state, config, NOW) is False


def test_no_rts_unless_operational(config):
    state = _with_full_standbys(_syncing_outsider(), count=4)
    for status in (WriteChannelStatus.OUT_OF_SYNC, WriteChannelStatus.TX_PENDING, WriteChannelStatus.NEED_RESET):
        state.write_channel_status = status
        assert should_announce_ready_to_sync(state, config, NOW) is False


def test_audit_only_standby_refreshes_rts():
    config = make_config(elections_audit_only=True)
    state = make_state(is_standby=True, workload_sync_status=WorkloadSyncStatus.IN_SYNC)
    state.my_election_status = election_status(time_to_stale=60)
    assert should_announce_ready_to_sync(state, config, NOW) is True

    state.my_election_status = election_status(time_to_stale=FRESH)
    assert should_announce_ready_to_sync(state, config, NOW) is False


# ---------------------------------------------------------------------------
# Ready-for-committee
# ---------------------------------------------------------------------------

def test_rfc_when_registry_thinks_not_ready(config, state):
    state.my_election_status = election_status(rfc=False)
    assert should_announce_ready_for_committee(state, config, False, NOW) is True


def test_no_rfc_when_not_in_sync(config, state):
    state.workload_sync_status = WorkloadSyncStatus.EXIST_NOT_IN_SYNC
    assert should_announce_ready_for_committee(state, config, False, NOW) is False


def test_no_rfc_in_audit_only():
    config = make_config(elections_audit_only=True)
    assert should_announce_ready_for_committee(make_state(), config, True, NOW) is False


def test_standby_rfc_refresh_only_when_stale_or_forced(config, state):
    state.is_standby = True
    state.my_election_status = election_status(rfc=True, time_to_stale=FRESH)
    assert should_announce_ready_for_committee(state, config, False, NOW) is False
    assert should_announce_ready_for_committee(state, config, True, NOW) is True

    state.my_election_status.time_to_stale = 10
    assert should_announce_ready_for_committee(state, config, False, NOW) is True


def test_committee_member_does_not_rfc(config, state):
    state.in_committee = True
    state.current_committee = [CommitteeMember(address=state.my_address)]
    state.my_election_status = election_status(rfc=True)
    assert should_announce_ready_for_committee(state, config, True, NOW) is False


# ---------------------------------------------------------------------------
# canJoinCommittee gate
# ---------------------------------------------------------------------------

def test_check_can_join_committee_gate(config, state):
    assert should_check_can_join_committee(state, config) is True

    state.in_committee = True
    assert should_check_can_join_committee(state, config) is False

    state.in_committee = False
    state.workload_sync_status = WorkloadSyncStatus.NOT_EXIST
    assert should_check_can_join_committee(state, config) is False

    state.workload_sync_status = WorkloadSyncStatus.IN_SYNC
    assert should_check_can_join_committee(make_state(), make_config(elections_audit_only=True)) is False


# ---------------------------------------------------------------------------
# Daily cap and end-to-end
# ---------------------------------------------------------------------------

def test_daily_cap_blocks_announcements(config):
    state = _with_full_standbys(_syncing_outsider(), count=0)
    state.my_election_status = None
    assert should_announce_ready_to_sync(state, config, NOW) is True

    state.committed_tx_stats[today(NOW)] = config.ethereum_max_committed_daily_tx
    assert should_announce_ready_to_sync(state, config, NOW) is False
    state.workload_sync_status = WorkloadSyncStatus.IN_SYNC
    assert should_announce_ready_for_committee(state, config, True, NOW) is False

    # counters are per calendar day
    tomorrow = NOW + 24 * 3600
    assert should_announce_ready_for_committee(state, config, True, tomorrow) is True


def test_end_to_end_rts_then_rfc(config):
    state = make_state(workload_sync_status=WorkloadSyncStatus.EXIST_NOT_IN_SYNC)
    state.my_election_status = election_status(rts=False, rfc=False, time_to_stale=0)
    _with_full_standbys(state)

    assert should_announce_ready_to_sync(state, config, NOW) is True

    state.workload_sync_status = WorkloadSyncStatus.IN_SYNC
    assert should_announce_ready_for_committee(state, config, False, NOW) is True
    assert should_announce_ready_to_sync(state, config, NOW) is False
