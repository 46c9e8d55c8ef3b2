# tests/test_statemachine.py

import pytest

from election_writer.runtime.statemachine import NO_CHANGE, StateMachine, Transition, always


def _machine():
    return StateMachine(
        "demo",
        [
            Transition("go up", lambda n: n > 10, "high"),
            Transition("go down", lambda n: n < 0, "low"),
            Transition("hold", always, NO_CHANGE),
        ],
    )


def test_first_matching_rule_wins():
    assert _machine().evaluate("low", 11) == ("high", "go up")


def test_no_change_keeps_current_status():
    m = _machine()
    assert m.step("high", 5) == "high"
    assert m.step("low", 5) == "low"


def test_last_rule_must_be_unconditional():
    with pytest.raises(ValueError):
        StateMachine("bad", [Transition("only", lambda n: True, "x")])


def test_empty_table_rejected():
    with pytest.raises(ValueError):
        StateMachine("empty", [])


def test_no_change_is_a_singleton():
    assert type(NO_CHANGE)() is NO_CHANGE
