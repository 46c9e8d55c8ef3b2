"""
election_writer/runtime/statemachine.py
---------------------------------------

Ordered transition tables.

Both health state machines are "first matching rule wins" lists. Each rule
names its target status, or ``NO_CHANGE`` to hold the current one. The last
rule of a table must be unconditional so every evaluation ends in a rule;
``StateMachine`` checks this when it is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, Tuple, TypeVar, Union

log = logging.getLogger(__name__)

S = TypeVar("S")
C = TypeVar("C")


class _NoChange:
    _instance: Optional["_NoChange"] = None

    def __new__(cls) -> "_NoChange":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_CHANGE"


NO_CHANGE = _NoChange()


def always(_ctx: object) -> bool:
    return True


@dataclass(frozen=True)
class Transition(Generic[S, C]):
    name: str
    guard: Callable[[C], bool]
    target: Union[S, _NoChange]


class StateMachine(Generic[S, C]):
    def __init__(self, name: str, transitions: Sequence[Transition[S, C]]) -> None:
        if not transitions:
            raise ValueError(f"{name}: empty transition table")
        if transitions[-1].guard is not always:
            raise ValueError(f"{name}: last transition must be unconditional")
        self.name = name
        self.transitions: Tuple[Transition[S, C], ...] = tuple(transitions)

    def evaluate(self, current: S, ctx: C) -> Tuple[S, str]:
        """Return ``(next status, name of the rule that matched)``."""
        for transition in self.transitions:
            if transition.guard(ctx):
                if transition.target is NO_CHANGE:
                    return current, transition.name
                return transition.target, transition.name  # type: ignore[return-value]
        raise AssertionError("unreachable: last transition is unconditional")

    def step(self, current: S, ctx: C) -> S:
        new, rule = self.evaluate(current, ctx)
        if new != current:
            log.info("%s: %s -> %s (%s)", self.name, _label(current), _label(new), rule)
        return new


def _label(status: object) -> str:
    return str(getattr(status, "value", status))
