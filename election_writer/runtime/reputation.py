"""
Reputation aggregation over the scores a workload chain reports for its
committee. A high score means a misbehaving member; a score only counts as
bad when it is an outlier against the chain's median.
"""

from __future__ import annotations

from typing import Iterable, Mapping

INVALID_REPUTATION_THRESHOLD = 4
VALID_REPUTATION_THRESHOLD = 2


def median(values: Iterable[float]) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0
    half = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[half]
    return (ordered[half - 1] + ordered[half]) / 2.0


def is_bad_reputation(
    internal_address: str,
    reputations: Mapping[str, int],
    invalid_threshold: int = INVALID_REPUTATION_THRESHOLD,
    valid_threshold: int = VALID_REPUTATION_THRESHOLD,
) -> bool:
    score = reputations.get(internal_address)
    if score is None or score < 0:
        return False
    if score < invalid_threshold:
        return False
    # the whole chain looking bad is not this member's fault
    if median(reputations.values()) > valid_threshold:
        return False
    return True
