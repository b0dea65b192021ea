"""Participation and content quorum arithmetic.

All thresholds are basis points (1/100 of a percent, 10000 = 100%). Only
integer arithmetic is used so that boundary cases do not depend on float
rounding: a task with ``N`` eligible operators reaches participation quorum
once ``R * 10000 >= Pbps * N`` and at least one response exists.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

BPS_SCALE = 10_000


@dataclass(frozen=True, slots=True)
class ParticipationCheck:
    responses_count: int
    operators_count: int
    quorum: int
    reached: bool


@dataclass(frozen=True, slots=True)
class ContentCheck:
    responses_count: int
    largest_group: int
    winner: str | None

    @property
    def reached(self) -> bool:
        return self.winner is not None


def participation_quorum(operators_count: int, threshold_bps: int) -> int:
    """Smallest response count that satisfies the participation threshold.

    With a single eligible operator the quorum is always 1. With no eligible
    operators there is no quorum to reach and 0 is returned.
    """

    if operators_count <= 0:
        return 0
    required = -(-threshold_bps * operators_count // BPS_SCALE)
    return max(1, required)


def check_participation(
    *,
    responses_count: int,
    operators_count: int,
    threshold_bps: int,
) -> ParticipationCheck:
    quorum = participation_quorum(operators_count, threshold_bps)
    return ParticipationCheck(
        responses_count=responses_count,
        operators_count=operators_count,
        quorum=quorum,
        reached=operators_count > 0 and responses_count >= quorum,
    )


def check_content(responses: Iterable[str], *, threshold_bps: int) -> ContentCheck:
    """Find the largest group of identical responses and test it against the threshold.

    ``responses`` must be supplied in admission order. Groups of equal size
    resolve to the one whose first member was admitted earliest, since
    ``Counter`` keeps insertion order and ``most_common`` sorts stably.
    """

    frequency = Counter(responses)
    total = sum(frequency.values())
    if total == 0:
        return ContentCheck(responses_count=0, largest_group=0, winner=None)

    value, largest = frequency.most_common(1)[0]
    winner = value if largest * BPS_SCALE >= threshold_bps * total else None
    return ContentCheck(responses_count=total, largest_group=largest, winner=winner)
