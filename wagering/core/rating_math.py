"""Elo paired-comparison mathematics.

Every function here is **pure**: no I/O, no logging, no side effects.

Pairing scheme
--------------
Markets are winner-take-all, so the only observed comparisons are
*winner beat loser*.  Each winning competitor (the single winner, or every
member of the winning team) is paired with every losing competitor.
Teammates are never paired with each other and losers are not ranked
against each other.

For one pairing the winner moves up by ``K · (1 − E)`` and the loser moves
down by the same amount, where ``E`` is the winner's expected score.  All
steps for one competitor are summed *before* rounding so a five-player game
applies one integer update per player rather than accumulating four rounding
errors.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, Mapping


def expected_score(rating_a: float, rating_b: float, spread: float = 400.0) -> float:
    """Probability that A beats B under the logistic Elo curve.

    Examples::

        expected_score(1200, 1200) → 0.500
        expected_score(1400, 1200) → 0.760
        expected_score(1200, 1600) → 0.091
    """
    return 1.0 / (1.0 + math.pow(10.0, (rating_b - rating_a) / spread))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    Python's built-in ``round`` uses banker's rounding, which would make a
    +16.5 gain and a -16.5 loss round to different magnitudes.
    """
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def pairing_step(
    winner_rating: float,
    loser_rating: float,
    k_factor: float,
    spread: float = 400.0,
) -> float:
    """Unrounded rating transfer from loser to winner for a single pairing.

    Shrinks towards zero as the gap in the winner's favour grows: beating a
    much weaker opponent proves little.
    """
    return k_factor * (1.0 - expected_score(winner_rating, loser_rating, spread))


def winner_vs_field_deltas(
    winners: Mapping[int, int],
    losers: Mapping[int, int],
    k_factor: float,
    spread: float = 400.0,
) -> Dict[int, int]:
    """Summed, rounded rating deltas for every competitor in a decided market.

    Args:
        winners: ``{competitor_id: rating}`` for the winner or winning team.
        losers: ``{competitor_id: rating}`` for everyone else.
        k_factor: Maximum step per pairing.
        spread: Logistic divisor (400 in standard Elo).

    Returns:
        ``{competitor_id: delta}``.  Winners are positive, losers negative.
        Empty when either side is empty.  Uses the *pre-update* ratings for
        every pairing so the result does not depend on iteration order.
    """
    if not winners or not losers:
        return {}

    raw: Dict[int, float] = defaultdict(float)
    for winner_id, winner_rating in winners.items():
        for loser_id, loser_rating in losers.items():
            step = pairing_step(winner_rating, loser_rating, k_factor, spread)
            raw[winner_id] += step
            raw[loser_id] -= step

    return {cid: round_half_up(total) for cid, total in raw.items()}


def apply_delta(rating: int, delta: int, min_rating: int) -> int:
    """New rating after *delta*, never below *min_rating*."""
    return max(min_rating, rating + delta)
