"""Fundamental pricing mathematics: the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services or models.

The three pillars exposed are:

1. **Skill → probability**: multi-way win probabilities from Elo ratings.
2. **Probability → price**: house overround, ×100 scaling, bounds, ladder.
3. **Cashflow re-pricing**: integer handle-imbalance adjustment.

Design decisions
----------------
* Prices are integers scaled by 100 (``250`` = 2.50× decimal odds) so that
  payouts are exact: ``stake * price // 100`` never touches floating point.
  Floats appear only while *deriving* a price from ratings, never while
  moving money.
* Multi-way probabilities use summed pairwise expected scores rather than a
  softmax over raw ratings.  Each contestant's strength is
  ``Σ_j E(i beats j)``; the strengths always sum to ``n(n−1)/2`` so
  normalising is well defined and a 1-on-1 slate reduces exactly to the Elo
  expected score.
* Cashflow re-pricing is anchored on the *base* price posted from ratings,
  not on the current price.  A pass is therefore a pure function of
  ``(base, handle)`` and calling it twice is the same as calling it once.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import bisect
import random
from typing import Final, List, Optional, Sequence

import numpy as np

from wagering.core.engine_config import MAX_PRICE, MIN_PRICE, PRICE_LADDER, PRICE_SCALE

#: Basis-point scale used to keep the cashflow multiplier in integers.
_BPS: Final[int] = 10_000


# ---------------------------------------------------------------------------
# Skill → probability
# ---------------------------------------------------------------------------


def win_probabilities(ratings: Sequence[float], spread: float = 400.0) -> List[float]:
    """Win probability for each contestant in a winner-take-all slate.

    Args:
        ratings: One rating per contestant (competitor, or team average).
        spread: Elo logistic divisor.

    Returns:
        Probabilities in the same order as *ratings*, summing to 1.0.
        ``[]`` for an empty slate, ``[1.0]`` for a single contestant.

    Examples::

        win_probabilities([1200, 1200])       → [0.5, 0.5]
        win_probabilities([1200, 1200, 1200]) → [0.333, 0.333, 0.333]
        win_probabilities([1400, 1200])       → [0.760, 0.240]
    """
    r = np.asarray(ratings, dtype=float)
    if r.size == 0:
        return []
    if r.size == 1:
        return [1.0]

    # expected[i, j] = P(i beats j)
    expected = 1.0 / (1.0 + np.power(10.0, (r[None, :] - r[:, None]) / spread))
    np.fill_diagonal(expected, 0.0)
    strength = expected.sum(axis=1)
    return (strength / strength.sum()).tolist()


# ---------------------------------------------------------------------------
# Probability → price
# ---------------------------------------------------------------------------


def clamp_price(price: int, min_price: int = MIN_PRICE, max_price: int = MAX_PRICE) -> int:
    return max(min_price, min(max_price, int(price)))


def probability_to_price(
    probability: float,
    overround: float,
    min_price: int = MIN_PRICE,
    max_price: int = MAX_PRICE,
) -> int:
    """Convert a win probability into a scaled price with house margin.

    ``price = 100 / (p × overround)``, rounded half-up and clamped.  With an
    overround above 1 the implied probabilities ``100 / price`` of a full
    slate sum to roughly ``overround``, the house edge.

    Examples::

        probability_to_price(0.50, 1.08) → 185   (1.85×)
        probability_to_price(0.25, 1.08) → 370   (3.70×)
        probability_to_price(1.00, 1.08) → 105   (floor)
        probability_to_price(0.00, 1.08) → 2000  (ceiling)
    """
    if probability <= 0.0:
        return max_price
    raw = PRICE_SCALE / (probability * overround)
    return clamp_price(int(raw + 0.5), min_price, max_price)


def apply_jitter(price: int, jitter: float, rng: Optional[random.Random] = None) -> int:
    """Move *price* by a uniform random fraction in ``[-jitter, +jitter]``.

    Keeps freshly posted lines from looking machine-identical week to week.
    The caller clamps afterwards.
    """
    if jitter <= 0.0:
        return price
    rng = rng or random.Random()
    return int(price * (1.0 + rng.uniform(-jitter, jitter)))


def snap_to_ladder(price: int, ladder: Sequence[int] = PRICE_LADDER) -> int:
    """Snap to the nearest ladder value; ties go to the shorter price."""
    idx = bisect.bisect_left(ladder, price)
    if idx < len(ladder) and ladder[idx] == price:
        return price
    if idx == 0:
        return ladder[0]
    if idx >= len(ladder):
        return ladder[-1]
    lower, upper = ladder[idx - 1], ladder[idx]
    return lower if (price - lower) <= (upper - price) else upper


def implied_book(prices: Sequence[int]) -> float:
    """Sum of implied probabilities of a slate; above 1.0 means house edge."""
    return sum(PRICE_SCALE / p for p in prices if p > 0)


# ---------------------------------------------------------------------------
# Cashflow re-pricing
# ---------------------------------------------------------------------------


def cashflow_price(
    base_price: int,
    outcome_handle: int,
    total_handle: int,
    n_outcomes: int,
    adjustment: float,
    min_adjustment: float = 0.7,
    max_adjustment: float = 1.3,
    min_price: int = MIN_PRICE,
    max_price: int = MAX_PRICE,
) -> int:
    """Re-price one outcome from its share of the market handle.

    The multiplier on the base price is::

        m = 1 − adjustment × (share − 1/n)
          = 1 − adjustment × (h·n − T) / (n·T)

    where ``h`` is the outcome's handle, ``T`` the market handle and ``n``
    the number of outcomes.  An outcome carrying exactly its fair ``1/n``
    share keeps its base price; heavier backing shortens it, lighter backing
    lengthens it.  ``m`` is clamped to ``[min_adjustment, max_adjustment]``
    and the result to ``[min_price, max_price]``.

    All arithmetic is integer (basis points) so identical inputs always give
    identical prices.

    Returns:
        The new scaled price.  ``base_price`` (clamped) when there is no
        handle or fewer than one outcome.
    """
    if total_handle <= 0 or n_outcomes <= 0:
        return clamp_price(base_price, min_price, max_price)

    adj_bps = int(round(adjustment * _BPS))
    denom = _BPS * n_outcomes * total_handle
    numer = denom - adj_bps * (outcome_handle * n_outcomes - total_handle)

    lo = int(round(min_adjustment * _BPS)) * n_outcomes * total_handle
    hi = int(round(max_adjustment * _BPS)) * n_outcomes * total_handle
    numer = max(lo, min(hi, numer))

    # Round half-up: (2·base·numer + denom) // (2·denom)
    repriced = (2 * base_price * numer + denom) // (2 * denom)
    return clamp_price(repriced, min_price, max_price)


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


def payout(stake: int, price: int) -> int:
    """Total returned on a winning bet, stake included.

    ``floor(stake × price / 100)`` in pure integer arithmetic.

    Examples::

        payout(10, 200) → 20
        payout(50, 500) → 250
        payout(7, 185)  → 12
    """
    if stake <= 0:
        return 0
    return (stake * price) // PRICE_SCALE


def liability(stake: int, price: int) -> int:
    """House exposure on a bet: what it pays beyond the stake it took."""
    return max(0, payout(stake, price) - stake)
