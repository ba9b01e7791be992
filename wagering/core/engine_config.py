"""Engine configuration: every tunable pricing and rating constant in one place.

:class:`EngineConfig` is a frozen dataclass carrying the constants shared by
the rating engine, the odds engine and the bet ledger.  Nowhere else in the
codebase should price bounds, the K-factor or the house margin be hard-coded.

Typical usage::

    from wagering.core.engine_config import EngineConfig

    cfg = EngineConfig.from_env()
    engine = OddsEngine(RatingEngine(cfg), config=cfg)

    # Override a single constant for a test or a one-off market:
    from dataclasses import replace
    generous = replace(cfg, house_overround=1.03)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

load_dotenv()

#: Scale factor for every stored price.  ``250`` means 2.50× decimal odds.
PRICE_SCALE: Final[int] = 100

#: Hard price floor (1.05×).  Also enforced by a CHECK constraint on ``prices``.
MIN_PRICE: Final[int] = 105

#: Hard price ceiling (20.00×).
MAX_PRICE: Final[int] = 2000

#: Rating assigned to a competitor with no history.
DEFAULT_RATING: Final[int] = 1200

#: Appealing fractional prices (decimal ×100), ascending.  Used only when
#: ``snap_to_ladder`` is enabled.
PRICE_LADDER: Final[tuple[int, ...]] = (
    110, 115, 120, 125, 130, 140, 150, 160, 170, 180, 190, 200,
    210, 220, 225, 240, 250, 275, 300, 325, 350, 375, 400, 450,
    500, 550, 600, 650, 700, 800, 900, 1000, 1100, 1200, 1400,
    1600, 1800, 2000,
)


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration bundle for the wagering engine.

    Attributes:
        k_factor: Maximum rating step per pairing.  32 suits a small casual
            group where ratings should settle after a handful of games.
        rating_spread: Logistic divisor of the Elo curve.  A 400-point gap
            means the stronger side is expected to win ~91% of pairings.
        default_rating: Rating for competitors with no stored history.
        min_rating: Floor applied after every update.
        house_overround: Multiplicative margin applied to implied
            probabilities.  Must exceed 1.0 so the book sums above 100%.
        cashflow_adjustment: Fraction of the base price moved per unit of
            handle imbalance during a re-price pass.
        min_adjustment / max_adjustment: Bounds on the cashflow multiplier.
        initial_jitter: Uniform +/- fraction applied to freshly posted
            prices.  0.0 posts deterministic prices.
        snap_to_ladder: Snap posted and re-priced values to
            :data:`PRICE_LADDER`.
        min_price / max_price: Inclusive price bounds (scaled ×100).
    """

    k_factor: int = 32
    rating_spread: float = 400.0
    default_rating: int = DEFAULT_RATING
    min_rating: int = 100

    house_overround: float = 1.08
    cashflow_adjustment: float = 0.15
    min_adjustment: float = 0.7
    max_adjustment: float = 1.3
    initial_jitter: float = 0.0
    snap_to_ladder: bool = False

    min_price: int = MIN_PRICE
    max_price: int = MAX_PRICE

    def __post_init__(self) -> None:
        if self.house_overround <= 1.0:
            raise ValueError(
                f"house_overround={self.house_overround!r} must exceed 1.0 "
                "or the book carries no house edge."
            )
        if not 0 < self.min_price <= self.max_price:
            raise ValueError(
                f"Invalid price bounds [{self.min_price}, {self.max_price}]"
            )
        if not 0.0 <= self.initial_jitter < 1.0:
            raise ValueError(f"initial_jitter={self.initial_jitter!r} out of [0, 1)")
        if self.k_factor <= 0:
            raise ValueError(f"k_factor={self.k_factor!r} must be positive")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from environment variables, falling back to defaults."""
        return cls(
            k_factor=int(os.getenv("ELO_K_FACTOR", "32")),
            default_rating=int(os.getenv("DEFAULT_RATING", str(DEFAULT_RATING))),
            min_rating=int(os.getenv("MIN_RATING", "100")),
            house_overround=float(os.getenv("HOUSE_OVERROUND", "1.08")),
            cashflow_adjustment=float(os.getenv("CASHFLOW_ADJUSTMENT", "0.15")),
            initial_jitter=float(os.getenv("INITIAL_ODDS_JITTER", "0.0")),
            snap_to_ladder=os.getenv("SNAP_TO_LADDER", "false").lower() == "true",
        )
