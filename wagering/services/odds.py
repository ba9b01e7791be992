"""
Market pricing from skill ratings, re-balanced by cashflow.

Public API:
  post_initial_prices(db, market_id)    → PricingResult   (commits)
  reprice_for_cashflow(db, market_id)   → int  rows changed (caller commits)
  get_prices(db, market_id)             → {competitor_id: scaled_price}

Outcomes
--------
A market is a *team market* when its entrants form at least two named
teams.  The priced outcome is then the team: a team's rating is its
members' average, every member carries the team's price, and handle on any
member counts towards the team.  Entrants without a team in a team market
are not priced.  Otherwise each entrant is its own outcome.

Base vs current price
---------------------
``base_price`` is written only when prices are posted from ratings.  The
cashflow pass always recomputes ``scaled_price`` from ``base_price`` and the
current handle, so running it redundantly (e.g. a retried placement) cannot
ratchet a price further than one pass would.
"""

import logging
import random
from collections import OrderedDict
from statistics import mean
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wagering.core.competitors import normalize_team_name
from wagering.core.engine_config import EngineConfig
from wagering.core.odds_math import (
    apply_jitter,
    cashflow_price,
    clamp_price,
    probability_to_price,
    snap_to_ladder,
    win_probabilities,
)
from wagering.core.outcomes import PricingResult
from wagering.models import MARKET_OPEN, Bet, Entrant, Market, Price, utcnow
from wagering.services.ratings import RatingEngine

logger = logging.getLogger(__name__)


def outcome_groups(entrants: Sequence[Entrant]) -> Tuple[bool, Dict[str, List[int]]]:
    """Group a slate into priced outcomes.

    Returns:
        ``(is_team_market, {outcome_key: [competitor_id, ...]})``.  Keys are
        team names in a team market and stringified competitor ids otherwise.
        Insertion order follows the entrant order.
    """
    teams: Dict[str, List[int]] = OrderedDict()
    for e in entrants:
        team = normalize_team_name(e.team_name)
        if team is not None:
            teams.setdefault(team, []).append(e.competitor_id)

    if len(teams) >= 2:
        return True, teams

    return False, OrderedDict((str(e.competitor_id), [e.competitor_id]) for e in entrants)


class OddsEngine:
    """Posts and adjusts the single authoritative Price row per entrant."""

    def __init__(
        self,
        ratings: RatingEngine,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.ratings = ratings
        self.config = config or ratings.config
        self.rng = rng or random.Random()

    # -----------------------------------------------------------------------
    # Initial prices
    # -----------------------------------------------------------------------

    def _initial_price(self, probability: float) -> int:
        cfg = self.config
        price = probability_to_price(
            probability, cfg.house_overround, cfg.min_price, cfg.max_price
        )
        if cfg.initial_jitter > 0:
            price = clamp_price(
                apply_jitter(price, cfg.initial_jitter, self.rng), cfg.min_price, cfg.max_price
            )
        if cfg.snap_to_ladder:
            price = clamp_price(snap_to_ladder(price), cfg.min_price, cfg.max_price)
        return price

    def post_initial_prices(self, db: Session, market_id: int) -> PricingResult:
        """Write one Price row per priced entrant from current ratings.

        Existing rows are updated in place, rows for competitors who left the
        slate are removed.  If bets are already open the cashflow pass runs
        before commit so posted prices reflect the current handle.
        """
        market = (
            db.query(Market)
            .filter(Market.id == market_id)
            .with_for_update()
            .first()
        )
        if market is None:
            return PricingResult.NOT_FOUND
        if market.state != MARKET_OPEN:
            return PricingResult.MARKET_CLOSED

        entrants = db.query(Entrant).filter(Entrant.market_id == market_id).order_by(Entrant.id).all()
        if not entrants:
            logger.info("Pricing skipped: market %d has no entrants", market_id)
            return PricingResult.NO_COMPETITORS

        is_team, groups = outcome_groups(entrants)
        ratings = self.ratings.get_ratings(db, [e.competitor_id for e in entrants])

        keys = list(groups)
        probabilities = win_probabilities(
            [mean(ratings[cid] for cid in groups[k]) for k in keys],
            spread=self.config.rating_spread,
        )

        new_prices: Dict[int, int] = {}
        for key, probability in zip(keys, probabilities):
            price = self._initial_price(probability)
            for cid in groups[key]:
                new_prices[cid] = price

        try:
            existing = {
                p.competitor_id: p
                for p in db.query(Price).filter(Price.market_id == market_id).with_for_update().all()
            }
            for cid, row in existing.items():
                if cid not in new_prices:
                    db.delete(row)

            now = utcnow()
            for cid, price in new_prices.items():
                row = existing.get(cid)
                if row is None:
                    db.add(Price(
                        market_id=market_id,
                        competitor_id=cid,
                        scaled_price=price,
                        base_price=price,
                        updated_at=now,
                    ))
                else:
                    row.scaled_price = price
                    row.base_price = price
                    row.updated_at = now
            db.flush()

            self.reprice_for_cashflow(db, market_id)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info(
            "Posted %s prices for market %d: %s",
            "team" if is_team else "individual",
            market_id,
            new_prices,
        )
        return PricingResult.OK

    # -----------------------------------------------------------------------
    # Cashflow re-pricing
    # -----------------------------------------------------------------------

    def reprice_for_cashflow(self, db: Session, market_id: int) -> int:
        """Shorten heavily backed outcomes and lengthen neglected ones.

        Runs inside the caller's transaction (the bet placement that
        triggered it) and never inserts or deletes Price rows.

        Returns:
            Number of Price rows whose ``scaled_price`` changed.
        """
        db.flush()

        entrants = db.query(Entrant).filter(Entrant.market_id == market_id).order_by(Entrant.id).all()
        if not entrants:
            return 0

        prices = (
            db.query(Price)
            .filter(Price.market_id == market_id)
            .with_for_update()
            .all()
        )
        if not prices:
            return 0

        _, groups = outcome_groups(entrants)
        outcome_of = {cid: key for key, cids in groups.items() for cid in cids}

        handle_by_competitor = dict(
            db.query(Bet.predicted_competitor_id, func.sum(Bet.stake))
            .filter(Bet.market_id == market_id, Bet.resolved.is_(False))
            .group_by(Bet.predicted_competitor_id)
            .all()
        )
        handle_by_outcome = {
            key: sum(int(handle_by_competitor.get(cid) or 0) for cid in cids)
            for key, cids in groups.items()
        }
        total_handle = sum(handle_by_outcome.values())
        if total_handle == 0:
            return 0

        cfg = self.config
        changed = 0
        now = utcnow()
        for row in prices:
            key = outcome_of.get(row.competitor_id)
            if key is None:
                continue

            new_price = cashflow_price(
                row.base_price,
                handle_by_outcome[key],
                total_handle,
                len(groups),
                cfg.cashflow_adjustment,
                cfg.min_adjustment,
                cfg.max_adjustment,
                cfg.min_price,
                cfg.max_price,
            )
            if cfg.snap_to_ladder:
                new_price = clamp_price(snap_to_ladder(new_price), cfg.min_price, cfg.max_price)

            if new_price != row.scaled_price:
                row.scaled_price = new_price
                row.updated_at = now
                changed += 1

        db.flush()
        if changed:
            logger.info(
                "Repriced market %d: %d row(s) changed, handle %d across %d outcome(s)",
                market_id, changed, total_handle, len(groups),
            )
        return changed

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get_prices(self, db: Session, market_id: int) -> Dict[int, int]:
        rows = (
            db.query(Price.competitor_id, Price.scaled_price)
            .filter(Price.market_id == market_id)
            .all()
        )
        return {cid: price for cid, price in rows}


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_odds_engine: Optional[OddsEngine] = None


def get_odds_engine() -> OddsEngine:
    global _odds_engine
    if _odds_engine is None:
        from wagering.services.ratings import get_rating_engine

        _odds_engine = OddsEngine(get_rating_engine())
    return _odds_engine
