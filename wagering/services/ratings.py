"""
Competitor skill ratings (Elo family).

Ratings move only after a confirmed result, once per market:

  record_outcome(db, market_id)  → RecordOutcomeResult
  get_rating(db, competitor_id)  → int    (1200 for unknown competitors)
  get_ratings(db, ids)           → {id: rating}
  get_leaderboard(db, take)      → [CompetitorRanking]

Pairing scheme and rounding are documented in ``wagering.core.rating_math``.
``record_outcome`` is guarded by the market's ``ratings_recorded_on`` stamp,
so the settlement job can call it on every sweep without double-counting.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wagering.core.competitors import is_winning_pick, make_ref, make_winner
from wagering.core.engine_config import EngineConfig
from wagering.core.outcomes import RecordOutcomeResult
from wagering.core.rating_math import apply_delta, winner_vs_field_deltas
from wagering.models import Competitor, Entrant, Market, utcnow

logger = logging.getLogger(__name__)


@dataclass
class CompetitorRanking:
    competitor_id: int
    name: str
    rating: int
    last_updated: Optional[datetime]


class RatingEngine:
    """Reads and updates persisted competitor ratings."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get_rating(self, db: Session, competitor_id: int) -> int:
        rating = (
            db.query(Competitor.rating)
            .filter(Competitor.id == competitor_id)
            .scalar()
        )
        return rating if rating is not None else self.config.default_rating

    def get_ratings(self, db: Session, competitor_ids: Iterable[int]) -> Dict[int, int]:
        ids = set(competitor_ids)
        if not ids:
            return {}

        rows = (
            db.query(Competitor.id, Competitor.rating)
            .filter(Competitor.id.in_(ids))
            .all()
        )
        stored = {cid: rating for cid, rating in rows if rating is not None}
        return {cid: stored.get(cid, self.config.default_rating) for cid in ids}

    def get_leaderboard(self, db: Session, take: int = 20) -> List[CompetitorRanking]:
        if take <= 0:
            return []
        rows = (
            db.query(Competitor)
            .order_by(Competitor.rating.desc(), Competitor.name.asc())
            .limit(take)
            .all()
        )
        return [
            CompetitorRanking(c.id, c.name, c.rating, c.rating_updated_on)
            for c in rows
        ]

    # -----------------------------------------------------------------------
    # Updates
    # -----------------------------------------------------------------------

    def record_outcome(self, db: Session, market_id: int) -> RecordOutcomeResult:
        """Apply one winner-vs-field Elo update for a decided market.

        No-ops (and reports why) when the market is unknown, already rated,
        has no declared winner, or has nobody on one side of the result.
        """
        market = (
            db.query(Market)
            .filter(Market.id == market_id)
            .with_for_update()
            .first()
        )
        if market is None:
            return RecordOutcomeResult.NOT_FOUND

        if market.ratings_recorded_on is not None:
            return RecordOutcomeResult.ALREADY_RECORDED

        winner = make_winner(market.winner_competitor_id, market.winner_team)
        if winner is None:
            logger.info("Ratings skipped: market %d has no declared winner", market_id)
            return RecordOutcomeResult.NOT_APPLICABLE

        entrants = db.query(Entrant).filter(Entrant.market_id == market_id).all()
        if len(entrants) < 2:
            logger.info("Ratings skipped: market %d has %d entrant(s)", market_id, len(entrants))
            return RecordOutcomeResult.NOT_APPLICABLE

        winner_ids = [
            e.competitor_id for e in entrants
            if is_winning_pick(make_ref(e.competitor_id, e.team_name), winner)
        ]
        loser_ids = [e.competitor_id for e in entrants if e.competitor_id not in winner_ids]
        if not winner_ids or not loser_ids:
            logger.info("Ratings skipped: market %d has no comparable pairings", market_id)
            return RecordOutcomeResult.NOT_APPLICABLE

        try:
            competitors = {
                c.id: c
                for c in db.query(Competitor)
                .filter(Competitor.id.in_(winner_ids + loser_ids))
                .with_for_update()
                .all()
            }

            def _rating(cid: int) -> int:
                c = competitors.get(cid)
                return c.rating if c is not None else self.config.default_rating

            deltas = winner_vs_field_deltas(
                {cid: _rating(cid) for cid in winner_ids},
                {cid: _rating(cid) for cid in loser_ids},
                k_factor=self.config.k_factor,
                spread=self.config.rating_spread,
            )

            now = utcnow()
            for cid, delta in deltas.items():
                competitor = competitors.get(cid)
                if competitor is None:
                    continue
                competitor.rating = apply_delta(competitor.rating, delta, self.config.min_rating)
                competitor.rating_updated_on = now

            market.ratings_recorded_on = now
            market.is_played = True
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info(
            "Ratings recorded for market %d: %s",
            market_id,
            ", ".join(f"{cid}:{d:+d}" for cid, d in sorted(deltas.items())),
        )
        return RecordOutcomeResult.OK


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_rating_engine: Optional[RatingEngine] = None


def get_rating_engine() -> RatingEngine:
    global _rating_engine
    if _rating_engine is None:
        _rating_engine = RatingEngine(EngineConfig.from_env())
    return _rating_engine
