"""
Market registry: slates, winners and confirmation.

Public API:
  create_market(db, title, entrants)          → (MarketResult, market_id | None)
  replace_entrants(db, market_id, entrants)   → MarketResult
  declare_winner(db, market_id, winner)       → MarketResult
  confirm_market(db, market_id, odds=None)    → MarketResult

Entrants are ``(competitor_name, team_name | None)`` pairs.  Competitors are
created the first time a name is seen and keep the default rating until
their first recorded result.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wagering.core.competitors import IndividualWinner, TeamWinner, Winner, normalize_team_name
from wagering.core.outcomes import MarketResult
from wagering.models import (
    MARKET_DECIDED,
    MARKET_OPEN,
    MARKET_SETTLED,
    Bet,
    Competitor,
    Entrant,
    Market,
)
from wagering.services.odds import OddsEngine, get_odds_engine

logger = logging.getLogger(__name__)

EntrantPair = Tuple[str, Optional[str]]


def _clean_slate(entrants: Sequence[EntrantPair]) -> Optional[List[EntrantPair]]:
    """Strip names; None if any name is blank or repeated."""
    cleaned: List[EntrantPair] = []
    seen = set()
    for name, team in entrants:
        name = (name or "").strip()
        if not name or name.casefold() in seen:
            return None
        seen.add(name.casefold())
        cleaned.append((name, normalize_team_name(team)))
    return cleaned


def _get_or_create_competitor(db: Session, name: str) -> Competitor:
    competitor = db.query(Competitor).filter(Competitor.name == name).first()
    if competitor is None:
        competitor = Competitor(name=name)
        db.add(competitor)
        db.flush()
        logger.info("New competitor %r (id %d)", name, competitor.id)
    return competitor


def create_market(
    db: Session, title: str, entrants: Sequence[EntrantPair]
) -> Tuple[MarketResult, Optional[int]]:
    title = (title or "").strip()
    slate = _clean_slate(entrants)
    if not title or slate is None:
        return MarketResult.INVALID_ENTRANTS, None

    try:
        market = Market(title=title, state=MARKET_OPEN)
        db.add(market)
        db.flush()
        market_id = market.id
        for name, team in slate:
            competitor = _get_or_create_competitor(db, name)
            db.add(Entrant(market_id=market_id, competitor_id=competitor.id, team_name=team))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Market %d created: %r with %d entrant(s)", market_id, title, len(slate))
    return MarketResult.OK, market_id


def replace_entrants(db: Session, market_id: int, entrants: Sequence[EntrantPair]) -> MarketResult:
    """Swap an open market's slate.

    Competitors who already carry bets must stay on the slate.  Prices are
    not touched here; post them again afterwards.
    """
    market = db.query(Market).filter(Market.id == market_id).with_for_update().first()
    if market is None:
        return MarketResult.NOT_FOUND
    if market.state != MARKET_OPEN:
        return MarketResult.MARKET_CLOSED

    slate = _clean_slate(entrants)
    if slate is None:
        return MarketResult.INVALID_ENTRANTS

    try:
        competitors = [(_get_or_create_competitor(db, name), team) for name, team in slate]
        keep_ids = {c.id for c, _ in competitors}

        backed_ids = {
            cid for (cid,) in db.query(Bet.predicted_competitor_id)
            .filter(Bet.market_id == market_id)
            .distinct()
        }
        if not backed_ids <= keep_ids:
            db.rollback()
            return MarketResult.INVALID_ENTRANTS

        existing = {
            e.competitor_id: e
            for e in db.query(Entrant).filter(Entrant.market_id == market_id).all()
        }
        for cid, entrant in existing.items():
            if cid not in keep_ids:
                db.delete(entrant)
        for competitor, team in competitors:
            entrant = existing.get(competitor.id)
            if entrant is None:
                db.add(Entrant(market_id=market_id, competitor_id=competitor.id, team_name=team))
            else:
                entrant.team_name = team
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Market %d slate replaced: %d entrant(s)", market_id, len(slate))
    return MarketResult.OK


def declare_winner(db: Session, market_id: int, winner: Optional[Winner]) -> MarketResult:
    """Set (``open → decided``) or clear (``decided → open``) the winner.

    Once ratings have been recorded the result is final.
    """
    market = db.query(Market).filter(Market.id == market_id).with_for_update().first()
    if market is None:
        return MarketResult.NOT_FOUND
    if market.state == MARKET_SETTLED or market.ratings_recorded_on is not None:
        return MarketResult.MARKET_CLOSED

    if winner is None:
        market.winner_competitor_id = None
        market.winner_team = None
        market.state = MARKET_OPEN
        db.commit()
        logger.info("Market %d winner cleared", market_id)
        return MarketResult.OK

    entrants = db.query(Entrant).filter(Entrant.market_id == market_id).all()

    if isinstance(winner, IndividualWinner):
        if winner.competitor_id not in {e.competitor_id for e in entrants}:
            return MarketResult.INVALID_WINNER
        market.winner_competitor_id = winner.competitor_id
        market.winner_team = None
    elif isinstance(winner, TeamWinner):
        wanted = normalize_team_name(winner.team_name)
        teams = {
            t.casefold(): t
            for t in (normalize_team_name(e.team_name) for e in entrants)
            if t is not None
        }
        if wanted is None or wanted.casefold() not in teams:
            return MarketResult.INVALID_WINNER
        market.winner_competitor_id = None
        market.winner_team = teams[wanted.casefold()]
    else:
        return MarketResult.INVALID_WINNER

    market.state = MARKET_DECIDED
    db.commit()
    logger.info("Market %d decided: %s", market_id, winner)
    return MarketResult.OK


def confirm_market(db: Session, market_id: int, odds: Optional[OddsEngine] = None) -> MarketResult:
    """Mark a market confirmed; bets are refused until this happens.

    The first confirmation of an open market also posts its initial prices.
    A slate that cannot be priced yet does not block confirmation.
    """
    market = db.query(Market).filter(Market.id == market_id).with_for_update().first()
    if market is None:
        return MarketResult.NOT_FOUND
    if market.is_confirmed:
        return MarketResult.OK

    market.is_confirmed = True
    post_prices = market.state == MARKET_OPEN
    db.commit()
    logger.info("Market %d confirmed", market_id)

    if post_prices:
        pricing = (odds or get_odds_engine()).post_initial_prices(db, market_id)
        if not pricing.ok:
            logger.warning("Market %d confirmed without prices: %s", market_id, pricing.value)
    return MarketResult.OK
