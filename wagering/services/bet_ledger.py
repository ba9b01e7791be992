"""
Bet placement and settlement.

Public API:
  place_bet(db, market_id, bettor_id, competitor_id, stake)  → PlaceBetResult
  resolve_market(db, market_id)                              → ResolveResult
  get_prices(db, market_id)                                  → {competitor_id: price}
  get_bets_for_bettor(db, bettor_id)                         → [Bet]
  get_net_results(db, market_id)                             → {bettor_id: payout - stake}
  get_house_net(db)                                          → int

Money is integer coins throughout.  A winning bet pays
``stake * locked_price // 100`` (stake included), a losing bet pays 0.

Placement debits, inserts, re-prices and commits as one transaction.
Resolution pays every open bet on a market and flags it settled in one
transaction, so a retried call either finds nothing left to do or repeats
the whole thing.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wagering.core.competitors import is_winning_pick, make_ref, make_winner
from wagering.core.odds_math import payout
from wagering.core.outcomes import PlaceBetResult, ResolveResult
from wagering.models import MARKET_OPEN, MARKET_SETTLED, Bet, Entrant, Market, Price, utcnow
from wagering.services.coins import CoinLedger
from wagering.services.notifications import MARKET_RESOLVED, ODDS_UPDATED, Notifier
from wagering.services.odds import OddsEngine

logger = logging.getLogger(__name__)


class BetLedger:
    def __init__(self, odds: OddsEngine, coins: CoinLedger, notifier: Notifier):
        self.odds = odds
        self.coins = coins
        self.notifier = notifier

    # -----------------------------------------------------------------------
    # Placement
    # -----------------------------------------------------------------------

    def place_bet(
        self,
        db: Session,
        market_id: int,
        bettor_id: str,
        competitor_id: int,
        stake: int,
    ) -> PlaceBetResult:
        """Accept one bet at the competitor's current price.

        Validation failures return before anything is written.  Once the
        debit succeeds the bet insert and the cashflow re-price share its
        transaction.
        """
        if isinstance(stake, bool) or not isinstance(stake, int) or stake <= 0:
            return PlaceBetResult.INVALID_STAKE

        # Row lock serializes placements on this market
        market = (
            db.query(Market)
            .filter(Market.id == market_id)
            .with_for_update()
            .first()
        )
        if market is None:
            return PlaceBetResult.NOT_FOUND
        if market.state != MARKET_OPEN:
            return PlaceBetResult.MARKET_CLOSED
        if not market.is_confirmed:
            return PlaceBetResult.NOT_CONFIRMED

        entrant = (
            db.query(Entrant)
            .filter(Entrant.market_id == market_id, Entrant.competitor_id == competitor_id)
            .first()
        )
        if entrant is None:
            return PlaceBetResult.INVALID_COMPETITOR

        price = (
            db.query(Price)
            .filter(Price.market_id == market_id, Price.competitor_id == competitor_id)
            .populate_existing()
            .first()
        )
        if price is None:
            return PlaceBetResult.MISSING_PRICE

        existing = (
            db.query(Bet.id)
            .filter(Bet.market_id == market_id, Bet.bettor_id == bettor_id)
            .first()
        )
        if existing is not None:
            return PlaceBetResult.ALREADY_BET

        locked_price = price.scaled_price
        try:
            if not self.coins.try_debit(db, bettor_id, stake):
                db.rollback()
                return PlaceBetResult.INSUFFICIENT_FUNDS

            db.add(Bet(
                market_id=market_id,
                bettor_id=bettor_id,
                predicted_competitor_id=competitor_id,
                stake=stake,
                locked_price=locked_price,
            ))
            db.flush()

            self.odds.reprice_for_cashflow(db, market_id)
            db.commit()
        except IntegrityError:
            # Lost the race against a concurrent placement by the same bettor
            db.rollback()
            logger.info("Concurrent duplicate bet rejected: market %d bettor %s", market_id, bettor_id)
            return PlaceBetResult.ALREADY_BET
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info(
            "Bet placed: market %d | %s on competitor %d | stake %d @ %d",
            market_id, bettor_id, competitor_id, stake, locked_price,
        )
        self._notify(market_id, ODDS_UPDATED)
        return PlaceBetResult.OK

    # -----------------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------------

    def resolve_market(self, db: Session, market_id: int) -> ResolveResult:
        """Pay out every open bet on a decided market, exactly once."""
        market = (
            db.query(Market)
            .filter(Market.id == market_id)
            .with_for_update()
            .first()
        )
        if market is None:
            return ResolveResult.NOT_FOUND
        winner = make_winner(market.winner_competitor_id, market.winner_team)
        if winner is None:
            return ResolveResult.MISSING_WINNER
        if market.state == MARKET_SETTLED:
            return ResolveResult.ALREADY_RESOLVED

        try:
            entrant_teams = dict(
                db.query(Entrant.competitor_id, Entrant.team_name)
                .filter(Entrant.market_id == market_id)
                .all()
            )
            open_bets = (
                db.query(Bet)
                .filter(Bet.market_id == market_id, Bet.resolved.is_(False))
                .order_by(Bet.id)
                .with_for_update()
                .all()
            )

            now = utcnow()
            if not open_bets:
                market.state = MARKET_SETTLED
                market.settled_on = market.settled_on or now
                db.commit()
                logger.info("Market %d had no open bets; flagged settled", market_id)
                return ResolveResult.ALREADY_RESOLVED

            credits: Dict[str, int] = defaultdict(int)
            winners = 0
            for bet in open_bets:
                pick = make_ref(bet.predicted_competitor_id, entrant_teams.get(bet.predicted_competitor_id))
                amount = payout(bet.stake, bet.locked_price) if is_winning_pick(pick, winner) else 0
                if amount > 0:
                    winners += 1
                    credits[bet.bettor_id] += amount
                bet.payout = amount
                bet.resolved = True
                bet.resolved_on = now

            for bettor_id, amount in credits.items():
                self.coins.credit(db, bettor_id, amount)

            market.state = MARKET_SETTLED
            market.settled_on = now
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info(
            "Market %d resolved: %d bet(s), %d winner(s), %d coins paid",
            market_id, len(open_bets), winners, sum(credits.values()),
        )
        self._notify(market_id, MARKET_RESOLVED)
        return ResolveResult.OK

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get_prices(self, db: Session, market_id: int) -> Dict[int, int]:
        return self.odds.get_prices(db, market_id)

    def get_bets_for_bettor(self, db: Session, bettor_id: str) -> List[Bet]:
        return (
            db.query(Bet)
            .filter(Bet.bettor_id == bettor_id)
            .order_by(Bet.created_at.desc(), Bet.id.desc())
            .all()
        )

    def get_net_results(self, db: Session, market_id: int) -> Dict[str, int]:
        """Per-bettor ``payout - stake`` over the market's resolved bets."""
        rows = (
            db.query(Bet.bettor_id, Bet.payout, Bet.stake)
            .filter(Bet.market_id == market_id, Bet.resolved.is_(True))
            .all()
        )
        return {bettor_id: paid - stake for bettor_id, paid, stake in rows}

    def get_house_net(self, db: Session) -> int:
        """Coins kept by the house across all resolved bets."""
        net = (
            db.query(func.sum(Bet.stake - Bet.payout))
            .filter(Bet.resolved.is_(True))
            .scalar()
        )
        return int(net or 0)

    # -----------------------------------------------------------------------

    def _notify(self, market_id: int, event_kind: str) -> None:
        try:
            self.notifier.notify(market_id, event_kind)
        except Exception as exc:
            logger.warning("Notifier raised for market %d (%s): %s", market_id, event_kind, exc)


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_bet_ledger: Optional[BetLedger] = None


def get_bet_ledger() -> BetLedger:
    global _bet_ledger
    if _bet_ledger is None:
        from wagering.services.coins import get_coin_ledger
        from wagering.services.notifications import get_notifier
        from wagering.services.odds import get_odds_engine

        _bet_ledger = BetLedger(get_odds_engine(), get_coin_ledger(), get_notifier())
    return _bet_ledger
