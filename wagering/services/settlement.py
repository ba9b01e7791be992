"""
Scheduled settlement sweep.

Scheduled jobs:
  settle_decided_markets()  - every SETTLEMENT_INTERVAL_MIN (default 15) min:
                              record ratings and pay out decided markets,
                              and catch up ratings for markets that were
                              resolved by hand before they were rated

Both steps are idempotent, so a market that failed half-way through one sweep
is simply picked up again by the next.
"""

import logging
import os
from typing import Dict, List

from sqlalchemy import and_, or_

from wagering.core.outcomes import RecordOutcomeResult, ResolveResult
from wagering.models import MARKET_DECIDED, MARKET_SETTLED, Market, SessionLocal, utcnow

logger = logging.getLogger(__name__)

SETTLEMENT_INTERVAL_MIN = int(os.getenv("SETTLEMENT_INTERVAL_MIN", "15"))


def settle_decided_markets(session_factory=None, ledger=None, rating_engine=None) -> Dict:
    """
    Record ratings for, then resolve, every market in the ``decided`` state.

    Settled markets that carry a winner but no ratings stamp only get their
    ratings recorded.

    One market's failure is logged and reported in the summary; the sweep
    carries on with the rest.
    """
    from wagering.services.bet_ledger import get_bet_ledger
    from wagering.services.ratings import get_rating_engine

    ledger = ledger or get_bet_ledger()
    rating_engine = rating_engine or get_rating_engine()

    logger.info("Starting settle_decided_markets")
    db = (session_factory or SessionLocal)()

    checked = 0
    settled = 0
    rated = 0
    errors: List[str] = []

    try:
        pending = (
            db.query(Market.id, Market.state)
            .filter(or_(
                Market.state == MARKET_DECIDED,
                and_(
                    Market.state == MARKET_SETTLED,
                    Market.ratings_recorded_on.is_(None),
                    or_(Market.winner_competitor_id.isnot(None), Market.winner_team.isnot(None)),
                ),
            ))
            .order_by(Market.id)
            .all()
        )

        for market_id, state in pending:
            checked += 1
            try:
                if rating_engine.record_outcome(db, market_id) == RecordOutcomeResult.OK:
                    rated += 1

                if state == MARKET_SETTLED:
                    continue

                result = ledger.resolve_market(db, market_id)
                if result in (ResolveResult.OK, ResolveResult.ALREADY_RESOLVED):
                    settled += 1
                else:
                    errors.append(f"Market {market_id}: {result.value}")
            except Exception as exc:
                db.rollback()
                errors.append(f"Market {market_id}: {exc}")
                logger.error("Error settling market %d: %s", market_id, exc)

    except Exception as exc:
        logger.error("Fatal error in settle_decided_markets: %s", exc, exc_info=True)
        db.rollback()
        errors.append(f"Fatal: {exc}")
    finally:
        db.close()

    summary = _job_summary(checked, settled, rated, errors)
    logger.info("settle_decided_markets done: %s", summary)
    return summary


def _job_summary(checked: int, settled: int, rated: int, errors: List[str]) -> Dict:
    return {
        "markets_checked": checked,
        "markets_settled": settled,
        "ratings_recorded": rated,
        "errors": errors,
        "timestamp": utcnow().isoformat(),
    }
