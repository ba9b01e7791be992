"""Tests for the scheduled settlement sweep."""

from unittest.mock import MagicMock

from wagering.core.competitors import IndividualWinner
from wagering.core.outcomes import RecordOutcomeResult, ResolveResult
from wagering.models import MARKET_OPEN, MARKET_SETTLED, Bet, Competitor, Market, Price
from wagering.services.markets import create_market, declare_winner
from wagering.services.settlement import settle_decided_markets


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _decided_market(db, coins, ledger, title="Night"):
    """Alice beats Bob; one bettor backed Alice with 10 @ 2.00×."""
    _, market_id = create_market(db, title, [("Alice", None), ("Bob", None)])
    db.get(Market, market_id).is_confirmed = True
    ids = {c.name: c.id for c in db.query(Competitor).all()}
    for cid in ids.values():
        db.add(Price(market_id=market_id, competitor_id=cid, scaled_price=200, base_price=200))
    coins.credit(db, f"bettor-{market_id}", 50)
    db.commit()

    ledger.place_bet(db, market_id, f"bettor-{market_id}", ids["Alice"], 10)
    declare_winner(db, market_id, IndividualWinner(ids["Alice"]))
    return market_id, ids


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

def test_sweep_rates_and_pays_decided_markets(db, session_factory, coins, ledger, rating_engine):
    market_id, ids = _decided_market(db, coins, ledger)
    _, open_id = create_market(db, "Still open", [("Alice", None), ("Bob", None)])

    summary = settle_decided_markets(session_factory, ledger=ledger, rating_engine=rating_engine)

    assert summary["markets_checked"] == 1
    assert summary["markets_settled"] == 1
    assert summary["ratings_recorded"] == 1
    assert summary["errors"] == []
    assert "timestamp" in summary

    db.expire_all()
    assert db.get(Market, market_id).state == MARKET_SETTLED
    assert db.get(Market, open_id).state == MARKET_OPEN
    assert db.get(Competitor, ids["Alice"]).rating == 1216
    assert coins.get_balance(db, f"bettor-{market_id}") == 60


def test_second_sweep_is_a_no_op(db, session_factory, coins, ledger, rating_engine):
    market_id, ids = _decided_market(db, coins, ledger)
    settle_decided_markets(session_factory, ledger=ledger, rating_engine=rating_engine)

    summary = settle_decided_markets(session_factory, ledger=ledger, rating_engine=rating_engine)

    assert summary["markets_checked"] == 0
    db.expire_all()
    assert db.get(Competitor, ids["Alice"]).rating == 1216
    assert db.query(Bet).filter(Bet.market_id == market_id).one().payout == 20


def test_one_failure_does_not_stop_the_sweep(db, session_factory, coins, ledger):
    first, _ = _decided_market(db, coins, ledger, "First")
    second, _ = _decided_market(db, coins, ledger, "Second")

    rating_engine = MagicMock()
    rating_engine.record_outcome.return_value = RecordOutcomeResult.OK
    failing_ledger = MagicMock()
    failing_ledger.resolve_market.side_effect = [RuntimeError("boom"), ResolveResult.OK]

    summary = settle_decided_markets(session_factory, ledger=failing_ledger, rating_engine=rating_engine)

    assert summary["markets_checked"] == 2
    assert summary["markets_settled"] == 1
    assert summary["ratings_recorded"] == 2
    assert len(summary["errors"]) == 1
    assert f"Market {first}" in summary["errors"][0]
    assert [c.args[1] for c in failing_ledger.resolve_market.call_args_list] == [first, second]


def test_sweep_rates_markets_resolved_by_hand(db, session_factory, coins, ledger, rating_engine):
    market_id, ids = _decided_market(db, coins, ledger)
    assert ledger.resolve_market(db, market_id) == ResolveResult.OK

    summary = settle_decided_markets(session_factory, ledger=ledger, rating_engine=rating_engine)

    assert summary["markets_checked"] == 1
    assert summary["ratings_recorded"] == 1
    assert summary["markets_settled"] == 0
    assert summary["errors"] == []

    db.expire_all()
    market = db.get(Market, market_id)
    assert market.ratings_recorded_on is not None
    assert db.get(Competitor, ids["Alice"]).rating == 1216
    assert db.get(Competitor, ids["Bob"]).rating == 1184
    assert coins.get_balance(db, f"bettor-{market_id}") == 60

    # Caught up; nothing left for the next sweep
    assert settle_decided_markets(session_factory, ledger=ledger, rating_engine=rating_engine)["markets_checked"] == 0


def test_settled_market_without_winner_is_ignored(db, session_factory, coins, ledger, rating_engine):
    _, market_id = create_market(db, "Abandoned", [("Alice", None), ("Bob", None)])
    db.get(Market, market_id).state = MARKET_SETTLED
    db.commit()

    summary = settle_decided_markets(session_factory, ledger=ledger, rating_engine=rating_engine)
    assert summary["markets_checked"] == 0
