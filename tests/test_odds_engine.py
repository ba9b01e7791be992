"""Tests for OddsEngine: posting prices from ratings and cashflow re-pricing."""

import random
from dataclasses import replace

import pytest

from wagering.core.competitors import IndividualWinner
from wagering.core.engine_config import MAX_PRICE, MIN_PRICE, PRICE_LADDER
from wagering.core.outcomes import PricingResult
from wagering.models import Bet, Competitor, Price
from wagering.services.markets import create_market, declare_winner, replace_entrants
from wagering.services.odds import OddsEngine, outcome_groups


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_market(db, entrants, ratings=None):
    result, market_id = create_market(db, "Game night", entrants)
    assert result.ok
    ids = {c.name: c.id for c in db.query(Competitor).all()}
    for name, rating in (ratings or {}).items():
        db.get(Competitor, ids[name]).rating = rating
    db.commit()
    return market_id, ids


def _add_bet(db, market_id, bettor, competitor_id, stake, price=200):
    db.add(Bet(
        market_id=market_id,
        bettor_id=bettor,
        predicted_competitor_id=competitor_id,
        stake=stake,
        locked_price=price,
    ))
    db.flush()


def _entrant(cid, team=None):
    class _E:
        competitor_id = cid
        team_name = team
    return _E()


# ---------------------------------------------------------------------------
# outcome_groups
# ---------------------------------------------------------------------------

def test_individual_groups():
    is_team, groups = outcome_groups([_entrant(1), _entrant(2), _entrant(3)])
    assert not is_team
    assert list(groups.values()) == [[1], [2], [3]]


def test_team_groups_need_two_teams():
    is_team, groups = outcome_groups([_entrant(1, "Red"), _entrant(2, "Red"), _entrant(3, "Blue")])
    assert is_team
    assert groups == {"Red": [1, 2], "Blue": [3]}

    # A single named team is still an individual market
    is_team, groups = outcome_groups([_entrant(1, "Red"), _entrant(2, None)])
    assert not is_team
    assert len(groups) == 2


# ---------------------------------------------------------------------------
# post_initial_prices
# ---------------------------------------------------------------------------

def test_equal_players_get_equal_prices(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None), ("Bob", None)])
    assert odds_engine.post_initial_prices(db, market_id) == PricingResult.OK
    assert odds_engine.get_prices(db, market_id) == {ids["Alice"]: 185, ids["Bob"]: 185}


def test_stronger_player_gets_shorter_price(db, odds_engine):
    market_id, ids = _make_market(
        db, [("Alice", None), ("Bob", None), ("Carol", None)],
        ratings={"Alice": 1400, "Bob": 1200, "Carol": 1000},
    )
    odds_engine.post_initial_prices(db, market_id)
    prices = odds_engine.get_prices(db, market_id)
    assert prices[ids["Alice"]] < prices[ids["Bob"]] < prices[ids["Carol"]]


def test_single_competitor_gets_one_bounded_price(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None)])
    assert odds_engine.post_initial_prices(db, market_id) == PricingResult.OK
    prices = odds_engine.get_prices(db, market_id)
    assert list(prices) == [ids["Alice"]]
    assert MIN_PRICE <= prices[ids["Alice"]] <= MAX_PRICE


def test_no_entrants(db, odds_engine):
    market_id, _ = _make_market(db, [])
    result = odds_engine.post_initial_prices(db, market_id)
    assert result == PricingResult.NO_COMPETITORS
    assert result.kind.value == "market_not_ready"
    assert odds_engine.get_prices(db, market_id) == {}


def test_unknown_market(db, odds_engine):
    assert odds_engine.post_initial_prices(db, 404) == PricingResult.NOT_FOUND


def test_decided_market_is_closed(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None), ("Bob", None)])
    declare_winner(db, market_id, IndividualWinner(ids["Alice"]))
    assert odds_engine.post_initial_prices(db, market_id) == PricingResult.MARKET_CLOSED


def test_team_members_share_team_price(db, odds_engine):
    market_id, ids = _make_market(
        db,
        [("Alice", "Red"), ("Bob", "Red"), ("Carol", "Blue"), ("Dan", "Blue")],
        ratings={"Alice": 1400, "Bob": 1000, "Carol": 1200, "Dan": 1200},
    )
    odds_engine.post_initial_prices(db, market_id)
    prices = odds_engine.get_prices(db, market_id)
    # Both teams average 1200
    assert set(prices.values()) == {185}
    assert len(prices) == 4


def test_reposting_updates_rows_in_place(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None), ("Bob", None)])
    odds_engine.post_initial_prices(db, market_id)

    db.get(Competitor, ids["Alice"]).rating = 1400
    db.commit()
    odds_engine.post_initial_prices(db, market_id)

    rows = db.query(Price).filter(Price.market_id == market_id).all()
    assert len(rows) == 2
    prices = {r.competitor_id: r.scaled_price for r in rows}
    assert prices[ids["Alice"]] < prices[ids["Bob"]]
    assert all(r.base_price == r.scaled_price for r in rows)


def test_reposting_drops_removed_entrants(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None), ("Bob", None), ("Carol", None)])
    odds_engine.post_initial_prices(db, market_id)

    replace_entrants(db, market_id, [("Alice", None), ("Bob", None)])
    odds_engine.post_initial_prices(db, market_id)

    assert set(odds_engine.get_prices(db, market_id)) == {ids["Alice"], ids["Bob"]}


def test_ladder_snapping(db, rating_engine, config):
    engine = OddsEngine(rating_engine, config=replace(config, snap_to_ladder=True))
    market_id, _ = _make_market(db, [("Alice", None), ("Bob", None), ("Carol", None)])
    engine.post_initial_prices(db, market_id)
    # 278 snaps to 275
    assert set(engine.get_prices(db, market_id).values()) == {275}
    assert all(p in PRICE_LADDER for p in engine.get_prices(db, market_id).values())


def test_jitter_keeps_bounds(db, rating_engine, config):
    engine = OddsEngine(
        rating_engine, config=replace(config, initial_jitter=0.2), rng=random.Random(3)
    )
    market_id, _ = _make_market(
        db, [("Alice", None), ("Bob", None)], ratings={"Alice": 2400, "Bob": 800}
    )
    engine.post_initial_prices(db, market_id)
    for price in engine.get_prices(db, market_id).values():
        assert MIN_PRICE <= price <= MAX_PRICE


# ---------------------------------------------------------------------------
# reprice_for_cashflow
# ---------------------------------------------------------------------------

def test_no_bets_no_change(db, odds_engine):
    market_id, _ = _make_market(db, [("Alice", None), ("Bob", None)])
    odds_engine.post_initial_prices(db, market_id)
    assert odds_engine.reprice_for_cashflow(db, market_id) == 0


def test_backed_side_shortens_other_lengthens(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None), ("Bob", None)])
    odds_engine.post_initial_prices(db, market_id)

    _add_bet(db, market_id, "b1", ids["Alice"], 100)
    assert odds_engine.reprice_for_cashflow(db, market_id) == 2
    db.commit()

    prices = odds_engine.get_prices(db, market_id)
    assert prices[ids["Alice"]] == 171
    assert prices[ids["Bob"]] == 199


def test_repricing_is_idempotent(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None), ("Bob", None), ("Carol", None)])
    odds_engine.post_initial_prices(db, market_id)
    _add_bet(db, market_id, "b1", ids["Alice"], 60)
    _add_bet(db, market_id, "b2", ids["Bob"], 15)

    odds_engine.reprice_for_cashflow(db, market_id)
    first = odds_engine.get_prices(db, market_id)

    assert odds_engine.reprice_for_cashflow(db, market_id) == 0
    assert odds_engine.get_prices(db, market_id) == first


def test_team_handle_moves_whole_team(db, odds_engine):
    market_id, ids = _make_market(
        db, [("Alice", "Red"), ("Bob", "Red"), ("Carol", "Blue"), ("Dan", "Blue")]
    )
    odds_engine.post_initial_prices(db, market_id)
    _add_bet(db, market_id, "b1", ids["Alice"], 100)
    odds_engine.reprice_for_cashflow(db, market_id)

    prices = odds_engine.get_prices(db, market_id)
    assert prices[ids["Alice"]] == prices[ids["Bob"]] == 171
    assert prices[ids["Carol"]] == prices[ids["Dan"]] == 199


@pytest.mark.parametrize("stake", [1, 1_000, 1_000_000])
def test_extreme_one_sided_handle_stays_bounded(db, odds_engine, stake):
    market_id, ids = _make_market(
        db, [("Alice", None), ("Bob", None)], ratings={"Alice": 2400, "Bob": 800}
    )
    odds_engine.post_initial_prices(db, market_id)
    assert odds_engine.get_prices(db, market_id) == {ids["Alice"]: MIN_PRICE, ids["Bob"]: MAX_PRICE}

    _add_bet(db, market_id, "b1", ids["Alice"], stake)
    odds_engine.reprice_for_cashflow(db, market_id)

    for price in odds_engine.get_prices(db, market_id).values():
        assert MIN_PRICE <= price <= MAX_PRICE


def test_base_price_is_never_touched_by_repricing(db, odds_engine):
    market_id, ids = _make_market(db, [("Alice", None), ("Bob", None)])
    odds_engine.post_initial_prices(db, market_id)
    _add_bet(db, market_id, "b1", ids["Bob"], 40)
    odds_engine.reprice_for_cashflow(db, market_id)

    rows = db.query(Price).filter(Price.market_id == market_id).all()
    assert {r.base_price for r in rows} == {185}
