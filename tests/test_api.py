"""End-to-end tests for the HTTP API against an in-memory database."""

import pytest
from fastapi.testclient import TestClient

from wagering.main import app, get_session_factory
from wagering.models import get_db

HEADERS = {"X-API-Key": "dev-key-insecure"}


@pytest.fixture
def client(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    # No context manager: the lifespan (and its scheduler) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_priced_market(client, names=("Alice", "Bob")):
    resp = client.post(
        "/admin/markets",
        json={"title": "Night", "entrants": [{"name": n} for n in names]},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    market_id = resp.json()["market_id"]

    # First confirmation posts the opening prices
    resp = client.post(f"/admin/markets/{market_id}/confirm", headers=HEADERS)
    assert resp.status_code == 200

    prices = client.get(f"/api/markets/{market_id}/prices", headers=HEADERS).json()["prices"]
    return market_id, {p["name"]: p["competitor_id"] for p in prices}


def _grant(client, bettor, amount):
    resp = client.post(f"/admin/coins/{bettor}/grant", json={"amount": amount}, headers=HEADERS)
    assert resp.status_code == 200
    return resp.json()["balance"]


# ---------------------------------------------------------------------------
# Basics
# ---------------------------------------------------------------------------

def test_root(client):
    assert client.get("/").json()["status"] == "operational"


def test_health_reports_stopped_scheduler(client):
    body = client.get("/health").json()
    assert body["database"] == "connected"
    assert body["scheduler"] == "stopped"


def test_api_key_required(client):
    assert client.get("/api/competitors/leaderboard").status_code == 401
    assert client.get("/api/competitors/leaderboard", headers={"X-API-Key": "nope"}).status_code == 401


def test_admin_routes_need_an_admin(client, monkeypatch):
    monkeypatch.setattr("wagering.auth.ADMIN_USERS", frozenset())
    resp = client.post("/admin/markets", json={"title": "Night"}, headers=HEADERS)
    assert resp.status_code == 403
    assert client.get("/api/competitors/leaderboard", headers=HEADERS).status_code == 200


def test_unknown_market_is_404(client):
    assert client.get("/api/markets/99/prices", headers=HEADERS).status_code == 404
    assert client.post("/admin/markets/99/resolve", headers=HEADERS).status_code == 404


def test_duplicate_entrants_are_422(client):
    resp = client.post(
        "/admin/markets",
        json={"title": "Night", "entrants": [{"name": "Alice"}, {"name": "Alice"}]},
        headers=HEADERS,
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "invalid_entrants"


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------

def test_price_display_formats(client):
    market_id, _ = _create_priced_market(client)

    body = client.get(
        f"/api/markets/{market_id}/prices",
        params={"format": "fraction", "stake": 10},
        headers=HEADERS,
    ).json()
    assert body["state"] == "open"
    assert {p["price"] for p in body["prices"]} == {185}
    assert {p["display"] for p in body["prices"]} == {"17/20"}
    assert {p["potential_profit"] for p in body["prices"]} == {8}

    body = client.get(f"/api/markets/{market_id}/prices", headers=HEADERS).json()
    assert {p["display"] for p in body["prices"]} == {"1.85"}


def test_unconfirmed_market_refuses_bets(client):
    market_id = client.post(
        "/admin/markets",
        json={"title": "Night", "entrants": [{"name": "Alice"}, {"name": "Bob"}]},
        headers=HEADERS,
    ).json()["market_id"]
    client.post(f"/admin/markets/{market_id}/prices", headers=HEADERS)
    prices = client.get(f"/api/markets/{market_id}/prices", headers=HEADERS).json()["prices"]
    _grant(client, "b1", 100)

    resp = client.post(
        f"/api/markets/{market_id}/bets",
        json={"bettor_id": "b1", "competitor_id": prices[0]["competitor_id"], "stake": 10},
        headers=HEADERS,
    )
    assert resp.status_code == 409
    assert resp.json()["detail"] == "not_confirmed"


def test_posting_prices_for_empty_market_is_409(client):
    market_id = client.post(
        "/admin/markets", json={"title": "Empty"}, headers=HEADERS
    ).json()["market_id"]
    resp = client.post(f"/admin/markets/{market_id}/prices", headers=HEADERS)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "no_competitors"


# ---------------------------------------------------------------------------
# Full lifecycle
# ---------------------------------------------------------------------------

def test_market_lifecycle(client):
    market_id, ids = _create_priced_market(client)
    assert _grant(client, "b1", 100) == 100

    # Place
    resp = client.post(
        f"/api/markets/{market_id}/bets",
        json={"bettor_id": "b1", "competitor_id": ids["Alice"], "stake": 10},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["bet"]["locked_price"] == 185
    assert body["prices"][str(ids["Alice"])] == 171
    assert body["prices"][str(ids["Bob"])] == 199

    # Same bettor again → validation failure
    resp = client.post(
        f"/api/markets/{market_id}/bets",
        json={"bettor_id": "b1", "competitor_id": ids["Bob"], "stake": 10},
        headers=HEADERS,
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "already_bet"

    # Unfunded bettor → 402
    resp = client.post(
        f"/api/markets/{market_id}/bets",
        json={"bettor_id": "b2", "competitor_id": ids["Bob"], "stake": 10},
        headers=HEADERS,
    )
    assert resp.status_code == 402

    # Resolve before a winner → 409
    resp = client.post(f"/admin/markets/{market_id}/resolve", headers=HEADERS)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "missing_winner"

    resp = client.post(
        f"/admin/markets/{market_id}/winner",
        json={"competitor_id": ids["Alice"]},
        headers=HEADERS,
    )
    assert resp.status_code == 200

    # Decided markets take no bets
    _grant(client, "b3", 50)
    resp = client.post(
        f"/api/markets/{market_id}/bets",
        json={"bettor_id": "b3", "competitor_id": ids["Bob"], "stake": 10},
        headers=HEADERS,
    )
    assert resp.status_code == 409

    # Resolve, then resolve again
    resp = client.post(f"/admin/markets/{market_id}/resolve", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    resp = client.post(f"/admin/markets/{market_id}/resolve", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "already_resolved"

    # 10 @ 1.85 pays 18
    results = client.get(f"/api/markets/{market_id}/results", headers=HEADERS).json()
    assert results["state"] == "settled"
    assert results["net_results"] == {"b1": 8}
    assert client.get("/api/bettors/b1/balance", headers=HEADERS).json()["balance"] == 108

    bets = client.get("/api/bettors/b1/bets", headers=HEADERS).json()
    assert len(bets) == 1
    assert bets[0]["payout"] == 18
    assert bets[0]["resolved"] is True

    # Ratings
    resp = client.post(f"/admin/markets/{market_id}/ratings", headers=HEADERS)
    assert resp.json()["status"] == "ok"
    resp = client.post(f"/admin/markets/{market_id}/ratings", headers=HEADERS)
    assert resp.json()["status"] == "already_recorded"

    board = client.get("/api/competitors/leaderboard", headers=HEADERS).json()
    assert [(e["name"], e["rating"]) for e in board] == [("Alice", 1216), ("Bob", 1184)]


def test_force_settle_sweeps_decided_markets(client):
    market_id, ids = _create_priced_market(client)
    client.post(
        f"/admin/markets/{market_id}/winner",
        json={"competitor_id": ids["Bob"]},
        headers=HEADERS,
    )

    body = client.post("/admin/force-settle", headers=HEADERS).json()
    assert body["markets_checked"] == 1
    assert body["markets_settled"] == 1
    assert body["ratings_recorded"] == 1

    prices = client.get(f"/api/markets/{market_id}/prices", headers=HEADERS).json()
    assert prices["state"] == "settled"


def test_unknown_bettor_balance_is_404(client):
    assert client.get("/api/bettors/ghost/balance", headers=HEADERS).status_code == 404


def test_scheduler_status(client):
    body = client.get("/admin/scheduler/status", headers=HEADERS).json()
    assert body["running"] is False
