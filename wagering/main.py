"""
FastAPI application for the wagering engine
Includes REST API, scheduled settlement, and health checks
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from contextlib import asynccontextmanager
from typing import Optional
import logging

from wagering.models import (
    get_db,
    Competitor,
    Entrant,
    Market,
    Price,
    SessionLocal,
    utcnow,
)
from wagering.auth import verify_api_key, verify_admin_api_key
from wagering.core.competitors import IndividualWinner, TeamWinner
from wagering.core.odds_format import OddsDisplayFormat, format_price, potential_profit
from wagering.core.outcomes import ErrorKind
from wagering.services.bet_ledger import get_bet_ledger
from wagering.services.coins import get_coin_ledger
from wagering.services.markets import confirm_market, create_market, declare_winner
from wagering.services.odds import get_odds_engine
from wagering.services.ratings import get_rating_engine
from wagering.services.settlement import SETTLEMENT_INTERVAL_MIN, settle_decided_markets
from wagering.schemas import (
    BalanceResponse,
    BetCreate,
    BetResponse,
    CoinGrant,
    LeaderboardEntry,
    MarketCreate,
    MarketPricesResponse,
    MarketResponse,
    MarketResultsResponse,
    PlaceBetResponse,
    PriceQuote,
    WinnerDeclare,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler instance
scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting wagering engine")

    scheduler.add_job(
        _settlement_job,
        IntervalTrigger(minutes=SETTLEMENT_INTERVAL_MIN),
        id="settle_decided_markets",
        name="Settle Decided Markets",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started: settlement every %dmin", SETTLEMENT_INTERVAL_MIN)

    yield

    logger.info("Shutting down wagering engine")
    scheduler.shutdown()


app = FastAPI(
    title="Wagering Engine",
    description="Skill ratings, priced markets and coin settlement",
    version="1.0",
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOB
# ============================================================================

def _settlement_job():
    """Record ratings and pay out decided markets (every 15 min by default)."""
    try:
        results = settle_decided_markets()
        logger.info("Settlement sweep: %s", results)
    except Exception as exc:
        logger.error("Settlement job failed: %s", exc, exc_info=True)


def get_session_factory():
    """Session factory for jobs triggered over HTTP (overridden in tests)."""
    return SessionLocal


# ============================================================================
# RESULT → HTTP
# ============================================================================

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION_FAILURE: 422,
    ErrorKind.INSUFFICIENT_FUNDS: 402,
    ErrorKind.MARKET_NOT_READY: 409,
    ErrorKind.NOT_FOUND: 404,
}


def _raise_for_result(result) -> None:
    """Raise the HTTP error for a failed engine result.

    OK and the already-resolved family fall through: both are 200s, the
    latter carrying its own ``status``.
    """
    status_code = _STATUS_BY_KIND.get(result.kind)
    if status_code is not None:
        raise HTTPException(status_code=status_code, detail=result.value)


def _get_market_or_404(db: Session, market_id: int) -> Market:
    market = db.query(Market).filter(Market.id == market_id).first()
    if not market:
        raise HTTPException(status_code=404, detail="Market not found")
    return market


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Wagering Engine",
        "version": "1.0",
        "status": "operational",
        "timestamp": utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - MARKETS
# ============================================================================

@app.get("/api/markets/{market_id}/prices", response_model=MarketPricesResponse)
async def get_market_prices(
    market_id: int,
    format: OddsDisplayFormat = Query(default="decimal"),
    stake: Optional[int] = Query(default=None, gt=0),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Current prices, with optional potential profit on a stake."""
    market = _get_market_or_404(db, market_id)

    rows = (
        db.query(Price, Competitor.name, Entrant.team_name)
        .join(Competitor, Competitor.id == Price.competitor_id)
        .outerjoin(
            Entrant,
            (Entrant.market_id == Price.market_id) & (Entrant.competitor_id == Price.competitor_id),
        )
        .filter(Price.market_id == market_id)
        .order_by(Price.scaled_price, Competitor.name)
        .all()
    )

    return MarketPricesResponse(
        market_id=market.id,
        state=market.state,
        format=format,
        prices=[
            PriceQuote(
                competitor_id=price.competitor_id,
                name=name,
                team=team,
                price=price.scaled_price,
                display=format_price(price.scaled_price, format),
                potential_profit=potential_profit(stake, price.scaled_price) if stake else None,
            )
            for price, name, team in rows
        ],
    )


@app.post("/api/markets/{market_id}/bets", response_model=PlaceBetResponse)
async def place_bet(
    market_id: int,
    payload: BetCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Place one bet at the current price; the price is locked on the bet."""
    ledger = get_bet_ledger()
    result = ledger.place_bet(db, market_id, payload.bettor_id, payload.competitor_id, payload.stake)
    _raise_for_result(result)

    bet = next(b for b in ledger.get_bets_for_bettor(db, payload.bettor_id) if b.market_id == market_id)
    return PlaceBetResponse(
        message="Bet placed",
        status=result.value,
        bet=BetResponse.model_validate(bet),
        prices=ledger.get_prices(db, market_id),
    )


@app.get("/api/markets/{market_id}/results", response_model=MarketResultsResponse)
async def get_market_results(
    market_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Per-bettor net coins on a market's resolved bets."""
    market = _get_market_or_404(db, market_id)
    return MarketResultsResponse(
        market_id=market.id,
        state=market.state,
        net_results=get_bet_ledger().get_net_results(db, market_id),
    )


# ============================================================================
# AUTHENTICATED ENDPOINTS - BETTORS & COMPETITORS
# ============================================================================

@app.get("/api/bettors/{bettor_id}/bets", response_model=list[BetResponse])
async def get_bettor_bets(
    bettor_id: str,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """All bets placed by a bettor, newest first."""
    return get_bet_ledger().get_bets_for_bettor(db, bettor_id)


@app.get("/api/bettors/{bettor_id}/balance", response_model=BalanceResponse)
async def get_bettor_balance(
    bettor_id: str,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    balance = get_coin_ledger().get_balance(db, bettor_id)
    if balance is None:
        raise HTTPException(status_code=404, detail="Bettor not found")
    return BalanceResponse(bettor_id=bettor_id, balance=balance)


@app.get("/api/competitors/leaderboard", response_model=list[LeaderboardEntry])
async def get_leaderboard(
    take: int = Query(default=20, ge=1, le=200),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Competitors by skill rating, highest first."""
    return [
        LeaderboardEntry.model_validate(r)
        for r in get_rating_engine().get_leaderboard(db, take)
    ]


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/markets", response_model=MarketResponse)
async def admin_create_market(
    payload: MarketCreate,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Create a market and its entrant slate (admin only)."""
    result, market_id = create_market(
        db, payload.title, [(e.name, e.team) for e in payload.entrants]
    )
    _raise_for_result(result)
    logger.info("Market %d created by %s", market_id, user)
    return MarketResponse(message="Market created", status=result.value, market_id=market_id)


@app.post("/admin/markets/{market_id}/winner", response_model=MarketResponse)
async def admin_declare_winner(
    market_id: int,
    payload: WinnerDeclare,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Declare (or clear) a market's winner (admin only)."""
    if payload.team:
        winner = TeamWinner(payload.team)
    elif payload.competitor_id is not None:
        winner = IndividualWinner(payload.competitor_id)
    else:
        winner = None

    result = declare_winner(db, market_id, winner)
    _raise_for_result(result)
    return MarketResponse(
        message="Winner cleared" if winner is None else "Winner declared",
        status=result.value,
        market_id=market_id,
    )


@app.post("/admin/markets/{market_id}/confirm", response_model=MarketResponse)
async def admin_confirm_market(
    market_id: int,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Confirm a market for betting; the first confirmation posts prices."""
    result = confirm_market(db, market_id)
    _raise_for_result(result)
    return MarketResponse(message="Market confirmed", status=result.value, market_id=market_id)


@app.post("/admin/markets/{market_id}/prices", response_model=MarketResponse)
async def admin_post_prices(
    market_id: int,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Post initial prices from current ratings (admin only)."""
    result = get_odds_engine().post_initial_prices(db, market_id)
    _raise_for_result(result)
    return MarketResponse(message="Prices posted", status=result.value, market_id=market_id)


@app.post("/admin/markets/{market_id}/resolve", response_model=MarketResponse)
async def admin_resolve_market(
    market_id: int,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Pay out a decided market (admin only). Safe to repeat."""
    logger.info("Manual resolution of market %d triggered by %s", market_id, user)
    result = get_bet_ledger().resolve_market(db, market_id)
    _raise_for_result(result)
    return MarketResponse(
        message="Market resolved" if result.ok else "Market already resolved",
        status=result.value,
        market_id=market_id,
    )


@app.post("/admin/markets/{market_id}/ratings", response_model=MarketResponse)
async def admin_record_ratings(
    market_id: int,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Apply the market's result to competitor ratings (admin only). Safe to repeat."""
    result = get_rating_engine().record_outcome(db, market_id)
    _raise_for_result(result)
    return MarketResponse(
        message="Ratings recorded" if result.ok else "Ratings already recorded",
        status=result.value,
        market_id=market_id,
    )


@app.post("/admin/force-settle")
async def force_settle(
    user: str = Depends(verify_admin_api_key),
    session_factory=Depends(get_session_factory),
):
    """Manually trigger the settlement sweep (admin only)."""
    logger.info("Manual settlement triggered by %s", user)
    try:
        results = settle_decided_markets(session_factory=session_factory)
        return {"message": "Settlement complete", **results}
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@app.post("/admin/coins/{bettor_id}/grant", response_model=BalanceResponse)
async def grant_coins(
    bettor_id: str,
    payload: CoinGrant,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Credit coins to a bettor, creating the account if needed (admin only)."""
    coins = get_coin_ledger()
    coins.credit(db, bettor_id, payload.amount)
    db.commit()
    logger.info("%d coins granted to %s by %s", payload.amount, bettor_id, user)
    return BalanceResponse(bettor_id=bettor_id, balance=coins.get_balance(db, bettor_id))


@app.get("/admin/scheduler/status")
async def get_scheduler_status(user: str = Depends(verify_admin_api_key)):
    """Get scheduler job status"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
