"""
Database models for the wagering engine
SQLAlchemy ORM (SQLite by default, PostgreSQL in production)
"""

from sqlalchemy import (
    create_engine,
    CheckConstraint,
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from datetime import datetime, timezone
import logging
import os
from dotenv import load_dotenv

from wagering.core.engine_config import DEFAULT_RATING, MAX_PRICE, MIN_PRICE

# Load .env before reading DATABASE_URL
load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./wagering.db")

# SQLite connections are per-thread unless told otherwise; FastAPI runs sync
# endpoints in a threadpool.
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Market lifecycle
MARKET_OPEN = "open"
MARKET_DECIDED = "decided"
MARKET_SETTLED = "settled"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class Competitor(Base):
    """A person eligible to win markets, with their current skill rating"""

    __tablename__ = "competitors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), unique=True, nullable=False, index=True)

    # Mutated only by the rating engine after a confirmed result
    rating = Column(Integer, nullable=False, default=DEFAULT_RATING)
    rating_updated_on = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)


class Market(Base):
    """One scheduled game instance that bets are placed against"""

    __tablename__ = "markets"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)

    # open -> decided -> settled; settlement is one-way
    state = Column(String(16), nullable=False, default=MARKET_OPEN, index=True)

    # Winner (filled after game).  At most one of these is set.
    winner_competitor_id = Column(Integer, ForeignKey("competitors.id"))
    winner_team = Column(String(64))

    is_played = Column(Boolean, default=False, nullable=False)
    is_confirmed = Column(Boolean, default=False, nullable=False)
    ratings_recorded_on = Column(DateTime)
    settled_on = Column(DateTime)

    # Relationships
    entrants = relationship("Entrant", back_populates="market", cascade="all, delete-orphan")
    prices = relationship("Price", back_populates="market", cascade="all, delete-orphan")
    bets = relationship("Bet", back_populates="market")
    winner = relationship("Competitor", foreign_keys=[winner_competitor_id])

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Entrant(Base):
    """A competitor in a market's slate, optionally on a named team"""

    __tablename__ = "market_entrants"

    id = Column(Integer, primary_key=True, index=True)
    market_id = Column(Integer, ForeignKey("markets.id"), nullable=False, index=True)
    competitor_id = Column(Integer, ForeignKey("competitors.id"), nullable=False)
    team_name = Column(String(64))  # NULL = individual entrant

    market = relationship("Market", back_populates="entrants")
    competitor = relationship("Competitor")

    __table_args__ = (UniqueConstraint("market_id", "competitor_id", name="_market_entrant_uc"),)


class Price(Base):
    """Current odds for one competitor in one market (decimal odds x100)"""

    __tablename__ = "prices"

    id = Column(Integer, primary_key=True, index=True)
    market_id = Column(Integer, ForeignKey("markets.id"), nullable=False, index=True)
    competitor_id = Column(Integer, ForeignKey("competitors.id"), nullable=False)

    scaled_price = Column(Integer, nullable=False)
    base_price = Column(Integer, nullable=False)  # Posted from ratings; cashflow anchor

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    market = relationship("Market", back_populates="prices")

    __table_args__ = (
        UniqueConstraint("market_id", "competitor_id", name="_market_price_uc"),
        CheckConstraint(
            f"scaled_price >= {MIN_PRICE} AND scaled_price <= {MAX_PRICE}",
            name="ck_price_bounds",
        ),
    )


class Bet(Base):
    """One wager by one bettor on one market"""

    __tablename__ = "bets"

    id = Column(Integer, primary_key=True, index=True)
    market_id = Column(Integer, ForeignKey("markets.id"), nullable=False, index=True)
    bettor_id = Column(String(64), nullable=False, index=True)
    predicted_competitor_id = Column(Integer, ForeignKey("competitors.id"), nullable=False)

    stake = Column(Integer, nullable=False)
    locked_price = Column(Integer, nullable=False)  # Copied at placement, never updated

    # Outcome (filled once, by resolution)
    resolved = Column(Boolean, default=False, nullable=False, index=True)
    payout = Column(Integer, default=0, nullable=False)
    resolved_on = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, index=True)

    market = relationship("Market", back_populates="bets")
    predicted_competitor = relationship("Competitor")

    __table_args__ = (
        UniqueConstraint("market_id", "bettor_id", name="_market_bettor_uc"),
        CheckConstraint("stake > 0", name="ck_bet_stake_positive"),
        CheckConstraint("payout >= 0", name="ck_bet_payout_non_negative"),
    )


class CoinAccount(Base):
    """Spendable coin balance, owned by the SQL coin ledger"""

    __tablename__ = "coin_accounts"

    bettor_id = Column(String(64), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_coin_balance_non_negative"),)


# Create all tables
def init_db(bind=None):
    """Initialize database tables"""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
