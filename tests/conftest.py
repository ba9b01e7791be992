"""Shared fixtures: an in-memory database and the engine components wired to it."""

import os

# API keys are read when wagering.auth is imported; use the development key.
os.environ["ENVIRONMENT"] = "development"
for _i in range(1, 6):
    os.environ.pop(f"API_KEY_USER{_i}", None)

import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wagering.core.engine_config import EngineConfig
from wagering.models import init_db
from wagering.services.bet_ledger import BetLedger
from wagering.services.coins import SqlCoinLedger
from wagering.services.notifications import Notifier
from wagering.services.odds import OddsEngine
from wagering.services.ratings import RatingEngine


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def rating_engine(config):
    return RatingEngine(config)


@pytest.fixture
def odds_engine(rating_engine):
    return OddsEngine(rating_engine)


@pytest.fixture
def coins():
    return SqlCoinLedger()


@pytest.fixture
def notifier():
    return MagicMock(spec=Notifier)


@pytest.fixture
def ledger(odds_engine, coins, notifier):
    return BetLedger(odds_engine, coins, notifier)
