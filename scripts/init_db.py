#!/usr/bin/env python3
"""
Database initialization script
Creates all tables and optionally seeds a demo market
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from wagering.models import Base, engine, SessionLocal
from wagering.services.coins import get_coin_ledger
from wagering.services.markets import confirm_market, create_market
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("Initializing wagering database...")

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info("Tables: %s", ", ".join(tables))

    return True


def seed_test_data(starting_coins: int = 500):
    """Create a priced three-player demo market and fund two bettors"""
    logger.info("Seeding demo market...")

    db = SessionLocal()

    try:
        result, market_id = create_market(
            db, "Demo game night", [("Alice", None), ("Bob", None), ("Carol", None)]
        )
        if not result.ok:
            logger.error("Demo market rejected: %s", result.value)
            return

        # Confirmation posts the opening prices
        confirm_market(db, market_id)

        coins = get_coin_ledger()
        for bettor in ("demo_bettor_1", "demo_bettor_2"):
            coins.credit(db, bettor, starting_coins)
        db.commit()

        logger.info("Demo market %d seeded", market_id)

    except Exception as e:
        logger.error("Error seeding data: %s", e)
        db.rollback()

    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize wagering database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", action="store_true", help="Seed a demo market")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        check_connection()
    else:
        if check_connection():
            init_database(drop_existing=args.drop)

            if args.seed:
                seed_test_data()

            logger.info("Database initialization complete!")
        else:
            logger.error("Cannot initialize database - connection failed")
            sys.exit(1)
