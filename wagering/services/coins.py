"""
Coin ledger collaborator.

The wagering engine never reads-then-writes a balance itself.  It calls:

  try_debit(db, bettor_id, amount)  → bool   (refuses on insufficient funds)
  credit(db, bettor_id, amount)     → bool   (assumed to succeed for valid ids)

Both run inside the caller's session so a failed placement or resolution
rolls the balance change back with everything else.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from wagering.models import CoinAccount, utcnow

logger = logging.getLogger(__name__)


class CoinLedger(ABC):
    """Contract for whatever owns bettor balances."""

    @abstractmethod
    def try_debit(self, db: Session, bettor_id: str, amount: int) -> bool:
        """Remove *amount* if the balance covers it; no partial effect."""

    @abstractmethod
    def credit(self, db: Session, bettor_id: str, amount: int) -> bool:
        """Add *amount* to the balance."""

    @abstractmethod
    def get_balance(self, db: Session, bettor_id: str) -> Optional[int]:
        """Current balance, or None for an unknown bettor."""


class SqlCoinLedger(CoinLedger):
    """Balances in the ``coin_accounts`` table.

    Debits are a single conditional UPDATE so two concurrent placements by the
    same bettor cannot both spend the last coins: the second UPDATE matches no
    row once the first has committed.
    """

    def try_debit(self, db: Session, bettor_id: str, amount: int) -> bool:
        if amount <= 0:
            return False

        result = db.execute(
            update(CoinAccount)
            .where(CoinAccount.bettor_id == bettor_id, CoinAccount.balance >= amount)
            .values(balance=CoinAccount.balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("Debit refused: %s has fewer than %d coins", bettor_id, amount)
            return False
        return True

    def credit(self, db: Session, bettor_id: str, amount: int) -> bool:
        if amount <= 0:
            return False

        result = db.execute(
            update(CoinAccount)
            .where(CoinAccount.bettor_id == bettor_id)
            .values(balance=CoinAccount.balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # First payout to a bettor with no account row yet
            db.add(CoinAccount(bettor_id=bettor_id, balance=amount))
            db.flush()
        return True

    def get_balance(self, db: Session, bettor_id: str) -> Optional[int]:
        account = db.get(CoinAccount, bettor_id, populate_existing=True)
        return account.balance if account is not None else None


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_coin_ledger: Optional[CoinLedger] = None


def get_coin_ledger() -> CoinLedger:
    global _coin_ledger
    if _coin_ledger is None:
        _coin_ledger = SqlCoinLedger()
    return _coin_ledger
