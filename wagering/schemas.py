"""
Pydantic request/response schemas for the wagering API.

Using explicit schemas instead of raw dicts prevents mass-assignment
vulnerabilities on ORM models and generates accurate OpenAPI docs.
"""

from __future__ import annotations

from typing import Literal, Optional
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Markets
# ---------------------------------------------------------------------------

class EntrantIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120, description="Competitor name")
    team: Optional[str] = Field(None, max_length=64, description="Team name; omit for individual play")


class MarketCreate(BaseModel):
    """
    Payload for POST /admin/markets.

    A market whose entrants form two or more named teams is priced and
    settled per team; otherwise every entrant is priced individually.
    """

    title: str = Field(..., min_length=1, max_length=200)
    entrants: list[EntrantIn] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be blank")
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "title": "Catan night #12",
                "entrants": [
                    {"name": "Alice"},
                    {"name": "Bob"},
                    {"name": "Carol"},
                ],
            }
        }
    }


class WinnerDeclare(BaseModel):
    """
    Payload for POST /admin/markets/{market_id}/winner.

    Set exactly one of competitor_id / team, or neither to clear the winner.
    """

    competitor_id: Optional[int] = None
    team: Optional[str] = Field(None, max_length=64)

    @model_validator(mode="after")
    def one_winner(self) -> "WinnerDeclare":
        if self.competitor_id is not None and self.team:
            raise ValueError("Declare either competitor_id or team, not both")
        return self


class MarketResponse(BaseModel):
    """Outcome of an admin market operation."""
    message: str
    status: str
    market_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------

class PriceQuote(BaseModel):
    competitor_id: int
    name: str
    team: Optional[str]
    price: int = Field(..., description="Decimal odds x100 (e.g. 250 = 2.50)")
    display: str = Field(..., description='Formatted price, e.g. "2.50" or "3/2"')
    potential_profit: Optional[int] = Field(None, description="Profit on the requested stake")


class MarketPricesResponse(BaseModel):
    market_id: int
    state: str
    format: Literal["decimal", "fraction"]
    prices: list[PriceQuote]


# ---------------------------------------------------------------------------
# Bets
# ---------------------------------------------------------------------------

class BetCreate(BaseModel):
    """Payload for POST /api/markets/{market_id}/bets."""

    bettor_id: str = Field(..., min_length=1, max_length=64)
    competitor_id: int = Field(..., description="FK to competitors.id")
    stake: int = Field(..., description="Whole coins risked")

    model_config = {
        "json_schema_extra": {
            "example": {"bettor_id": "alice", "competitor_id": 3, "stake": 50}
        }
    }


class BetResponse(BaseModel):
    id: int
    market_id: int
    bettor_id: str
    predicted_competitor_id: int
    stake: int
    locked_price: int
    resolved: bool
    payout: int
    resolved_on: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class PlaceBetResponse(BaseModel):
    message: str
    status: str
    bet: BetResponse
    prices: dict[int, int]


class MarketResultsResponse(BaseModel):
    """Per-bettor net (payout - stake) on a settled market."""
    market_id: int
    state: str
    net_results: dict[str, int]


# ---------------------------------------------------------------------------
# Coins and ratings
# ---------------------------------------------------------------------------

class CoinGrant(BaseModel):
    amount: int = Field(..., gt=0, description="Coins to credit")


class BalanceResponse(BaseModel):
    bettor_id: str
    balance: int


class LeaderboardEntry(BaseModel):
    competitor_id: int
    name: str
    rating: int
    last_updated: Optional[datetime]

    class Config:
        from_attributes = True
