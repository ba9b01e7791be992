"""Operation results and the error taxonomy they report against.

Every engine operation returns a specific result enum rather than raising for
ordinary user-facing outcomes ("not enough coins", "already settled").  Each
member maps onto exactly one :class:`ErrorKind` via ``.kind`` so callers can
branch on the coarse category (e.g. HTTP status) without knowing every
specific reason.

Storage faults are *not* modelled here: they propagate as exceptions.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict


class ErrorKind(str, Enum):
    OK = "ok"
    VALIDATION_FAILURE = "validation_failure"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    MARKET_NOT_READY = "market_not_ready"
    ALREADY_RESOLVED = "already_resolved"
    NOT_FOUND = "not_found"


class _Result(Enum):
    """Base for result enums; the kind mapping lives in :data:`_KINDS`."""

    @property
    def kind(self) -> ErrorKind:
        return _KINDS[self]

    @property
    def ok(self) -> bool:
        return self.kind is ErrorKind.OK


class PlaceBetResult(_Result):
    OK = "ok"
    NOT_FOUND = "not_found"
    MARKET_CLOSED = "market_closed"
    NOT_CONFIRMED = "not_confirmed"
    INVALID_STAKE = "invalid_stake"
    INVALID_COMPETITOR = "invalid_competitor"
    MISSING_PRICE = "missing_price"
    ALREADY_BET = "already_bet"
    INSUFFICIENT_FUNDS = "insufficient_funds"


class ResolveResult(_Result):
    OK = "ok"
    NOT_FOUND = "not_found"
    MISSING_WINNER = "missing_winner"
    ALREADY_RESOLVED = "already_resolved"


class PricingResult(_Result):
    OK = "ok"
    NOT_FOUND = "not_found"
    NO_COMPETITORS = "no_competitors"
    MARKET_CLOSED = "market_closed"


class RecordOutcomeResult(_Result):
    OK = "ok"
    NOT_FOUND = "not_found"
    NOT_APPLICABLE = "not_applicable"
    ALREADY_RECORDED = "already_recorded"


class MarketResult(_Result):
    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID_ENTRANTS = "invalid_entrants"
    INVALID_WINNER = "invalid_winner"
    MARKET_CLOSED = "market_closed"


_KINDS: Dict[_Result, ErrorKind] = {
    PlaceBetResult.OK: ErrorKind.OK,
    PlaceBetResult.NOT_FOUND: ErrorKind.NOT_FOUND,
    PlaceBetResult.MARKET_CLOSED: ErrorKind.MARKET_NOT_READY,
    PlaceBetResult.NOT_CONFIRMED: ErrorKind.MARKET_NOT_READY,
    PlaceBetResult.INVALID_STAKE: ErrorKind.VALIDATION_FAILURE,
    PlaceBetResult.INVALID_COMPETITOR: ErrorKind.VALIDATION_FAILURE,
    PlaceBetResult.MISSING_PRICE: ErrorKind.MARKET_NOT_READY,
    PlaceBetResult.ALREADY_BET: ErrorKind.VALIDATION_FAILURE,
    PlaceBetResult.INSUFFICIENT_FUNDS: ErrorKind.INSUFFICIENT_FUNDS,

    ResolveResult.OK: ErrorKind.OK,
    ResolveResult.NOT_FOUND: ErrorKind.NOT_FOUND,
    ResolveResult.MISSING_WINNER: ErrorKind.MARKET_NOT_READY,
    ResolveResult.ALREADY_RESOLVED: ErrorKind.ALREADY_RESOLVED,

    PricingResult.OK: ErrorKind.OK,
    PricingResult.NOT_FOUND: ErrorKind.NOT_FOUND,
    PricingResult.NO_COMPETITORS: ErrorKind.MARKET_NOT_READY,
    PricingResult.MARKET_CLOSED: ErrorKind.MARKET_NOT_READY,

    RecordOutcomeResult.OK: ErrorKind.OK,
    RecordOutcomeResult.NOT_FOUND: ErrorKind.NOT_FOUND,
    RecordOutcomeResult.NOT_APPLICABLE: ErrorKind.MARKET_NOT_READY,
    RecordOutcomeResult.ALREADY_RECORDED: ErrorKind.ALREADY_RESOLVED,

    MarketResult.OK: ErrorKind.OK,
    MarketResult.NOT_FOUND: ErrorKind.NOT_FOUND,
    MarketResult.INVALID_ENTRANTS: ErrorKind.VALIDATION_FAILURE,
    MarketResult.INVALID_WINNER: ErrorKind.VALIDATION_FAILURE,
    MarketResult.MARKET_CLOSED: ErrorKind.MARKET_NOT_READY,
}
