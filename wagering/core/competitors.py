"""Tagged variants for picks and winners.

A pick in an individual market names a competitor; a pick in a team market
names a competitor *and* the team they play for.  Winners are declared either
as a single competitor or as a team name.  :func:`is_winning_pick` is the only
place that branches on these tags.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Individual:
    competitor_id: int


@dataclass(frozen=True)
class TeamMember:
    competitor_id: int
    team_name: str


CompetitorRef = Union[Individual, TeamMember]


@dataclass(frozen=True)
class IndividualWinner:
    competitor_id: int


@dataclass(frozen=True)
class TeamWinner:
    team_name: str


Winner = Union[IndividualWinner, TeamWinner]


def normalize_team_name(team_name: Optional[str]) -> Optional[str]:
    """Trim a team name; blank names mean "no team"."""
    if team_name is None:
        return None
    team_name = team_name.strip()
    return team_name or None


def make_ref(competitor_id: int, team_name: Optional[str]) -> CompetitorRef:
    """Build the pick variant for an entrant row."""
    team = normalize_team_name(team_name)
    if team is None:
        return Individual(competitor_id)
    return TeamMember(competitor_id, team)


def make_winner(
    winner_competitor_id: Optional[int], winner_team: Optional[str]
) -> Optional[Winner]:
    """Build the winner variant from a market row; ``None`` while undecided.

    A team winner takes precedence, mirroring how the two fields are written:
    declaring one always clears the other.
    """
    team = normalize_team_name(winner_team)
    if team is not None:
        return TeamWinner(team)
    if winner_competitor_id is not None:
        return IndividualWinner(winner_competitor_id)
    return None


def is_winning_pick(pick: CompetitorRef, winner: Winner) -> bool:
    """True when *pick* backed the declared *winner*.

    Team names compare case-insensitively.  A competitor picked without a
    team never wins a team market, and a team pick wins an individual market
    only if that exact competitor was declared the winner.
    """
    if isinstance(winner, TeamWinner):
        return (
            isinstance(pick, TeamMember)
            and pick.team_name.casefold() == winner.team_name.casefold()
        )
    return pick.competitor_id == winner.competitor_id
