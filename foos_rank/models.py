"""
Data models for the foosball ranking system.
"""

from dataclasses import dataclass
from typing import Literal, Union

INITIAL_RATING = 1200

SINGLES = "singles"
DOUBLES = "doubles"
DISCIPLINES = (SINGLES, DOUBLES)

Discipline = Literal["singles", "doubles"]
MatchType = Literal["1v1", "2v2"]
SeriesType = Literal["bo1", "bo3", "bo5"]
Team = Literal["team1", "team2"]

MATCH_DISCIPLINE: dict[str, str] = {"1v1": SINGLES, "2v2": DOUBLES}


@dataclass(frozen=True)
class Registered:
    """A registered player taking part in a match, with the rating they bring to it."""
    player_id: int
    rating: int = INITIAL_RATING
    games_played: int = 0


@dataclass(frozen=True)
class Guest:
    """A one-off participant known only by name. Never rated, never counted."""
    display_name: str


Participant = Union[Registered, Guest]


def is_guest(p: Participant) -> bool:
    return isinstance(p, Guest)


@dataclass(frozen=True)
class RatingChange:
    player_id: int
    discipline: str
    old_rating: int
    new_rating: int
    delta: int
    won: bool
    match_id: int | None = None
    reversal: bool = False


@dataclass
class Player:
    user_id: int
    username: str
    singles_rating: int
    doubles_rating: int
    singles_wins: int
    singles_losses: int
    doubles_wins: int
    doubles_losses: int

    def rating(self, discipline: str) -> int:
        return self.singles_rating if discipline == SINGLES else self.doubles_rating

    def record(self, discipline: str) -> tuple[int, int]:
        if discipline == SINGLES:
            return self.singles_wins, self.singles_losses
        return self.doubles_wins, self.doubles_losses

    def games_played(self) -> int:
        """Games across both disciplines; drives the dampened K-factor."""
        return self.singles_wins + self.singles_losses + self.doubles_wins + self.doubles_losses


@dataclass
class Match:
    id: int | None
    group_id: int
    match_type: str
    series_type: str
    team1: list[Participant]
    team2: list[Participant]
    winning_team: str
    recorded_by: int
    game_winners: list[str]
    status: str = "recorded"

    @property
    def discipline(self) -> str:
        return MATCH_DISCIPLINE[self.match_type]
