"""
Elo rating engine for singles (1v1) and doubles (2v2) matches.
Pure functions: compute the rating changes a match produces, and the
negated changes that undo it when the match is deleted.
"""

import math
from typing import Mapping, Sequence

from .errors import InvalidParticipantError, ReversalError
from .models import (
    DISCIPLINES,
    DOUBLES,
    INITIAL_RATING,
    SINGLES,
    Guest,
    Participant,
    RatingChange,
    Registered,
)

K_FACTOR = 32


def round_half_away(x: float) -> int:
    """Round to the nearest integer, ties away from zero (16.5 -> 17, -16.5 -> -17)."""
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


def expected_score(ra: float, rb: float) -> float:
    """
    Calculate the expected score for player A against player B.

    Args:
        ra: Rating of player A
        rb: Rating of player B

    Returns:
        Expected score (probability) for player A to win (0.0 to 1.0)
    """
    return 1 / (1 + math.pow(10, (rb - ra) / 400))


def update_rating(old_rating: float, expected: float, actual: float, k: float = K_FACTOR) -> int:
    """New rating after one pairing; actual is 1 for a win and 0 for a loss."""
    return round_half_away(old_rating + k * (actual - expected))


def k_factor_for(games_played: int) -> float:
    """Dampened K-factor: 50 for a brand-new player, halving by 300 games."""
    return 50 / (1 + max(0, games_played) / 300)


def elo_delta(
    ra: int,
    rb: int,
    a_won: bool,
    k: float = K_FACTOR,
    multiplier: float = 1.0,
) -> tuple[int, int]:
    """
    Calculate new ratings for both players after a 1v1 match.

    Each side is updated from its own prior rating against the other's.

    Returns:
        Tuple of (new_rating_a, new_rating_b)
    """
    score_a = 1 if a_won else 0
    new_ra = update_rating(ra, expected_score(ra, rb), score_a, k * multiplier)
    new_rb = update_rating(rb, expected_score(rb, ra), 1 - score_a, k * multiplier)
    return new_ra, new_rb


def _rating_of(p: Participant, initial_rating: int) -> int:
    if isinstance(p, Guest):
        return initial_rating
    return p.rating


def _check_distinct(participants: Sequence[Participant]) -> None:
    ids = [p.player_id for p in participants if isinstance(p, Registered)]
    if len(ids) != len(set(ids)):
        raise InvalidParticipantError("The same player cannot appear twice in a match")


def compute_singles_change(
    player1: Participant,
    player2: Participant,
    player1_won: bool,
    *,
    k: float = K_FACTOR,
    multiplier: float = 1.0,
    initial_rating: int = INITIAL_RATING,
) -> list[RatingChange]:
    """
    Rating changes for a 1v1 match, one per registered player.

    A guest still counts as the opponent (at ``initial_rating``) but gets no
    change of their own.
    """
    if isinstance(player1, Guest) and isinstance(player2, Guest):
        raise InvalidParticipantError("A singles match needs at least one registered player")
    _check_distinct([player1, player2])

    r1 = _rating_of(player1, initial_rating)
    r2 = _rating_of(player2, initial_rating)
    new_r1, new_r2 = elo_delta(r1, r2, player1_won, k, multiplier)

    changes = []
    for p, old, new, won in ((player1, r1, new_r1, player1_won), (player2, r2, new_r2, not player1_won)):
        if isinstance(p, Registered):
            changes.append(RatingChange(p.player_id, SINGLES, old, new, new - old, won))
    return changes


def team_average(members: Sequence[Participant], initial_rating: int = INITIAL_RATING) -> float:
    """
    Effective team rating: the mean of the members' ratings.

    Guest members count at ``initial_rating``. A team with no registered
    member has no meaningful rating and is rejected.
    """
    if not any(isinstance(m, Registered) for m in members):
        raise InvalidParticipantError("A team needs at least one registered player")
    return sum(_rating_of(m, initial_rating) for m in members) / len(members)


def compute_doubles_change(
    team1: Sequence[Participant],
    team2: Sequence[Participant],
    team1_won: bool,
    *,
    k: float = K_FACTOR,
    multiplier: float = 1.0,
    use_games_played: bool = False,
    initial_rating: int = INITIAL_RATING,
) -> list[RatingChange]:
    """
    Rating changes for a 2v2 match, one per registered player.

    Expected score is taken between the two team averages and every member
    of a team moves by that team's delta, whatever their own rating. With
    ``use_games_played`` each player's K is dampened by their experience, so
    teammates can then move by different amounts.
    """
    if len(team1) != 2 or len(team2) != 2:
        raise InvalidParticipantError("Doubles teams must have exactly two players")
    _check_distinct([*team1, *team2])

    team1_avg = team_average(team1, initial_rating)
    team2_avg = team_average(team2, initial_rating)
    e1 = expected_score(team1_avg, team2_avg)
    e2 = expected_score(team2_avg, team1_avg)
    a1 = 1 if team1_won else 0

    changes = []
    for team, expected, actual in ((team1, e1, a1), (team2, e2, 1 - a1)):
        for p in team:
            if not isinstance(p, Registered):
                continue
            k_p = k_factor_for(p.games_played) if use_games_played else k
            delta = round_half_away(k_p * multiplier * (actual - expected))
            changes.append(
                RatingChange(p.player_id, DOUBLES, p.rating, p.rating + delta, delta, actual == 1)
            )
    return changes


def reverse_change(
    stored: Sequence[RatingChange],
    current_ratings: Mapping[int, int] | None = None,
) -> list[RatingChange]:
    """
    Negate a match's stored rating changes.

    The original delta is subtracted from each player's current rating (when
    given) rather than resetting to the stored old rating, so matches played
    since are kept. Fails closed on anything it cannot trust.
    """
    if not stored:
        raise ReversalError("No stored rating changes to reverse")

    seen: set[int] = set()
    disciplines = {c.discipline for c in stored}
    match_ids = {c.match_id for c in stored}
    if len(disciplines) != 1 or not disciplines <= set(DISCIPLINES):
        raise ReversalError(f"Stored changes have invalid disciplines: {sorted(disciplines)}")
    if len(match_ids) != 1:
        raise ReversalError("Stored changes belong to more than one match")

    reversed_changes = []
    for c in stored:
        if c.reversal:
            raise ReversalError(f"Match {c.match_id} has already been reversed")
        if c.new_rating - c.old_rating != c.delta:
            raise ReversalError(
                f"Malformed change for player {c.player_id}: {c.old_rating} -> {c.new_rating} != {c.delta:+d}"
            )
        if c.player_id in seen:
            raise ReversalError(f"Duplicate change for player {c.player_id}")
        seen.add(c.player_id)

        current = c.new_rating
        if current_ratings is not None and c.player_id in current_ratings:
            current = current_ratings[c.player_id]
        reversed_changes.append(
            RatingChange(
                player_id=c.player_id,
                discipline=c.discipline,
                old_rating=current,
                new_rating=current - c.delta,
                delta=-c.delta,
                won=c.won,
                match_id=c.match_id,
                reversal=True,
            )
        )
    return reversed_changes
