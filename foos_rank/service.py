"""
Record and delete matches: read current ratings, run the rating engine,
persist the match together with its rating changes.

Every read -> compute -> write sequence holds a lock per (player, discipline),
so two matches sharing a player never compute from the same stale rating.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Iterable, Mapping, Sequence, Union

from . import db, elo, rules
from .errors import InvalidParticipantError, MatchNotFoundError, NotAllowedError, ReversalError
from .logging_config import get_logger
from .models import (
    DOUBLES,
    INITIAL_RATING,
    MATCH_DISCIPLINE,
    SINGLES,
    Guest,
    Match,
    RatingChange,
    Registered,
)

log = get_logger(__name__)

# A registered player is referred to by user id; a guest by Guest(name)
PlayerRef = Union[int, Guest]


class MatchService:
    def __init__(
        self,
        k_factor: float = elo.K_FACTOR,
        initial_rating: int = INITIAL_RATING,
        sweep_multiplier: float = rules.SWEEP_MULTIPLIER,
        dynamic_k: bool = False,
    ):
        self.k_factor = k_factor
        self.initial_rating = initial_rating
        self.sweep_multiplier = sweep_multiplier
        self.dynamic_k = dynamic_k
        self._locks: dict[tuple[int, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    @classmethod
    def from_config(cls) -> "MatchService":
        from . import config
        return cls(
            k_factor=config.K_FACTOR,
            initial_rating=config.INITIAL_RATING,
            sweep_multiplier=config.SWEEP_MULTIPLIER,
            dynamic_k=config.DYNAMIC_K,
        )

    @asynccontextmanager
    async def _locked(self, keys: Iterable[tuple[int, str]]):
        # Sorted acquisition order keeps overlapping matches from deadlocking
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._locks[key])
            yield

    async def _resolve(
        self,
        refs: Sequence[PlayerRef],
        discipline: str,
        usernames: Mapping[int, str],
    ) -> list:
        out = []
        for ref in refs:
            if isinstance(ref, Guest):
                out.append(ref)
                continue
            row = await db.get_or_create_player(
                ref, usernames.get(ref, f"User{ref}"), base_rating=self.initial_rating
            )
            player = db.player_from_row(row)
            out.append(Registered(ref, player.rating(discipline), player.games_played()))
        return out

    async def _record(
        self,
        group_id: int,
        recorded_by: int,
        match_type: str,
        team1_refs: Sequence[PlayerRef],
        team2_refs: Sequence[PlayerRef],
        game_winners: list[str],
        series_type: str,
        usernames: Mapping[int, str] | None,
    ) -> tuple[int, list[RatingChange]]:
        winner, _g1, _g2 = rules.series_winner(series_type, game_winners)
        multiplier = rules.series_multiplier(series_type, game_winners, self.sweep_multiplier)
        discipline = MATCH_DISCIPLINE[match_type]

        registered_ids = [r for r in (*team1_refs, *team2_refs) if not isinstance(r, Guest)]
        if not registered_ids:
            raise InvalidParticipantError("A match needs at least one registered player")

        async with self._locked((uid, discipline) for uid in registered_ids):
            team1 = await self._resolve(team1_refs, discipline, usernames or {})
            team2 = await self._resolve(team2_refs, discipline, usernames or {})
            if match_type == "1v1":
                changes = elo.compute_singles_change(
                    team1[0], team2[0], winner == "team1",
                    k=self.k_factor, multiplier=multiplier, initial_rating=self.initial_rating,
                )
            else:
                changes = elo.compute_doubles_change(
                    team1, team2, winner == "team1",
                    k=self.k_factor, multiplier=multiplier,
                    use_games_played=self.dynamic_k, initial_rating=self.initial_rating,
                )
            match = Match(
                id=None,
                group_id=group_id,
                match_type=match_type,
                series_type=series_type,
                team1=team1,
                team2=team2,
                winning_team=winner,
                recorded_by=recorded_by,
                game_winners=game_winners,
            )
            match_id = await db.insert_match(match, changes)

        changes = [dataclasses.replace(c, match_id=match_id) for c in changes]
        log.info(
            "Match #%s recorded (%s %s, winner=%s, x%.1f): %s",
            match_id, match_type, series_type, winner, multiplier,
            ", ".join(f"{c.player_id}:{c.delta:+d}" for c in changes),
        )
        return match_id, changes

    async def record_singles(
        self,
        group_id: int,
        recorded_by: int,
        player1: PlayerRef,
        player2: PlayerRef,
        game_winners: list[str],
        series_type: str = "bo1",
        usernames: Mapping[int, str] | None = None,
    ) -> tuple[int, list[RatingChange]]:
        """Record a finished 1v1 series. game_winners use "team1" for player1."""
        return await self._record(
            group_id, recorded_by, "1v1", [player1], [player2], game_winners, series_type, usernames
        )

    async def record_doubles(
        self,
        group_id: int,
        recorded_by: int,
        team1: Sequence[PlayerRef],
        team2: Sequence[PlayerRef],
        game_winners: list[str],
        series_type: str = "bo1",
        usernames: Mapping[int, str] | None = None,
    ) -> tuple[int, list[RatingChange]]:
        """Record a finished 2v2 series."""
        if len(team1) != 2 or len(team2) != 2:
            raise InvalidParticipantError("Doubles teams must have exactly two players")
        if all(isinstance(r, Guest) for r in team1) or all(isinstance(r, Guest) for r in team2):
            raise InvalidParticipantError("Each team needs at least one registered player")
        return await self._record(
            group_id, recorded_by, "2v2", list(team1), list(team2), game_winners, series_type, usernames
        )

    async def delete_match(
        self,
        match_id: int,
        deleted_by: int,
        group_id: int | None = None,
        is_admin: bool = False,
    ) -> list[RatingChange]:
        """
        Delete a recorded match and undo its rating and win/loss effects.

        Only the player who recorded the match or an admin may delete it.
        Returns the reversal changes that were applied.
        """
        row = await db.get_match(match_id)
        if row is None or (group_id is not None and row["group_id"] != group_id):
            raise MatchNotFoundError(f"Match {match_id} not found")
        if deleted_by != row["recorded_by"] and not is_admin:
            raise NotAllowedError("Only admins or the match recorder can delete matches")
        if row["status"] != "recorded":
            raise ReversalError(f"Match {match_id} has already been deleted")

        discipline = MATCH_DISCIPLINE[row["match_type"]]
        stored = await db.get_rating_changes(match_id, reversal=None)
        if any(c.discipline != discipline for c in stored):
            raise ReversalError(f"Match {match_id} has rating changes for the wrong discipline")

        async with self._locked((c.player_id, discipline) for c in stored):
            players = await db.get_players(c.player_id for c in stored)
            current = {
                uid: db.player_from_row(p).rating(discipline) for uid, p in players.items()
            }
            reversed_changes = elo.reverse_change(stored, current)
            await db.reverse_match(match_id, reversed_changes, deleted_by)

        log.info(
            "Match #%s deleted by %s, reversed: %s",
            match_id, deleted_by,
            ", ".join(f"{c.player_id}:{c.delta:+d}" for c in reversed_changes),
        )
        return reversed_changes

    async def leaderboard(self, group_id: int, discipline: str = SINGLES, limit: int = 10) -> list[dict]:
        if discipline not in (SINGLES, DOUBLES):
            raise ValueError(f"Unknown discipline: {discipline!r}")
        return await db.top_players(group_id, discipline, limit)

    async def match_details(self, match_id: int) -> dict | None:
        """A match row with its participants, game results and rating changes attached."""
        row = await db.get_match(match_id)
        if row is None:
            return None
        row["participants"] = await db.get_match_participants(match_id)
        row["games"] = await db.get_match_results(match_id)
        row["changes"] = await db.get_rating_changes(match_id, reversal=None)
        return row

    async def match_history(self, group_id: int, user_id: int | None = None, limit: int = 10) -> list[dict]:
        matches = await db.recent_matches(group_id, user_id=user_id, limit=limit)
        out = []
        for m in matches:
            details = await self.match_details(m["id"])
            if details is not None:
                out.append(details)
        return out

    async def player_stats(self, user_id: int, group_id: int, limit: int = 5) -> dict | None:
        row = await db.get_player(user_id)
        if row is None:
            return None
        return {
            "player": db.player_from_row(row),
            "matches": await self.match_history(group_id, user_id=user_id, limit=limit),
        }
