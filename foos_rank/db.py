from datetime import datetime, timezone
from typing import Iterable, Optional

import aiosqlite

from .errors import ReversalError
from .logging_config import get_logger
from .models import DOUBLES, SINGLES, Guest, Match, Player, RatingChange

log = get_logger(__name__)

# Global variable for database path (will be set by init_db)
DB_PATH = "foos_rank.db"

# Per-discipline player columns; the only names ever interpolated into SQL
_COLUMNS = {
    SINGLES: ("singles_rating", "singles_wins", "singles_losses"),
    DOUBLES: ("doubles_rating", "doubles_wins", "doubles_losses"),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _columns(discipline: str) -> tuple[str, str, str]:
    try:
        return _COLUMNS[discipline]
    except KeyError:
        raise ValueError(f"Unknown discipline: {discipline!r}") from None


async def init_db(db_path: str = "foos_rank.db", initial_rating: int = 1200):
    """Initialize the database with required tables."""
    global DB_PATH
    DB_PATH = db_path

    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(f"""
            CREATE TABLE IF NOT EXISTS players (
                user_id INTEGER PRIMARY KEY,
                username TEXT NOT NULL,
                singles_rating INTEGER NOT NULL DEFAULT {int(initial_rating)},
                doubles_rating INTEGER NOT NULL DEFAULT {int(initial_rating)},
                singles_wins INTEGER NOT NULL DEFAULT 0,
                singles_losses INTEGER NOT NULL DEFAULT 0,
                doubles_wins INTEGER NOT NULL DEFAULT 0,
                doubles_losses INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS matches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL,
                match_type TEXT CHECK(match_type IN ('1v1','2v2')) NOT NULL,
                series_type TEXT CHECK(series_type IN ('bo1','bo3','bo5')) NOT NULL DEFAULT 'bo1',
                winning_team TEXT CHECK(winning_team IN ('team1','team2')) NOT NULL,
                recorded_by INTEGER NOT NULL,
                status TEXT CHECK(status IN ('recorded','deleted')) NOT NULL DEFAULT 'recorded',
                created_at TEXT NOT NULL,
                deleted_at TEXT,
                deleted_by INTEGER
            )
        """)

        # Registered players carry user_id; guests carry guest_name only
        await db.execute("""
            CREATE TABLE IF NOT EXISTS match_players (
                match_id INTEGER NOT NULL REFERENCES matches(id),
                team TEXT CHECK(team IN ('team1','team2')) NOT NULL,
                position INTEGER CHECK(position IN (1, 2)) NOT NULL,
                user_id INTEGER REFERENCES players(user_id),
                is_guest INTEGER NOT NULL DEFAULT 0,
                guest_name TEXT,
                PRIMARY KEY(match_id, team, position)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS match_results (
                match_id INTEGER NOT NULL REFERENCES matches(id),
                game_number INTEGER NOT NULL,
                winning_team TEXT CHECK(winning_team IN ('team1','team2')) NOT NULL,
                PRIMARY KEY(match_id, game_number)
            )
        """)

        # Append-only: a deletion adds the negated rows (is_reversal=1), never edits
        await db.execute("""
            CREATE TABLE IF NOT EXISTS rating_changes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                match_id INTEGER NOT NULL REFERENCES matches(id),
                user_id INTEGER NOT NULL REFERENCES players(user_id),
                rating_type TEXT CHECK(rating_type IN ('singles','doubles')) NOT NULL,
                old_rating INTEGER NOT NULL,
                new_rating INTEGER NOT NULL,
                change_amount INTEGER NOT NULL,
                won INTEGER NOT NULL,
                is_reversal INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                UNIQUE(match_id, user_id, rating_type, is_reversal)
            )
        """)

        await db.execute("CREATE INDEX IF NOT EXISTS idx_matches_group ON matches(group_id, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_match_players_user ON match_players(user_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_rating_changes_user ON rating_changes(user_id)")

        await db.commit()
    log.debug("Initialized database at %s", DB_PATH)


# ========================================
# Players (current rating + win/loss counters)
# ========================================

def player_from_row(row: dict) -> Player:
    return Player(
        user_id=row["user_id"],
        username=row["username"],
        singles_rating=row["singles_rating"],
        doubles_rating=row["doubles_rating"],
        singles_wins=row["singles_wins"],
        singles_losses=row["singles_losses"],
        doubles_wins=row["doubles_wins"],
        doubles_losses=row["doubles_losses"],
    )


async def get_player(user_id: int) -> dict | None:
    """Get a player row by ID."""
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute("SELECT * FROM players WHERE user_id = ?", (user_id,)) as cursor:
            row = await cursor.fetchone()
            return dict(row) if row else None


async def get_players(user_ids: Iterable[int]) -> dict[int, dict]:
    """Get several players at once, keyed by user_id. Unknown ids are left out."""
    ids = list(dict.fromkeys(user_ids))
    if not ids:
        return {}
    placeholders = ",".join("?" for _ in ids)
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            f"SELECT * FROM players WHERE user_id IN ({placeholders})", ids
        ) as cursor:
            rows = await cursor.fetchall()
    out = {row["user_id"]: dict(row) for row in rows}
    log.debug("Fetched %s/%s players", len(out), len(ids))
    return out


async def get_or_create_player(user_id: int, username: str, base_rating: int = 1200) -> dict:
    """Get existing player or create new one with base_rating in both disciplines."""
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        # Try to get existing player
        async with db.execute(
            "SELECT * FROM players WHERE user_id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                player = dict(row)
                log.debug("Fetched existing player user_id=%s", user_id)
                return player
        # Create new player
        now = _now()
        await db.execute(
            """
            INSERT OR IGNORE INTO players (user_id, username, singles_rating, doubles_rating, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, username, base_rating, base_rating, now, now),
        )
        await db.commit()
        async with db.execute(
            "SELECT * FROM players WHERE user_id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
            player = dict(row) if row else {}
            log.debug("Created new player user_id=%s rating=%s", user_id, base_rating)
            return player


async def _apply_to_player(db: aiosqlite.Connection, change: RatingChange, now: str) -> None:
    rating_col, wins_col, losses_col = _columns(change.discipline)
    won, lost = (1, 0) if change.won else (0, 1)
    if change.reversal:
        sql = f"""
            UPDATE players
            SET {rating_col} = {rating_col} + ?,
                {wins_col} = MAX({wins_col} - ?, 0),
                {losses_col} = MAX({losses_col} - ?, 0),
                updated_at = ?
            WHERE user_id = ?
        """
    else:
        sql = f"""
            UPDATE players
            SET {rating_col} = {rating_col} + ?,
                {wins_col} = {wins_col} + ?,
                {losses_col} = {losses_col} + ?,
                updated_at = ?
            WHERE user_id = ?
        """
    cursor = await db.execute(sql, (change.delta, won, lost, now, change.player_id))
    if cursor.rowcount != 1:
        raise LookupError(f"Player {change.player_id} not found")


async def _insert_change(db: aiosqlite.Connection, match_id: int, change: RatingChange, now: str) -> None:
    await db.execute(
        """
        INSERT INTO rating_changes (match_id, user_id, rating_type, old_rating, new_rating,
                                    change_amount, won, is_reversal, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            match_id, change.player_id, change.discipline, change.old_rating, change.new_rating,
            change.delta, int(change.won), int(change.reversal), now,
        ),
    )


# ========================================
# Matches
# ========================================

async def insert_match(match: Match, changes: list[RatingChange]) -> int:
    """Store a match with its participants, game results and rating changes, and
    apply the changes to the players, all in one transaction. Returns the match ID."""
    async with aiosqlite.connect(DB_PATH) as db:
        now = _now()
        await db.execute("BEGIN IMMEDIATE")
        try:
            cursor = await db.execute(
                """
                INSERT INTO matches (group_id, match_type, series_type, winning_team, recorded_by, status, created_at)
                VALUES (?, ?, ?, ?, ?, 'recorded', ?)
                """,
                (match.group_id, match.match_type, match.series_type, match.winning_team, match.recorded_by, now),
            )
            match_id = cursor.lastrowid
            for team_name, team in (("team1", match.team1), ("team2", match.team2)):
                for position, p in enumerate(team, start=1):
                    if isinstance(p, Guest):
                        row = (match_id, team_name, position, None, 1, p.display_name)
                    else:
                        row = (match_id, team_name, position, p.player_id, 0, None)
                    await db.execute(
                        """
                        INSERT INTO match_players (match_id, team, position, user_id, is_guest, guest_name)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        row,
                    )
            for game_number, winner in enumerate(match.game_winners, start=1):
                await db.execute(
                    "INSERT INTO match_results (match_id, game_number, winning_team) VALUES (?, ?, ?)",
                    (match_id, game_number, winner),
                )
            for change in changes:
                await _insert_change(db, match_id, change, now)
                await _apply_to_player(db, change, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    log.debug(
        "Inserted match id=%s group=%s type=%s winner=%s changes=%s",
        match_id, match.group_id, match.match_type, match.winning_team, len(changes),
    )
    return match_id


async def reverse_match(match_id: int, reversed_changes: list[RatingChange], deleted_by: int) -> None:
    """Mark a recorded match deleted and apply its negated rating changes in one transaction.

    Raises ReversalError if the match is not currently recorded or was already reversed.
    """
    async with aiosqlite.connect(DB_PATH) as db:
        now = _now()
        await db.execute("BEGIN IMMEDIATE")
        try:
            cursor = await db.execute(
                """
                UPDATE matches SET status = 'deleted', deleted_at = ?, deleted_by = ?
                WHERE id = ? AND status = 'recorded'
                """,
                (now, deleted_by, match_id),
            )
            if cursor.rowcount != 1:
                raise ReversalError(f"Match {match_id} is not a recorded match")
            for change in reversed_changes:
                if not change.reversal or change.match_id != match_id:
                    raise ReversalError(f"Change for player {change.player_id} is not a reversal of match {match_id}")
                try:
                    await _insert_change(db, match_id, change, now)
                except aiosqlite.IntegrityError:
                    raise ReversalError(f"Match {match_id} has already been reversed") from None
                await _apply_to_player(db, change, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    log.debug("Reversed match id=%s changes=%s by=%s", match_id, len(reversed_changes), deleted_by)


async def get_match(match_id: int) -> dict | None:
    """Get a match row by ID."""
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute("SELECT * FROM matches WHERE id = ?", (match_id,)) as cursor:
            row = await cursor.fetchone()
            data = dict(row) if row else None
            log.debug("Fetched match id=%s -> found=%s", match_id, bool(data))
            return data


async def get_match_participants(match_id: int) -> list[dict]:
    """Get participant rows for a match, ordered by team then position."""
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            "SELECT * FROM match_players WHERE match_id = ? ORDER BY team, position",
            (match_id,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]


async def get_match_results(match_id: int) -> list[str]:
    """Get per-game winners for a match in game order."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            "SELECT winning_team FROM match_results WHERE match_id = ? ORDER BY game_number",
            (match_id,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [row[0] for row in rows]


def _change_from_row(row) -> RatingChange:
    return RatingChange(
        player_id=row["user_id"],
        discipline=row["rating_type"],
        old_rating=row["old_rating"],
        new_rating=row["new_rating"],
        delta=row["change_amount"],
        won=bool(row["won"]),
        match_id=row["match_id"],
        reversal=bool(row["is_reversal"]),
    )


async def get_rating_changes(match_id: int, reversal: Optional[bool] = False) -> list[RatingChange]:
    """Get stored rating changes for a match. reversal=None returns both kinds."""
    query = "SELECT * FROM rating_changes WHERE match_id = ?"
    params: tuple = (match_id,)
    if reversal is not None:
        query += " AND is_reversal = ?"
        params = (match_id, int(reversal))
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(query + " ORDER BY id", params) as cursor:
            rows = await cursor.fetchall()
    changes = [_change_from_row(row) for row in rows]
    log.debug("Fetched %s rating changes for match=%s reversal=%s", len(changes), match_id, reversal)
    return changes


async def player_rating_changes(user_id: int, discipline: str | None = None, limit: int = 10) -> list[RatingChange]:
    """Most recent rating changes for a player, newest first."""
    query = "SELECT * FROM rating_changes WHERE user_id = ?"
    params: list = [user_id]
    if discipline is not None:
        query += " AND rating_type = ?"
        params.append(discipline)
    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
    return [_change_from_row(row) for row in rows]


async def top_players(group_id: int, discipline: str = SINGLES, limit: int = 10) -> list[dict]:
    """Get top players by discipline rating among those who played a recorded match in the group."""
    rating_col, wins_col, losses_col = _columns(discipline)
    match_type = "1v1" if discipline == SINGLES else "2v2"
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            f"""
            SELECT p.user_id, p.username,
                   p.{rating_col} AS rating, p.{wins_col} AS wins, p.{losses_col} AS losses
            FROM players p
            WHERE p.user_id IN (
                SELECT mp.user_id FROM match_players mp
                JOIN matches m ON m.id = mp.match_id
                WHERE m.group_id = ? AND m.match_type = ? AND m.status = 'recorded'
                  AND mp.user_id IS NOT NULL
            )
            ORDER BY p.{rating_col} DESC, p.user_id
            LIMIT ?
            """,
            (group_id, match_type, limit),
        ) as cursor:
            rows = await cursor.fetchall()
            out = [dict(row) for row in rows]
            log.debug("Top players group=%s discipline=%s limit=%s -> %s", group_id, discipline, limit, len(out))
            return out


async def recent_matches(
    group_id: int,
    user_id: Optional[int] = None,
    limit: int = 10,
    include_deleted: bool = False,
) -> list[dict]:
    """Get recent matches in a group, optionally only those a user played in."""
    query = "SELECT m.* FROM matches m WHERE m.group_id = ?"
    params: list = [group_id]
    if not include_deleted:
        query += " AND m.status = 'recorded'"
    if user_id is not None:
        query += " AND EXISTS (SELECT 1 FROM match_players mp WHERE mp.match_id = m.id AND mp.user_id = ?)"
        params.append(user_id)
    query += " ORDER BY m.id DESC LIMIT ?"
    params.append(limit)
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
    out = [dict(row) for row in rows]
    log.debug("Recent matches group=%s user=%s limit=%s -> %s", group_id, user_id, limit, len(out))
    return out
