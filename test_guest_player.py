"""
Test guest players filling doubles slots.
"""

import asyncio
import os
import sys

from foos_rank import db, elo
from foos_rank.errors import InvalidParticipantError
from foos_rank.models import DOUBLES, SINGLES, Guest
from foos_rank.service import MatchService

TEST_DB_PATH = "test_guest_player.db"


def _run(coro_fn):
    async def runner():
        if os.path.exists(TEST_DB_PATH):
            os.remove(TEST_DB_PATH)
        await db.init_db(TEST_DB_PATH)
        await coro_fn(MatchService())

    try:
        asyncio.run(runner())
    finally:
        if os.path.exists(TEST_DB_PATH):
            os.remove(TEST_DB_PATH)


def test_guest_teammate():
    """A guest fills a doubles slot without being rated."""
    print("🧪 Testing Guest Teammate...")

    async def body(svc: MatchService):
        print("  ✓ Creating test players...")
        await db.get_or_create_player(12345, "Player1")
        await db.get_or_create_player(67890, "Player2")
        await db.get_or_create_player(11111, "Player3")

        print("  ✓ Recording match with a guest on team 1...")
        match_id, changes = await svc.record_doubles(
            999, 12345,
            [Guest("Walk-in"), 12345],
            [67890, 11111],
            ["team1", "team1"],
            "bo3",
        )
        assert [c.player_id for c in changes] == [12345, 67890, 11111]
        # Equal averages, 2-0 sweep: K 32 x 1.2
        assert [c.delta for c in changes] == [19, -19, -19]
        print(f"    ✅ Match #{match_id} rated only registered players")

        print("  ✓ Checking stored participants...")
        participants = await db.get_match_participants(match_id)
        guests = [p for p in participants if p["is_guest"]]
        assert len(participants) == 4
        assert [(g["team"], g["position"], g["guest_name"], g["user_id"]) for g in guests] == [
            ("team1", 1, "Walk-in", None)
        ]
        print("    ✅ Guest stored for display only")

        print("  ✓ Checking ratings and counters...")
        p1 = db.player_from_row(await db.get_player(12345))
        assert p1.rating(DOUBLES) == 1219
        assert p1.record(DOUBLES) == (1, 0)
        assert p1.rating(SINGLES) == 1200
        top = await svc.leaderboard(999, DOUBLES)
        assert {r["user_id"] for r in top} == {12345, 67890, 11111}
        print("    ✅ Guest never reaches the leaderboard")

        print("  ✓ Deleting the match...")
        reverted = await svc.delete_match(match_id, 12345)
        assert [c.player_id for c in reverted] == [12345, 67890, 11111]
        for uid in (12345, 67890, 11111):
            player = db.player_from_row(await db.get_player(uid))
            assert player.rating(DOUBLES) == 1200
            assert player.record(DOUBLES) == (0, 0)
        print("    ✅ Deletion skips the guest")

    _run(body)
    print("\n✅ Guest teammate test passed!\n")


def test_guest_team_average():
    """A guest drags the team average toward the initial rating."""
    print("🧪 Testing Guest Team Average...")

    async def body(svc: MatchService):
        # Two matches give player 1 a doubles rating above 1200
        await svc.record_doubles(999, 1, [1, 2], [3, 4], ["team1"])
        await svc.record_doubles(999, 1, [1, 5], [3, 6], ["team1"])
        strong = db.player_from_row(await db.get_player(1)).rating(DOUBLES)
        assert strong > 1216

        _, with_guest = await svc.record_doubles(999, 1, [1, Guest("Sam")], [7, 8], ["team2"])
        # Guest counts at 1200 in the team average
        expected = elo.expected_score((strong + 1200) / 2, 1200)
        assert with_guest[0].old_rating == strong
        assert with_guest[0].delta == elo.round_half_away(32 * (0 - expected))
        assert [c.delta for c in with_guest[1:]] == [-with_guest[0].delta] * 2

    _run(body)
    print("    ✅ Guest counted at the initial rating")


def test_all_guest_team_rejected():
    """A team of guests has no rating to compare against."""
    print("🧪 Testing All-Guest Team...")

    async def body(svc: MatchService):
        try:
            await svc.record_doubles(999, 1, [Guest("A"), Guest("B")], [1, 2], ["team1"])
        except InvalidParticipantError:
            pass
        else:
            raise AssertionError("all-guest team should be rejected")
        try:
            await svc.record_doubles(999, 1, [1], [2, 3], ["team1"])
        except InvalidParticipantError:
            pass
        else:
            raise AssertionError("short team should be rejected")
        assert await db.recent_matches(999, include_deleted=True) == []
        assert await db.get_player(1) is None

    _run(body)
    print("    ✅ Rejected before anything is stored")


if __name__ == "__main__":
    failed = 0
    for test in (test_guest_teammate, test_guest_team_average, test_all_guest_team_rejected):
        try:
            test()
        except Exception as e:
            failed += 1
            print(f"❌ {test.__name__} failed: {e!r}")
    sys.exit(1 if failed else 0)
