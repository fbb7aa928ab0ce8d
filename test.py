"""
Test suite for foos-rank
Tests database functions, series rules, settings and models
"""

import asyncio
import os
import sys


def test_database():
    """Test database initialization and player/match storage"""
    print("🧪 Testing Database Operations...")

    from foos_rank import db
    from foos_rank.models import DOUBLES, SINGLES, Guest, Match, RatingChange, Registered

    test_db_path = "test_foos_rank.db"

    async def body():
        await db.init_db(test_db_path)

        # Test 1: Create players
        print("  ✓ Testing player creation...")
        player1 = await db.get_or_create_player(12345, "TestPlayer1", base_rating=1200)
        assert player1['user_id'] == 12345
        assert player1['username'] == "TestPlayer1"
        assert player1['singles_rating'] == 1200
        assert player1['doubles_rating'] == 1200
        assert player1['singles_wins'] == 0
        assert player1['doubles_losses'] == 0
        print("    ✅ Player creation works")

        # Test 2: Get existing player
        print("  ✓ Testing get existing player...")
        player1_again = await db.get_or_create_player(12345, "Renamed", base_rating=1500)
        assert player1_again['username'] == "TestPlayer1"
        assert player1_again['singles_rating'] == 1200  # Should not reset
        print("    ✅ Get existing player works")

        await db.get_or_create_player(67890, "TestPlayer2")
        assert set(await db.get_players([12345, 67890, 1])) == {12345, 67890}
        assert await db.get_player(1) is None

        # Test 3: Insert match
        print("  ✓ Testing match insertion...")
        changes = [
            RatingChange(12345, SINGLES, 1200, 1216, 16, True),
            RatingChange(67890, SINGLES, 1200, 1184, -16, False),
        ]
        match = Match(
            id=None, group_id=999, match_type="1v1", series_type="bo1",
            team1=[Registered(12345)], team2=[Registered(67890)],
            winning_team="team1", recorded_by=12345, game_winners=["team1"],
        )
        match_id = await db.insert_match(match, changes)
        assert match_id > 0
        p1 = db.player_from_row(await db.get_player(12345))
        assert p1.rating(SINGLES) == 1216
        assert p1.record(SINGLES) == (1, 0)
        assert p1.rating(DOUBLES) == 1200
        print(f"    ✅ Match inserted with ID: {match_id}")

        # Test 4: Failed insert leaves nothing behind
        print("  ✓ Testing transaction rollback...")
        ghost = Match(
            id=None, group_id=999, match_type="1v1", series_type="bo1",
            team1=[Registered(12345)], team2=[Guest("Ghost")],
            winning_team="team1", recorded_by=12345, game_winners=["team1"],
        )
        try:
            await db.insert_match(ghost, [RatingChange(55555, SINGLES, 1200, 1216, 16, True)])
        except LookupError:
            pass
        else:
            raise AssertionError("change for an unknown player should fail")
        assert len(await db.recent_matches(999, include_deleted=True)) == 1
        assert db.player_from_row(await db.get_player(12345)).rating(SINGLES) == 1216
        print("    ✅ Rollback works")

        # Test 5: Top players
        print("  ✓ Testing top players query...")
        top = await db.top_players(group_id=999, discipline=SINGLES, limit=10)
        assert [r['user_id'] for r in top] == [12345, 67890]
        assert top[0]['rating'] == 1216
        assert await db.top_players(group_id=999, discipline=DOUBLES) == []
        print(f"    ✅ Top players query works (found {len(top)} players)")

        # Test 6: Recent matches and stored changes
        print("  ✓ Testing recent matches query...")
        matches = await db.recent_matches(group_id=999, user_id=12345, limit=5)
        assert [m['id'] for m in matches] == [match_id]
        assert await db.get_match_results(match_id) == ["team1"]
        stored = await db.get_rating_changes(match_id)
        assert [c.delta for c in stored] == [16, -16]
        assert all(c.match_id == match_id for c in stored)
        history = await db.player_rating_changes(67890, SINGLES)
        assert [c.new_rating for c in history] == [1184]
        print(f"    ✅ Recent matches query works (found {len(matches)} matches)")

    try:
        if os.path.exists(test_db_path):
            os.remove(test_db_path)
        asyncio.run(body())
        print("\n✅ All database tests passed!\n")
    finally:
        if os.path.exists(test_db_path):
            os.remove(test_db_path)


def test_series_rules():
    """Test game winner parsing and series outcomes"""
    print("🧪 Testing Series Rules...")

    from foos_rank.rules import is_sweep, parse_game_winners, series_multiplier, series_winner

    print("  ✓ Testing game winner parsing...")
    assert parse_game_winners("A") == ["team1"]
    assert parse_game_winners("ABA") == ["team1", "team2", "team1"]
    assert parse_game_winners("a, b, b") == ["team1", "team2", "team2"]
    assert parse_game_winners("1-2-1") == ["team1", "team2", "team1"]
    assert parse_game_winners("team2 t1") == ["team2", "team1"]
    for bad in ("", "  ", "AXB", "team3"):
        try:
            parse_game_winners(bad)
        except ValueError:
            pass
        else:
            raise AssertionError(f"{bad!r} should not parse")
    print("    ✅ Parsing works")

    print("  ✓ Testing series winner...")
    assert series_winner("bo1", ["team2"]) == ("team2", 0, 1)
    assert series_winner("bo3", ["team1", "team2", "team1"]) == ("team1", 2, 1)
    assert series_winner("bo5", ["team2", "team2", "team1", "team2"]) == ("team2", 1, 3)
    for series, games in (
        ("bo3", ["team1"]),                    # unfinished
        ("bo3", ["team1", "team1", "team2"]),  # extra game
        ("bo1", []),
        ("bo7", ["team1"]),
    ):
        try:
            series_winner(series, games)
        except ValueError:
            pass
        else:
            raise AssertionError(f"{series} {games} should be rejected")
    print("    ✅ Series winner works")

    print("  ✓ Testing sweep multiplier...")
    assert is_sweep("bo3", ["team1", "team1"])
    assert not is_sweep("bo3", ["team1", "team2", "team1"])
    assert not is_sweep("bo1", ["team1"])
    assert series_multiplier("bo5", ["team2"] * 3) == 1.2
    assert series_multiplier("bo5", ["team2"] * 3, sweep_multiplier=1.5) == 1.5
    assert series_multiplier("bo1", ["team2"]) == 1.0
    print("    ✅ Sweep multiplier works")
    print("\n✅ All rules tests passed!\n")


def test_settings():
    """Test numeric settings fall back on bad values"""
    print("🧪 Testing Settings...")

    from foos_rank import config

    saved = os.environ.get("FOOS_TEST_NUMBER")
    try:
        for raw, expected in (("48", 48), ("", 32), ("abc", 32), ("-5", 32), ("0", 32)):
            os.environ["FOOS_TEST_NUMBER"] = raw
            assert config._positive("FOOS_TEST_NUMBER", 32, int) == expected, raw
        os.environ["FOOS_TEST_NUMBER"] = "1.35"
        assert config._positive("FOOS_TEST_NUMBER", 1.2) == 1.35
        for raw, expected in (("1", True), ("true", True), ("YES", True), ("0", False), ("off", False)):
            os.environ["FOOS_TEST_NUMBER"] = raw
            assert config._flag("FOOS_TEST_NUMBER") is expected, raw
    finally:
        if saved is None:
            os.environ.pop("FOOS_TEST_NUMBER", None)
        else:
            os.environ["FOOS_TEST_NUMBER"] = saved

    assert config.K_FACTOR > 0
    assert config.INITIAL_RATING > 0
    assert config.DATABASE_PATH
    print("    ✅ Settings validation works")
    print("\n✅ All settings tests passed!\n")


def test_models():
    """Test data models"""
    print("🧪 Testing Models...")

    from foos_rank.models import DOUBLES, SINGLES, Guest, Match, Player, Registered, is_guest

    player = Player(1, "Alice", 1250, 1180, 3, 1, 0, 2)
    assert player.rating(SINGLES) == 1250
    assert player.rating(DOUBLES) == 1180
    assert player.record(SINGLES) == (3, 1)
    assert player.record(DOUBLES) == (0, 2)
    assert player.games_played() == 6

    assert is_guest(Guest("Bob"))
    assert not is_guest(Registered(1))
    assert Registered(1).rating == 1200

    match = Match(
        id=None, group_id=1, match_type="2v2", series_type="bo1",
        team1=[Registered(1), Guest("Bob")], team2=[Registered(2), Registered(3)],
        winning_team="team2", recorded_by=1, game_winners=["team2"],
    )
    assert match.discipline == DOUBLES
    assert match.status == "recorded"
    print("    ✅ Models work")
    print("\n✅ All model tests passed!\n")


def run_all_tests():
    """Run all test suites"""
    print("=" * 60)
    print("🚀 Running Foos Rank Test Suite")
    print("=" * 60 + "\n")

    results = []
    for test in (test_database, test_series_rules, test_settings, test_models):
        try:
            test()
            results.append((test.__name__, True))
        except Exception as e:
            print(f"❌ {test.__name__} failed: {e!r}\n")
            results.append((test.__name__, False))

    print("=" * 60)
    print("📊 Test Results Summary")
    print("=" * 60)
    for name, passed in results:
        status = "✅ PASSED" if passed else "❌ FAILED"
        print(f"{name:.<40} {status}")

    total_passed = sum(1 for _, p in results if p)
    print("=" * 60)
    print(f"Total: {total_passed}/{len(results)} test suites passed")
    print("=" * 60)
    return 0 if total_passed == len(results) else 1


if __name__ == "__main__":
    sys.exit(run_all_tests())
