"""
Tests for the Elo rating engine: expected score, 1v1 and 2v2 changes,
guest handling and reversal.
"""

import sys

from foos_rank.elo import (
    compute_doubles_change,
    compute_singles_change,
    elo_delta,
    expected_score,
    k_factor_for,
    reverse_change,
    round_half_away,
    team_average,
)
from foos_rank.errors import InvalidParticipantError, ReversalError
from foos_rank.models import DOUBLES, SINGLES, Guest, RatingChange, Registered


def _raises(exc_type, fn, *args, **kwargs) -> bool:
    try:
        fn(*args, **kwargs)
    except exc_type:
        return True
    return False


def test_expected_score():
    print("🧪 Testing expected score...")
    assert expected_score(1200, 1200) == 0.5
    for a, b in [(1200, 1400), (1000, 1800), (1512, 1499), (0, 3000), (-50, 50)]:
        assert abs(expected_score(a, b) + expected_score(b, a) - 1) < 1e-9
    assert expected_score(1400, 1200) > 0.7
    assert expected_score(1200, 1400) < 0.3
    print("    ✅ Expected score is symmetric and centred at 0.5")


def test_rounding():
    print("🧪 Testing rounding...")
    assert round_half_away(16.5) == 17
    assert round_half_away(-16.5) == -17
    assert round_half_away(2.49) == 2
    assert round_half_away(-0.4) == 0
    assert round_half_away(1216.0) == 1216
    print("    ✅ Ties round away from zero")


def test_singles_equal_ratings():
    print("🧪 Testing 1v1 change at equal ratings...")
    p1, p2 = compute_singles_change(Registered(1, 1200), Registered(2, 1200), True)
    assert (p1.player_id, p1.old_rating, p1.new_rating, p1.delta, p1.won) == (1, 1200, 1216, 16, True)
    assert (p2.player_id, p2.old_rating, p2.new_rating, p2.delta, p2.won) == (2, 1200, 1184, -16, False)
    assert p1.discipline == p2.discipline == SINGLES
    print("    ✅ 1200 vs 1200 -> 1216 / 1184")


def test_singles_uses_own_ratings():
    print("🧪 Testing 1v1 change with a rating gap...")
    fav, dog = compute_singles_change(Registered(1, 1400), Registered(2, 1200), False)
    # Upset: underdog gains more than the favourite would have
    assert dog.delta > 16
    assert fav.delta < -16
    assert fav.new_rating - fav.old_rating == fav.delta
    assert elo_delta(1400, 1200, False) == (fav.new_rating, dog.new_rating)
    print(f"    ✅ Upset moves {dog.delta:+d} / {fav.delta:+d}")


def test_sweep_multiplier():
    print("🧪 Testing series multiplier...")
    assert elo_delta(1200, 1200, True, multiplier=1.2) == (1219, 1181)
    p1, p2 = compute_singles_change(Registered(1), Registered(2), True, multiplier=1.2)
    assert (p1.delta, p2.delta) == (19, -19)
    print("    ✅ Sweep scales K by 1.2")


def test_doubles_equal_ratings():
    print("🧪 Testing 2v2 change at equal ratings...")
    changes = compute_doubles_change(
        [Registered(1, 1200), Registered(2, 1200)],
        [Registered(3, 1200), Registered(4, 1200)],
        True,
    )
    assert [c.delta for c in changes] == [16, 16, -16, -16]
    assert [c.new_rating for c in changes] == [1216, 1216, 1184, 1184]
    assert all(c.discipline == DOUBLES for c in changes)
    print("    ✅ Team 1 +16 each, team 2 -16 each")


def test_doubles_uniform_team_delta():
    print("🧪 Testing team-average model...")
    changes = compute_doubles_change(
        [Registered(1, 1400), Registered(2, 1000)],
        [Registered(3, 1200), Registered(4, 1200)],
        True,
    )
    by_id = {c.player_id: c for c in changes}
    # Averages are equal, so both teammates move exactly as at 1200/1200
    assert by_id[1].delta == by_id[2].delta == 16
    assert (by_id[1].new_rating, by_id[2].new_rating) == (1416, 1016)
    assert by_id[3].delta == by_id[4].delta == -16
    print("    ✅ Teammates share the team delta despite a 400 point gap")


def test_doubles_games_played():
    print("🧪 Testing games-played dampened K-factor...")
    assert k_factor_for(0) == 50
    assert k_factor_for(300) == 25
    changes = compute_doubles_change(
        [Registered(1, 1200, games_played=0), Registered(2, 1200, games_played=300)],
        [Registered(3, 1200), Registered(4, 1200)],
        True,
        use_games_played=True,
    )
    assert [c.delta for c in changes] == [25, 13, -25, -25]
    print("    ✅ New players move further than veterans")


def test_guest_excluded_singles():
    print("🧪 Testing guest exclusion in 1v1...")
    changes = compute_singles_change(Registered(1, 1200), Guest("Dan"), True)
    assert len(changes) == 1
    assert changes[0].player_id == 1
    assert changes[0].delta == 16
    changes = compute_singles_change(Guest("Dan"), Registered(2, 1300), True)
    assert [c.player_id for c in changes] == [2]
    # Guest plays at the initial rating, so the 1300 player loses more than 16
    assert changes[0].delta < -16
    print("    ✅ Guest never appears in output")


def test_guest_in_doubles_team():
    print("🧪 Testing guest teammate policy...")
    assert team_average([Registered(1, 1300), Guest("Dan")]) == 1250
    changes = compute_doubles_change(
        [Registered(1, 1300), Guest("Dan")],
        [Registered(3, 1250), Registered(4, 1250)],
        True,
    )
    assert [c.player_id for c in changes] == [1, 3, 4]
    assert [c.delta for c in changes] == [16, -16, -16]
    print("    ✅ Guest counts at the initial rating and gets no record")


def test_invalid_participants():
    print("🧪 Testing participant preconditions...")
    assert _raises(InvalidParticipantError, compute_singles_change, Guest("A"), Guest("B"), True)
    assert _raises(InvalidParticipantError, compute_singles_change, Registered(1), Registered(1), True)
    assert _raises(InvalidParticipantError, team_average, [Guest("A"), Guest("B")])
    assert _raises(
        InvalidParticipantError, compute_doubles_change,
        [Guest("A"), Guest("B")], [Registered(3), Registered(4)], True,
    )
    assert _raises(
        InvalidParticipantError, compute_doubles_change,
        [Registered(1)], [Registered(3), Registered(4)], True,
    )
    assert _raises(
        InvalidParticipantError, compute_doubles_change,
        [Registered(1), Registered(2)], [Registered(2), Registered(4)], True,
    )
    # Still a ValueError for callers that only know about that
    assert _raises(ValueError, compute_singles_change, Guest("A"), Guest("B"), True)
    print("    ✅ Guest-only sides and duplicate players are rejected")


def test_reversal_negates():
    print("🧪 Testing reversal inverse law...")
    scenarios = [
        compute_singles_change(Registered(1, 1350), Registered(2, 1100), False),
        compute_singles_change(Registered(1, 1187), Guest("G"), True, multiplier=1.2),
        compute_doubles_change(
            [Registered(1, 1290), Registered(2, 1111)], [Registered(3, 1402), Registered(4, 998)], False
        ),
        compute_doubles_change(
            [Registered(1, 1200, 4), Registered(2, 1200, 900)], [Registered(3), Guest("G")], True,
            use_games_played=True,
        ),
    ]
    for changes in scenarios:
        reverted = reverse_change(changes)
        assert len(reverted) == len(changes)
        for orig, rev in zip(changes, reverted):
            assert rev.player_id == orig.player_id
            assert rev.delta == -orig.delta
            assert rev.new_rating == orig.old_rating
            assert rev.won == orig.won
            assert rev.reversal and not orig.reversal
    print("    ✅ Every reversed delta is the exact negation")


def test_reversal_against_current_rating():
    print("🧪 Testing reversal after later matches...")
    stored = [RatingChange(1, SINGLES, 1200, 1216, 16, True, match_id=7)]
    (rev,) = reverse_change(stored, {1: 1230})
    assert (rev.old_rating, rev.new_rating, rev.delta, rev.match_id) == (1230, 1214, -16, 7)
    print("    ✅ Original delta is subtracted from the current rating")


def test_apply_reverse_apply():
    print("🧪 Testing apply/reverse composition...")
    state = {1: 1287, 2: 1140, 3: 1333, 4: 1205}

    def apply(ratings, changes):
        out = dict(ratings)
        for c in changes:
            out[c.player_id] += c.delta
        return out

    def match(ratings):
        return compute_doubles_change(
            [Registered(1, ratings[1]), Registered(2, ratings[2])],
            [Registered(3, ratings[3]), Registered(4, ratings[4])],
            False,
        )

    applied = apply(state, match(state))
    restored = apply(applied, reverse_change(match(state), applied))
    assert restored == state
    assert apply(restored, match(restored)) == applied
    print("    ✅ apply(reverse(apply(s))) == apply(s)")


def test_reversal_fails_closed():
    print("🧪 Testing reversal preconditions...")
    good = compute_singles_change(Registered(1), Registered(2), True)
    assert _raises(ReversalError, reverse_change, [])
    assert _raises(ReversalError, reverse_change, reverse_change(good))
    assert _raises(ReversalError, reverse_change, [RatingChange(1, SINGLES, 1200, 1216, 10, True)])
    assert _raises(ReversalError, reverse_change, [good[0], good[0]])
    assert _raises(
        ReversalError, reverse_change,
        [RatingChange(1, SINGLES, 1200, 1216, 16, True), RatingChange(2, DOUBLES, 1200, 1184, -16, False)],
    )
    assert _raises(
        ReversalError, reverse_change,
        [RatingChange(1, SINGLES, 1200, 1216, 16, True, match_id=1),
         RatingChange(2, SINGLES, 1200, 1184, -16, False, match_id=2)],
    )
    assert _raises(ReversalError, reverse_change, [RatingChange(1, "triples", 1200, 1216, 16, True)])
    print("    ✅ Empty, malformed and already-reversed sets are rejected")


def run_all_tests() -> int:
    print("=" * 60)
    print("🚀 Running Rating Engine Test Suite")
    print("=" * 60 + "\n")

    tests = [v for k, v in sorted(globals().items()) if k.startswith("test_") and callable(v)]
    failed = 0
    for t in tests:
        try:
            t()
        except Exception as e:
            failed += 1
            print(f"❌ {t.__name__} failed: {e!r}\n")

    print("=" * 60)
    print(f"Total: {len(tests) - failed}/{len(tests)} tests passed")
    print("=" * 60)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(run_all_tests())
