from typing import List, Optional, Tuple

SERIES_GAMES = {"bo1": 1, "bo3": 3, "bo5": 5}
SWEEP_MULTIPLIER = 1.2

_TEAM_ALIASES = {
    "a": "team1", "1": "team1", "team1": "team1", "t1": "team1",
    "b": "team2", "2": "team2", "team2": "team2", "t2": "team2",
}


def parse_game_winners(text: str) -> List[str]:
    """
    Parse per-game winners typed by a user into a list of "team1"/"team2".

    Accepts separators (spaces, commas, dashes) or a compact run of letters:
        "A B A" -> ["team1", "team2", "team1"]
        "AAB"   -> ["team1", "team1", "team2"]
        "1,2,2" -> ["team1", "team2", "team2"]
    Raises ValueError on anything else.
    """
    raw = (text or "").strip().lower()
    for sep in (",", "-", "/", ";"):
        raw = raw.replace(sep, " ")
    tokens = raw.split()
    if len(tokens) == 1 and tokens[0] not in _TEAM_ALIASES:
        tokens = list(tokens[0])
    if not tokens:
        raise ValueError("No game results given")
    winners = []
    for tok in tokens:
        if tok not in _TEAM_ALIASES:
            raise ValueError(f"Invalid game result: {tok!r}")
        winners.append(_TEAM_ALIASES[tok])
    return winners


def series_winner(series_type: str, game_winners: List[str]) -> Tuple[str, int, int]:
    """
    Determines the series winner and games won per team.
    Returns (winner, games_team1, games_team2)
    Raises ValueError if the series is unknown, unfinished, or has games past its end.
    """
    if series_type not in SERIES_GAMES:
        raise ValueError(f"Invalid series type: {series_type!r}")
    needed = SERIES_GAMES[series_type] // 2 + 1
    g1 = g2 = 0
    for i, w in enumerate(game_winners):
        if w not in ("team1", "team2"):
            raise ValueError(f"Invalid game winner: {w!r}")
        if g1 == needed or g2 == needed:
            raise ValueError(f"Game {i + 1} played after the series was decided")
        if w == "team1":
            g1 += 1
        else:
            g2 += 1
    if g1 < needed and g2 < needed:
        raise ValueError("Series not finished")
    return ("team1" if g1 > g2 else "team2"), g1, g2


def is_sweep(series_type: str, game_winners: List[str]) -> bool:
    """True for a multi-game series the loser did not win a single game of."""
    if SERIES_GAMES.get(series_type, 1) == 1:
        return False
    _winner, g1, g2 = series_winner(series_type, game_winners)
    return min(g1, g2) == 0


def series_multiplier(
    series_type: str,
    game_winners: List[str],
    sweep_multiplier: Optional[float] = None,
) -> float:
    """K-factor multiplier for a series: boosted for sweeps, 1.0 otherwise."""
    if is_sweep(series_type, game_winners):
        return SWEEP_MULTIPLIER if sweep_multiplier is None else sweep_multiplier
    return 1.0
