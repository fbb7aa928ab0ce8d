import time
from typing import Iterable, Optional

from foos_rank.models import RatingChange


def bold(t: str) -> str:
	return f"**{t}**"


def code(t: str) -> str:
	return f"`{t}`"


def block(t: str, lang: str | None = None) -> str:
	return f"```{lang or ''}\n{t}\n```"


def mention(uid: int) -> str:
	return f"<@{uid}>"


def signed(delta: int) -> str:
	if delta == 0:
		return "±0"
	return f"{delta:+d}"


# --- Display name cache ---
_NAME_CACHE: dict[tuple[Optional[int], int], tuple[float, str]] = {}
_CACHE_TTL_SEC = 300.0
_MAX_CACHE_SIZE = 1000


def _prune_cache(now: float) -> None:
	for k in [k for k, (ts, _) in _NAME_CACHE.items() if now - ts >= _CACHE_TTL_SEC]:
		del _NAME_CACHE[k]
	overflow = len(_NAME_CACHE) - _MAX_CACHE_SIZE
	if overflow > 0:
		for k, _ in sorted(_NAME_CACHE.items(), key=lambda kv: kv[1][0])[:overflow]:
			del _NAME_CACHE[k]


async def display_name(bot, guild, user_id: int, fallback: Optional[str] = None) -> str:
	"""A user's display name (guild nickname first), cached for a few minutes.

	Lookup order: guild member cache, guild fetch, global user fetch, fallback.
	"""
	now = time.time()
	key = (getattr(guild, "id", None), user_id)
	cached = _NAME_CACHE.get(key)
	if cached and now - cached[0] < _CACHE_TTL_SEC:
		return cached[1]
	if len(_NAME_CACHE) >= _MAX_CACHE_SIZE:
		_prune_cache(now)

	name: Optional[str] = None
	member = guild.get_member(user_id) if guild is not None else None
	if member is None and guild is not None:
		try:
			member = await guild.fetch_member(user_id)
		except Exception:
			member = None
	if member is not None:
		name = getattr(member, "display_name", None) or member.name
	else:
		try:
			user = await bot.fetch_user(user_id)
			name = getattr(user, "display_name", None) or user.name
		except Exception:
			name = None

	name = name or fallback or f"User{user_id}"
	_NAME_CACHE[key] = (now, name)
	return name


async def display_names(bot, guild, user_ids: Iterable[int]) -> dict[int, str]:
	return {uid: await display_name(bot, guild, uid) for uid in dict.fromkeys(user_ids)}


def participant_label(row: dict, names: dict[int, str]) -> str:
	"""Name for a match_players row; guests are marked as such."""
	if row.get("is_guest"):
		return f"{row.get('guest_name') or 'Guest'} (guest)"
	uid = row["user_id"]
	return names.get(uid) or f"User{uid}"


def team_label(participants: list[dict], team: str, names: dict[int, str]) -> str:
	return " & ".join(participant_label(r, names) for r in participants if r["team"] == team)


def games_score(games: list[str]) -> str:
	t1 = sum(1 for g in games if g == "team1")
	t2 = sum(1 for g in games if g == "team2")
	return f"{t1}–{t2}"


def match_summary(details: dict, names: dict[int, str]) -> str:
	"""One line: '#12 · 2v2 bo3 · Alice & Bob def. Carol & Dan (guest) · 2–0'."""
	parts = details.get("participants", [])
	winner = details["winning_team"]
	loser = "team2" if winner == "team1" else "team1"
	line = (
		f"#{details['id']} · {details['match_type']} {details['series_type']} · "
		f"{team_label(parts, winner, names)} def. {team_label(parts, loser, names)}"
	)
	games = details.get("games") or []
	if len(games) > 1:
		line += f" · {games_score(games)}"
	if details.get("status") == "deleted":
		line += " · deleted"
	return line


def change_lines(changes: list[RatingChange], names: dict[int, str]) -> list[str]:
	return [
		f"{names.get(c.player_id) or f'User{c.player_id}'}: {c.old_rating} → {c.new_rating} ({signed(c.delta)})"
		for c in changes
	]


def mono_table(rows: list[list[str]], headers: Optional[list[str]] = None) -> str:
	"""Render rows as a padded monospaced table inside a code block."""
	all_rows = [[str(c) for c in r] for r in ([headers] if headers else []) + rows]
	if not all_rows:
		return block("", "md")
	col_count = max(len(r) for r in all_rows)
	all_rows = [r + [""] * (col_count - len(r)) for r in all_rows]
	widths = [max(len(r[i]) for r in all_rows) for i in range(col_count)]

	def fmt_row(r: list[str]) -> str:
		return " | ".join(r[i].ljust(widths[i]) for i in range(col_count)).rstrip()

	lines = [fmt_row(r) for r in all_rows]
	if headers:
		lines.insert(1, "-+-".join("-" * w for w in widths))
	return block("\n".join(lines), "md")
