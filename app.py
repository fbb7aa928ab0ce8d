# app.py
# Discord foosball bot: 1v1/2v2 match recording with Elo ratings and match deletion

from __future__ import annotations

import discord
from discord import app_commands

import fmt
from foos_rank import config, db
from foos_rank.errors import FoosRankError
from foos_rank.logging_config import get_logger, setup_logging
from foos_rank.models import DOUBLES, SINGLES, Guest
from foos_rank.rules import parse_game_winners
from foos_rank.service import MatchService, PlayerRef
from views import ConfirmView

setup_logging()
log = get_logger(__name__)

ALLOWED_MENTIONS = discord.AllowedMentions(users=config.MENTIONS_PING, roles=False, everyone=False)

SERIES_CHOICES = [
    app_commands.Choice(name="Best of 1", value="bo1"),
    app_commands.Choice(name="Best of 3", value="bo3"),
    app_commands.Choice(name="Best of 5", value="bo5"),
]
DISCIPLINE_CHOICES = [
    app_commands.Choice(name="Singles", value=SINGLES),
    app_commands.Choice(name="Doubles", value=DOUBLES),
]

# Intents
intents = discord.Intents.none()
intents.guilds = True

bot = discord.Client(intents=intents)
tree = app_commands.CommandTree(bot)
service = MatchService.from_config()

_db_ready = False


def _disp(u: discord.abc.User) -> str:
    return getattr(u, "display_name", None) or u.name


def _ref(user: discord.User | None, guest: str | None, slot: str) -> PlayerRef:
    """Exactly one of a Discord user or a guest name fills each player slot."""
    guest = (guest or "").strip()[:40]
    if user is not None and guest:
        raise ValueError(f"{slot}: pick a user or a guest name, not both")
    if user is not None:
        if user.bot:
            raise ValueError(f"{slot}: bots can't play; use a guest name instead")
        return user.id
    if guest:
        return Guest(guest)
    raise ValueError(f"{slot}: pick a user or give a guest name")


def _is_admin(inter: discord.Interaction) -> bool:
    perms = getattr(inter.user, "guild_permissions", None)
    return bool(perms and (perms.manage_guild or perms.administrator))


async def _fail(inter: discord.Interaction, message: str) -> None:
    if inter.response.is_done():
        await inter.followup.send(f"❌ {message}", ephemeral=True)
    else:
        await inter.response.send_message(f"❌ {message}", ephemeral=True)


async def _ensure_db() -> None:
    global _db_ready
    if not _db_ready:
        await db.init_db(config.DATABASE_PATH, initial_rating=config.INITIAL_RATING)
        _db_ready = True


@bot.event
async def on_ready():
    await _ensure_db()
    if config.TEST_GUILD_ID:
        guild = discord.Object(id=config.TEST_GUILD_ID)
        tree.copy_global_to(guild=guild)
        await tree.sync(guild=guild)
    else:
        await tree.sync()
    await bot.change_presence(activity=discord.Game(name="Foosball ⚽"))
    log.info("Logged in as %s (id=%s) guilds=%s db=%s", bot.user, getattr(bot.user, "id", "?"), len(bot.guilds), config.DATABASE_PATH)


@tree.error
async def on_app_command_error(inter: discord.Interaction, error: app_commands.AppCommandError):
    log.exception("Command %s failed", getattr(inter.command, "name", "?"), exc_info=error)
    await _fail(inter, "Something went wrong. Please try again.")


# --- Commands ---
@tree.command(name="ping", description="Replies with pong")
async def ping(inter: discord.Interaction):
    await inter.response.send_message("pong")


async def _announce(inter: discord.Interaction, match_id: int, changes) -> None:
    details = await service.match_details(match_id)
    user_ids = [p["user_id"] for p in details["participants"] if p["user_id"] is not None]
    names = await fmt.display_names(bot, inter.guild, user_ids)
    lines = [fmt.bold("Match recorded ✅"), fmt.match_summary(details, names)]
    lines += fmt.change_lines(changes, names)
    await inter.followup.send("\n".join(lines), allowed_mentions=ALLOWED_MENTIONS)


@tree.command(name="match_singles", description="Record a finished 1v1 match")
@app_commands.describe(
    results="Game winners in order, A = player 1, B = player 2 (e.g. 'A', 'ABA')",
    series="Series length",
    player1="Player 1", player1_guest="Player 1 guest name (instead of a user)",
    player2="Player 2", player2_guest="Player 2 guest name (instead of a user)",
)
@app_commands.choices(series=SERIES_CHOICES)
async def match_singles(
    inter: discord.Interaction,
    results: str,
    series: str = "bo1",
    player1: discord.User | None = None,
    player1_guest: str | None = None,
    player2: discord.User | None = None,
    player2_guest: str | None = None,
):
    if player1 is None and not player1_guest:
        player1 = inter.user
    try:
        p1 = _ref(player1, player1_guest, "Player 1")
        p2 = _ref(player2, player2_guest, "Player 2")
        games = parse_game_winners(results)
    except ValueError as e:
        return await _fail(inter, str(e))

    await inter.response.defer()
    await _ensure_db()
    usernames = {u.id: _disp(u) for u in (player1, player2) if u is not None}
    try:
        match_id, changes = await service.record_singles(
            inter.guild_id or 0, inter.user.id, p1, p2, games, series, usernames
        )
    except (FoosRankError, ValueError) as e:
        return await _fail(inter, str(e))
    await _announce(inter, match_id, changes)


@tree.command(name="match_doubles", description="Record a finished 2v2 match")
@app_commands.describe(
    results="Game winners in order, A = team A, B = team B (e.g. 'A', 'ABA')",
    series="Series length",
    a1="Team A - Player 1", a1_guest="Team A - Player 1 guest name",
    a2="Team A - Player 2", a2_guest="Team A - Player 2 guest name",
    b1="Team B - Player 1", b1_guest="Team B - Player 1 guest name",
    b2="Team B - Player 2", b2_guest="Team B - Player 2 guest name",
)
@app_commands.choices(series=SERIES_CHOICES)
async def match_doubles(
    inter: discord.Interaction,
    results: str,
    series: str = "bo1",
    a1: discord.User | None = None, a1_guest: str | None = None,
    a2: discord.User | None = None, a2_guest: str | None = None,
    b1: discord.User | None = None, b1_guest: str | None = None,
    b2: discord.User | None = None, b2_guest: str | None = None,
):
    try:
        team_a = [_ref(a1, a1_guest, "Team A player 1"), _ref(a2, a2_guest, "Team A player 2")]
        team_b = [_ref(b1, b1_guest, "Team B player 1"), _ref(b2, b2_guest, "Team B player 2")]
        games = parse_game_winners(results)
    except ValueError as e:
        return await _fail(inter, str(e))

    await inter.response.defer()
    await _ensure_db()
    usernames = {u.id: _disp(u) for u in (a1, a2, b1, b2) if u is not None}
    try:
        match_id, changes = await service.record_doubles(
            inter.guild_id or 0, inter.user.id, team_a, team_b, games, series, usernames
        )
    except (FoosRankError, ValueError) as e:
        return await _fail(inter, str(e))
    await _announce(inter, match_id, changes)


@tree.command(name="delete_match", description="Delete a recorded match and undo its rating changes")
@app_commands.describe(match_id="Match ID (shown when the match was recorded and in /history)")
async def delete_match(inter: discord.Interaction, match_id: int):
    await _ensure_db()
    details = await service.match_details(match_id)
    if details is None or details["group_id"] != (inter.guild_id or 0) or details["status"] != "recorded":
        return await _fail(inter, f"Match #{match_id} not found")
    names = await fmt.display_names(
        bot, inter.guild, [p["user_id"] for p in details["participants"] if p["user_id"] is not None]
    )

    async def on_confirm(i2: discord.Interaction):
        try:
            reversed_changes = await service.delete_match(
                match_id, i2.user.id, group_id=i2.guild_id or 0, is_admin=_is_admin(i2)
            )
        except FoosRankError as e:
            return await i2.response.edit_message(content=f"❌ {e}", view=None)
        lines = [fmt.bold(f"Match #{match_id} deleted 🗑️")] + fmt.change_lines(reversed_changes, names)
        await i2.response.edit_message(content="\n".join(lines), view=None)

    view = ConfirmView(inter.user.id, on_confirm, confirm_label="Delete")
    await inter.response.send_message(
        f"Delete this match and reverse its rating changes?\n{fmt.match_summary(details, names)}",
        view=view, ephemeral=True,
    )


@tree.command(name="leaderboard", description="Show top players by rating")
@app_commands.describe(discipline="Singles or doubles", limit="How many players to show (1-50)")
@app_commands.choices(discipline=DISCIPLINE_CHOICES)
async def leaderboard(inter: discord.Interaction, discipline: str = SINGLES, limit: app_commands.Range[int, 1, 50] = 20):
    await _ensure_db()
    rows = await service.leaderboard(inter.guild_id or 0, discipline, int(limit))
    if not rows:
        return await inter.response.send_message(f"No {discipline} matches recorded yet.", ephemeral=True)
    table = [
        [str(i), r["username"], str(r["rating"]), f"{r['wins']}-{r['losses']}"]
        for i, r in enumerate(rows, start=1)
    ]
    msg = f"**🏆 {discipline.title()} leaderboard**\n" + fmt.mono_table(table, ["#", "Player", "Rating", "W-L"])
    await inter.response.send_message(msg, allowed_mentions=ALLOWED_MENTIONS)


@tree.command(name="stats", description="Show player statistics")
@app_commands.describe(user="The user to show stats for")
async def stats(inter: discord.Interaction, user: discord.User):
    await inter.response.defer(ephemeral=True)
    await _ensure_db()
    data = await service.player_stats(user.id, inter.guild_id or 0)
    if data is None:
        return await inter.followup.send(f"📊 {_disp(user)} has no games recorded yet.", ephemeral=True)

    player = data["player"]
    kv_lines = []
    for discipline in (SINGLES, DOUBLES):
        w, l = player.record(discipline)
        total = w + l
        win_rate = f"{(w / total * 100) if total else 0:.1f}%"
        kv_lines.append(
            f"{fmt.bold(discipline.title())}: {fmt.code(str(player.rating(discipline)))} "
            f"· {fmt.code(f'{w}-{l}')} ({fmt.code(win_rate)})"
        )

    matches = data["matches"]
    if matches:
        ids = {p["user_id"] for m in matches for p in m["participants"] if p["user_id"] is not None}
        names = await fmt.display_names(bot, inter.guild, ids)
        recent = []
        for m in matches:
            mine = [c for c in m["changes"] if c.player_id == user.id and not c.reversal]
            delta = f" ({fmt.signed(mine[0].delta)})" if mine else ""
            recent.append(f"- {fmt.match_summary(m, names)}{delta}")
        recent_block = "\n".join(recent)
    else:
        recent_block = "*No recent matches found.*"

    msg = f"## 📊 Stats for {_disp(user)}\n\n" + "\n".join(kv_lines) + f"\n\n**Recent Matches:**\n{recent_block}"
    await inter.followup.send(msg, allowed_mentions=ALLOWED_MENTIONS, ephemeral=True)


@tree.command(name="history", description="Show recent matches in this server")
@app_commands.describe(user="Only matches this user played in", limit="How many matches to show (1-25)")
async def history(inter: discord.Interaction, user: discord.User | None = None, limit: app_commands.Range[int, 1, 25] = 10):
    await inter.response.defer()
    await _ensure_db()
    matches = await service.match_history(inter.guild_id or 0, user_id=getattr(user, "id", None), limit=int(limit))
    if not matches:
        return await inter.followup.send("No matches recorded yet.")
    ids = {p["user_id"] for m in matches for p in m["participants"] if p["user_id"] is not None}
    names = await fmt.display_names(bot, inter.guild, ids)
    lines = ["**📜 Recent matches**"] + [f"- {fmt.match_summary(m, names)}" for m in matches]
    await inter.followup.send("\n".join(lines), allowed_mentions=ALLOWED_MENTIONS)


# --- Entrypoint ---
if __name__ == "__main__":
    if not config.TOKEN:
        log.error("DISCORD_TOKEN not set. Put it in environment or .env")
        raise SystemExit(1)
    bot.run(config.TOKEN, log_handler=None)
