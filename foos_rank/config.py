"""
Runtime settings read from the environment (and a local .env file, if present).

See .env.example for the full list.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

from .elo import K_FACTOR as DEFAULT_K_FACTOR
from .logging_config import get_logger
from .models import INITIAL_RATING as DEFAULT_INITIAL_RATING
from .rules import SWEEP_MULTIPLIER as DEFAULT_SWEEP_MULTIPLIER

log = get_logger(__name__)

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _positive(name: str, default: float, cast=float):
    """Read a positive number, falling back to the default with a warning."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return cast(default)
    try:
        value = cast(raw)
    except ValueError:
        log.warning("Invalid %s value %r, using default %s", name, raw, default)
        return cast(default)
    if value <= 0:
        log.warning("%s must be positive, using default %s", name, default)
        return cast(default)
    return value


TOKEN = os.getenv("DISCORD_TOKEN")
TEST_MODE = _flag("TEST_MODE")
TEST_GUILD_ID = int(os.getenv("TEST_GUILD_ID", "0") or 0) or None
MENTIONS_PING = _flag("MENTIONS_PING", "1")

DATABASE_PATH = os.getenv(
    "DATABASE_PATH",
    "./test_foos_rank.sqlite" if TEST_MODE else "./foos_rank.sqlite",
)

# Rating knobs
K_FACTOR = _positive("K_FACTOR", DEFAULT_K_FACTOR, int)
INITIAL_RATING = _positive("INITIAL_RATING", DEFAULT_INITIAL_RATING, int)
SWEEP_MULTIPLIER = _positive("SWEEP_MULTIPLIER", DEFAULT_SWEEP_MULTIPLIER, float)
# Dampen doubles K-factor for players with few games
DYNAMIC_K = _flag("DYNAMIC_K")
