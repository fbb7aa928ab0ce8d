"""Foos Rank core package.

Exports commonly used modules for convenience.
"""

from . import db as db
from . import elo as elo
from . import rules as rules
from . import logging_config as logging_config
from .errors import (
    FoosRankError,
    InvalidParticipantError,
    MatchNotFoundError,
    NotAllowedError,
    ReversalError,
)
from .models import Guest, Match, Player, RatingChange, Registered
from .service import MatchService

__all__ = [
    "db",
    "elo",
    "rules",
    "logging_config",
    "FoosRankError",
    "InvalidParticipantError",
    "MatchNotFoundError",
    "NotAllowedError",
    "ReversalError",
    "Guest",
    "Match",
    "Player",
    "RatingChange",
    "Registered",
    "MatchService",
]
