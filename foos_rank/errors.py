"""Exceptions raised by the rating engine and the match pipeline."""


class FoosRankError(Exception):
    pass


class InvalidParticipantError(FoosRankError, ValueError):
    """A rating calculation was asked for a participant set it cannot rate."""


class ReversalError(FoosRankError):
    """Stored rating changes are missing, malformed, or were already reversed."""


class MatchNotFoundError(FoosRankError, LookupError):
    pass


class NotAllowedError(FoosRankError, PermissionError):
    pass
