"""
Progression engine exceptions.

Every failure a progression step can report derives from ProgressionError,
so callers can tell engine rejections apart from storage or programming
errors.
"""


class ProgressionError(Exception):
    """Base exception for all progression engine errors."""
    pass


class NotFoundError(ProgressionError):
    """A referenced tournament, stage or match does not exist."""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind.capitalize()} {ident} not found")


class InvalidConfigurationError(ProgressionError):
    """A stage config is malformed or references something that is missing."""
    pass


class GuardViolationError(ProgressionError):
    """A write was refused to protect state that must not change.

    Raised for destructive reseeds of a started knockout stage and for
    bracket links that skip a round.
    """
    pass


class PartialDataError(ProgressionError):
    """Not enough data yet to derive a result (e.g. fewer than two entrants)."""
    pass
