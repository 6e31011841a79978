"""Errors raised by the matchmaking core."""


class InvalidMatchRequest(ValueError):
    """The client sent a request that cannot be matched (bad mode, no interests)."""


class StoreUnavailableError(RuntimeError):
    """The ephemeral store could not be reached or rejected an operation."""
