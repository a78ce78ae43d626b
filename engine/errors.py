"""
Error taxonomy for the arena match engine.

Validation and state errors propagate to the caller. Provider errors are
raised inside the decision gateway and absorbed by the provider chain; they
never escape a turn.
"""

from __future__ import annotations


class ArenaEngineError(Exception):
    """Base class for every engine error."""


class ValidationError(ArenaEngineError):
    """Caller supplied an invalid agent set or descriptor."""


class InvalidStateError(ArenaEngineError):
    """Operation is not allowed in the current match or arena status."""


class ArenaNotFoundError(InvalidStateError):
    """Arena id does not exist."""


class AgentNotInArenaError(InvalidStateError):
    """Agent id is not queued in the arena lobby."""


class ProviderError(ArenaEngineError):
    """A decision provider failed to produce a usable decision."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.reason = message


class ProviderTimeout(ProviderError):
    """Provider did not answer inside its time bound."""


class ProviderRateLimited(ProviderError):
    """Provider reported a rate limit or quota exhaustion."""


class ProviderMalformedResponse(ProviderError):
    """Provider answered with text that is not a valid decision."""


class ScriptedStrategyError(ProviderError):
    """A scripted strategy raised or returned an unusable decision."""


class MatchRuntimeError(ArenaEngineError):
    """Uncaught failure while a match turn loop was running."""

    def __init__(self, match_id: str, message: str) -> None:
        super().__init__(f"Match {match_id} failed: {message}")
        self.match_id = match_id
