from .errors import (
    ArenaEngineError,
    InvalidStateError,
    MatchRuntimeError,
    ValidationError,
)
from .events import ArenaEvent, EventChannel, LoggingSink, MemorySink
from .models import AgentDescriptor, ArenaContext, EngineRules, GameType, Match, MatchStatus

__all__ = [
    "ArenaEngineError",
    "InvalidStateError",
    "MatchRuntimeError",
    "ValidationError",
    "ArenaEvent",
    "EventChannel",
    "LoggingSink",
    "MemorySink",
    "AgentDescriptor",
    "ArenaContext",
    "EngineRules",
    "GameType",
    "Match",
    "MatchStatus",
]
