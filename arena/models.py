from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from engine.models import AgentDescriptor, GameType


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class ArenaStatus(str, Enum):
    OPEN = "open"
    LOBBY = "lobby"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


JOINABLE = frozenset({ArenaStatus.OPEN, ArenaStatus.LOBBY})


@dataclass
class Arena:
    id: str
    name: str
    entry_fee: int
    min_agents: int
    max_agents: int
    game_type: GameType = GameType.BATTLE
    tier: Optional[str] = None
    prize_pool: int = 0
    status: ArenaStatus = ArenaStatus.OPEN
    match_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "arenaId": self.id,
            "name": self.name,
            "tier": self.tier,
            "gameType": self.game_type.value,
            "entryFee": self.entry_fee,
            "minAgents": self.min_agents,
            "maxAgents": self.max_agents,
            "prizePool": self.prize_pool,
            "status": self.status.value,
            "matchId": self.match_id,
            "error": self.error,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class Lobby:
    arena_id: str
    agents: List[AgentDescriptor] = field(default_factory=list)
    countdown: Optional[asyncio.Task] = None

    def has(self, agent_id: str) -> bool:
        return any(a.id == agent_id for a in self.agents)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "arenaId": self.arena_id,
            "agents": [
                {"id": a.id, "name": a.name, "owner": a.owner} for a in self.agents
            ],
            "count": len(self.agents),
        }


@dataclass
class MatchResult:
    match_id: str
    arena_id: str
    game_type: GameType
    status: str
    total_turns: int
    winner_id: Optional[str]
    participants: List[str]
    distribution: List[Dict[str, Any]] = field(default_factory=list)
    final_score: Dict[str, int] = field(default_factory=dict)
    forced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matchId": self.match_id,
            "arenaId": self.arena_id,
            "gameType": self.game_type.value,
            "status": self.status,
            "totalTurns": self.total_turns,
            "winner": self.winner_id,
            "participants": list(self.participants),
            "distribution": list(self.distribution),
            "finalScore": dict(self.final_score),
            "forced": self.forced,
        }
