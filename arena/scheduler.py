"""
Arena scheduler: lobbies, countdowns, match launch and replenishment.

Per-arena state machine:

    open -> lobby -> in_progress -> completed
    in_progress -> error

join/leave are the only lobby mutators and both check arena status first.
Matches run as asyncio tasks; a failing match marks its arena as error and
is reported on the event channel, never re-raised into the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Union

from arena.models import JOINABLE, Arena, ArenaStatus, Lobby, MatchResult
from arena.tiers import TierCatalogue
from engine.errors import (
    AgentNotInArenaError,
    ArenaNotFoundError,
    InvalidStateError,
    MatchRuntimeError,
    ValidationError,
)
from engine.events import EventChannel
from engine.match_engine import MatchEngine
from engine.models import (
    AgentDescriptor,
    ArenaContext,
    GameType,
    Match,
    MatchStatus,
    new_id,
)
from engine.rps_engine import RpsEngine

logger = logging.getLogger(__name__)


@dataclass
class SchedulerConfig:
    countdown_seconds: float = 15.0
    max_turns: int = 100
    min_agents: int = 2
    max_agents: int = 8
    entry_fee: int = 100
    rps_best_of: int = 3
    replenish: bool = True


class ArenaScheduler:
    def __init__(
        self,
        battle_engine: MatchEngine,
        rps_engine: RpsEngine,
        config: Optional[SchedulerConfig] = None,
        channel: Optional[EventChannel] = None,
        tiers: Optional[TierCatalogue] = None,
    ) -> None:
        self.battle_engine = battle_engine
        self.rps_engine = rps_engine
        self.config = config or SchedulerConfig()
        self.channel = channel or EventChannel()
        self.tiers = tiers
        self._arenas: Dict[str, Arena] = {}
        self._lobbies: Dict[str, Lobby] = {}
        self._results: Dict[str, MatchResult] = {}
        self._matches: Dict[str, Match] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # arena catalogue
    # ------------------------------------------------------------------
    def init_tier_pools(self) -> List[Arena]:
        """One open battle arena and one open rps arena per configured tier."""
        created: List[Arena] = []
        if self.tiers is None:
            return created
        for tier in self.tiers.tiers:
            for game_type in (GameType.BATTLE, GameType.RPS):
                existing = self.list_arenas(ArenaStatus.OPEN, game_type)
                if any(a.tier == tier.tier for a in existing):
                    continue
                created.append(self.create_arena(tier=tier.tier, game_type=game_type))
        logger.info("Tier pools initialized: %d arenas", len(self._arenas))
        return created

    def create_arena(
        self,
        tier: Optional[str] = None,
        name: Optional[str] = None,
        game_type: Union[GameType, str] = GameType.BATTLE,
        entry_fee: Optional[int] = None,
        min_agents: Optional[int] = None,
        max_agents: Optional[int] = None,
        arena_id: Optional[str] = None,
    ) -> Arena:
        game_type = GameType(game_type)
        tier_cfg = self.tiers.get(tier) if (self.tiers and tier) else None
        if tier and self.tiers and tier_cfg is None:
            raise ValidationError(f"Unknown tier '{tier}'")

        if game_type == GameType.RPS:
            min_agents = max_agents = 2
        else:
            if min_agents is None:
                min_agents = tier_cfg.min_agents if tier_cfg else self.config.min_agents
            if max_agents is None:
                max_agents = tier_cfg.max_agents if tier_cfg else self.config.max_agents
        if entry_fee is None:
            entry_fee = tier_cfg.entry_fee if tier_cfg else self.config.entry_fee
        if not 2 <= min_agents <= max_agents:
            raise ValidationError(f"Invalid agent bounds {min_agents}-{max_agents}")
        if entry_fee < 0:
            raise ValidationError("Entry fee cannot be negative")

        if name is None:
            base = tier_cfg.name if tier_cfg else "Unnamed Arena"
            name = f"{base} RPS" if game_type == GameType.RPS else base

        arena = Arena(
            id=arena_id or new_id("arena_"),
            name=name,
            entry_fee=int(entry_fee),
            min_agents=int(min_agents),
            max_agents=int(max_agents),
            game_type=game_type,
            tier=tier,
        )
        self._arenas[arena.id] = arena
        self._lobbies[arena.id] = Lobby(arena_id=arena.id)
        self.channel.emit("arena_created", arena=arena.to_dict())
        return arena

    def _arena(self, arena_id: str) -> Arena:
        arena = self._arenas.get(arena_id)
        if arena is None:
            raise ArenaNotFoundError(f"Arena {arena_id} not found")
        return arena

    # ------------------------------------------------------------------
    # lobby
    # ------------------------------------------------------------------
    def join_arena(self, arena_id: str, agent: AgentDescriptor) -> Dict[str, Any]:
        """Queue an agent. Must be called from inside the running event loop."""
        arena = self._arena(arena_id)
        if arena.status not in JOINABLE:
            raise InvalidStateError(
                f"Arena {arena_id} is not accepting agents (status: {arena.status.value})"
            )
        lobby = self._lobbies[arena_id]
        if lobby.has(agent.id):
            raise InvalidStateError(f"Agent {agent.id} already in arena {arena_id}")
        if len(lobby.agents) >= arena.max_agents:
            raise InvalidStateError(f"Arena {arena_id} is full")

        lobby.agents.append(agent)
        if not agent.external:
            arena.prize_pool += arena.entry_fee

        logger.info(
            "%s joined %s (%s) | lobby %d/%d",
            agent.name,
            arena.name,
            arena.id,
            len(lobby.agents),
            arena.max_agents,
        )
        self.channel.emit(
            "agent_joined",
            arena_id=arena_id,
            agent_id=agent.id,
            lobby_size=len(lobby.agents),
            is_external=agent.external,
        )

        if len(lobby.agents) >= arena.max_agents:
            self._cancel_countdown(arena_id)
            self._begin_launch(arena)
        elif len(lobby.agents) >= arena.min_agents and arena.status == ArenaStatus.OPEN:
            arena.status = ArenaStatus.LOBBY
            self._start_countdown(arena_id)

        return {
            "arenaId": arena_id,
            "lobbySize": len(lobby.agents),
            "status": arena.status.value,
        }

    def leave_arena(self, arena_id: str, agent_id: str) -> Dict[str, Any]:
        arena = self._arena(arena_id)
        if arena.status == ArenaStatus.IN_PROGRESS:
            raise InvalidStateError("Cannot leave during a match")
        lobby = self._lobbies[arena_id]
        for idx, queued in enumerate(lobby.agents):
            if queued.id == agent_id:
                break
        else:
            raise AgentNotInArenaError(f"Agent {agent_id} not in arena {arena_id}")

        lobby.agents.pop(idx)
        if not queued.external:
            arena.prize_pool = max(0, arena.prize_pool - arena.entry_fee)

        if len(lobby.agents) < arena.min_agents and arena.status == ArenaStatus.LOBBY:
            arena.status = ArenaStatus.OPEN
            self._cancel_countdown(arena_id)

        self.channel.emit(
            "agent_left", arena_id=arena_id, agent_id=agent_id, lobby_size=len(lobby.agents)
        )
        return {"arenaId": arena_id, "lobbySize": len(lobby.agents), "status": arena.status.value}

    # ------------------------------------------------------------------
    # countdown
    # ------------------------------------------------------------------
    def _start_countdown(self, arena_id: str) -> None:
        lobby = self._lobbies[arena_id]
        if lobby.countdown is not None:
            return
        duration = self.config.countdown_seconds
        lobby.countdown = asyncio.get_running_loop().create_task(
            self._countdown(arena_id, duration)
        )
        self.channel.emit("countdown_started", arena_id=arena_id, duration=duration)
        logger.info("Countdown started for %s (%.1fs)", arena_id, duration)

    def _cancel_countdown(self, arena_id: str) -> None:
        lobby = self._lobbies.get(arena_id)
        if lobby is None or lobby.countdown is None:
            return
        lobby.countdown.cancel()
        lobby.countdown = None
        self.channel.emit("countdown_cancelled", arena_id=arena_id)
        logger.info("Countdown cancelled for %s", arena_id)

    async def _countdown(self, arena_id: str, duration: float) -> None:
        await asyncio.sleep(duration)
        lobby = self._lobbies[arena_id]
        lobby.countdown = None
        arena = self._arenas[arena_id]
        if arena.status == ArenaStatus.LOBBY and len(lobby.agents) >= arena.min_agents:
            self._begin_launch(arena)

    def countdown_pending(self, arena_id: str) -> bool:
        lobby = self._lobbies.get(arena_id)
        return bool(lobby and lobby.countdown is not None and not lobby.countdown.done())

    # ------------------------------------------------------------------
    # launch
    # ------------------------------------------------------------------
    def launch(self, arena_id: str) -> asyncio.Task:
        """Launch now, skipping any remaining countdown."""
        arena = self._arena(arena_id)
        if arena.status not in JOINABLE:
            raise InvalidStateError(
                f"Arena {arena_id} cannot launch (status: {arena.status.value})"
            )
        if len(self._lobbies[arena_id].agents) < arena.min_agents:
            raise InvalidStateError(f"Arena {arena_id} has too few agents to launch")
        self._cancel_countdown(arena_id)
        return self._begin_launch(arena)

    def _begin_launch(self, arena: Arena) -> asyncio.Task:
        arena.status = ArenaStatus.IN_PROGRESS
        agents = list(self._lobbies[arena.id].agents)
        self.channel.emit(
            "match_launching",
            arena_id=arena.id,
            agent_count=len(agents),
            game_type=arena.game_type.value,
        )
        logger.info(
            "Launching %s match in %s with %d agents",
            arena.game_type.value,
            arena.id,
            len(agents),
        )
        task = asyncio.get_running_loop().create_task(self._run_arena(arena, agents))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_arena(self, arena: Arena, agents: List[AgentDescriptor]) -> Optional[MatchResult]:
        ctx = ArenaContext(
            arena_id=arena.id,
            prize_pool=arena.prize_pool,
            min_agents=arena.min_agents,
            max_agents=arena.max_agents,
            game_type=arena.game_type,
            best_of=self.config.rps_best_of,
        )
        try:
            if arena.game_type == GameType.RPS:
                match = self.rps_engine.start_match(ctx, agents)
                arena.match_id = match.id
                self._matches[match.id] = match
                result = await self._run_rps(match)
            else:
                match = self.battle_engine.start_match(ctx, agents)
                arena.match_id = match.id
                self._matches[match.id] = match
                result = await self._run_battle(match)
        except Exception as exc:
            err = exc if isinstance(exc, MatchRuntimeError) else MatchRuntimeError(
                arena.match_id or "-", str(exc) or type(exc).__name__
            )
            logger.exception("Match error in arena %s", arena.id)
            arena.status = ArenaStatus.ERROR
            arena.error = str(err)
            failed = self._matches.get(arena.match_id) if arena.match_id else None
            if failed is not None:
                failed.status = MatchStatus.ERROR
                failed.ended_at = datetime.now(timezone.utc).replace(microsecond=0)
            self.channel.emit(
                "match_error",
                arena_id=arena.id,
                match_id=arena.match_id,
                error=str(err),
                agent_ids=[a.id for a in agents],
            )
            return None

        arena.status = ArenaStatus.COMPLETED
        self._results[result.match_id] = result
        self.channel.emit("match_completed", arena_id=arena.id, result=result.to_dict())
        if self.config.replenish:
            self.create_arena(
                tier=arena.tier,
                name=arena.name,
                game_type=arena.game_type,
                entry_fee=arena.entry_fee,
                min_agents=arena.min_agents,
                max_agents=arena.max_agents,
            )
        return result

    async def _run_battle(self, match: Match) -> MatchResult:
        turns = 0
        while match.is_active and turns < self.config.max_turns:
            record = await self.battle_engine.execute_turn(match)
            self.channel.emit(
                "turn_completed", match_id=match.id, turn=record.turn, events=record.events
            )
            turns += 1
        forced = match.is_active
        if forced:
            logger.info("Match %s hit the %d turn cap", match.id, self.config.max_turns)
            self.battle_engine.force_end(match)
        return self._result(match, forced)

    async def _run_rps(self, match: Match) -> MatchResult:
        max_rounds = match.best_of + 2
        rounds = 0
        while match.is_active and rounds < max_rounds:
            record = await self.rps_engine.execute_round(match)
            self.channel.emit(
                "turn_completed",
                match_id=match.id,
                turn=record.turn,
                events=record.events,
                game_type=GameType.RPS.value,
            )
            rounds += 1
        forced = match.is_active
        if forced:
            self.rps_engine.force_end(match)
        result = self._result(match, forced)
        result.final_score = {c.id: c.rounds_won for c in match.combatants}
        return result

    @staticmethod
    def _result(match: Match, forced: bool) -> MatchResult:
        return MatchResult(
            match_id=match.id,
            arena_id=match.arena_id,
            game_type=match.game_type,
            status=match.status.value,
            total_turns=len(match.history),
            winner_id=match.winner_id,
            participants=[c.id for c in match.combatants],
            distribution=[a.to_dict() for a in match.distribution],
            forced=forced,
        )

    async def wait_idle(self) -> None:
        """Wait for every pending countdown and running match to finish."""
        while True:
            pending = set(self._tasks)
            pending.update(
                lobby.countdown for lobby in self._lobbies.values() if lobby.countdown
            )
            pending = {t for t in pending if not t.done()}
            if not pending:
                return
            await asyncio.wait(pending)

    async def shutdown(self) -> None:
        for arena_id in list(self._lobbies):
            self._cancel_countdown(arena_id)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def get_arena(self, arena_id: str) -> Optional[Arena]:
        return self._arenas.get(arena_id)

    def list_arenas(
        self,
        status: Optional[Union[ArenaStatus, str]] = None,
        game_type: Optional[Union[GameType, str]] = None,
    ) -> List[Arena]:
        arenas = list(self._arenas.values())
        if status is not None:
            arenas = [a for a in arenas if a.status == ArenaStatus(status)]
        if game_type is not None:
            arenas = [a for a in arenas if a.game_type == GameType(game_type)]
        return arenas

    def get_lobby(self, arena_id: str) -> Optional[Dict[str, Any]]:
        lobby = self._lobbies.get(arena_id)
        return lobby.to_dict() if lobby else None

    def is_agent_in_arena(self, agent_id: str) -> bool:
        """True while the agent is queued in a lobby or playing a match."""
        for arena_id, lobby in self._lobbies.items():
            if self._arenas[arena_id].status in (JOINABLE | {ArenaStatus.IN_PROGRESS}):
                if lobby.has(agent_id):
                    return True
        return False

    def get_result(self, match_id: str) -> Optional[MatchResult]:
        return self._results.get(match_id)

    def get_match(self, match_id: str) -> Optional[Match]:
        return self._matches.get(match_id)
