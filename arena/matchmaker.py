"""
Autonomous matchmaker.

Periodically scans joinable arenas and queues idle registered agents into the
arena that scores best for them. Entry is gated by the agent's risk tolerance
and by its earnings; agents are released when the scheduler reports their
match completed or failed, then rest for a cooldown before the next join.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from arena.models import Arena, ArenaStatus
from arena.scheduler import ArenaScheduler
from engine.errors import InvalidStateError
from engine.events import ArenaEvent
from engine.models import AgentDescriptor, GameType

logger = logging.getLogger(__name__)

# (minimum risk tolerance, highest entry fee allowed), in milli-units.
FEE_GATES: List[Tuple[int, int]] = [
    (85, 2000),
    (70, 1000),
    (50, 500),
    (30, 200),
    (0, 100),
]
HIGH_FEE = 1000
MID_FEE = 200
BUDGET_FRACTION = 0.5


@dataclass
class AgentState:
    last_match_time: Optional[float] = None
    in_match: bool = False
    match_count: int = 0
    arena_id: Optional[str] = None
    last_result: Optional[str] = None


def max_fee_for(risk_tolerance: int) -> int:
    for threshold, fee in FEE_GATES:
        if risk_tolerance >= threshold:
            return fee
    return FEE_GATES[-1][1]


def risk_score(entry_fee: int, risk_tolerance: int) -> float:
    rt = risk_tolerance / 100.0
    if entry_fee > HIGH_FEE:
        return rt
    if entry_fee > MID_FEE:
        return 0.5 + rt * 0.5
    return 1.0


class AutonomousMatchmaker:
    def __init__(
        self,
        scheduler: ArenaScheduler,
        earnings: Optional[Callable[[str], int]] = None,
        scan_interval: float = 10.0,
        cooldown: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.scheduler = scheduler
        self.earnings = earnings or (lambda agent_id: 0)
        self.scan_interval = scan_interval
        self.cooldown = cooldown
        self._clock = clock or time.monotonic
        self._agents: Dict[str, AgentDescriptor] = {}
        self._states: Dict[str, AgentState] = {}
        self._task: Optional[asyncio.Task] = None
        scheduler.channel.subscribe(self)

    # registry -----------------------------------------------------------
    def register(self, agent: AgentDescriptor) -> None:
        self._agents[agent.id] = agent
        self._states.setdefault(agent.id, AgentState())

    def unregister(self, agent_id: str) -> None:
        self._agents.pop(agent_id, None)
        self._states.pop(agent_id, None)

    def state(self, agent_id: str) -> Optional[AgentState]:
        return self._states.get(agent_id)

    def is_available(self, agent_id: str) -> bool:
        state = self._states.get(agent_id)
        if state is None:
            return True
        if state.in_match:
            return False
        if state.last_match_time is not None:
            return self._clock() - state.last_match_time >= self.cooldown
        return True

    # scoring ------------------------------------------------------------
    def score_arena(self, agent: AgentDescriptor, arena: Arena) -> float:
        """Attractiveness of an arena for an agent; negative means ineligible."""
        params = agent.params
        fee = arena.entry_fee
        if fee > max_fee_for(params.risk_tolerance):
            return -1.0
        earned = self.earnings(agent.id) or 0
        if earned > 0 and fee > earned * BUDGET_FRACTION:
            return -1.0
        lobby = self.scheduler.get_lobby(arena.id) or {"agents": [], "count": 0}
        if any(a["id"] == agent.id for a in lobby["agents"]):
            return -1.0

        prize = math.log(arena.prize_pool + fee + 1)
        lobby_factor = 1 + lobby["count"] / (arena.max_agents or 8)
        aggression = 0.5 + params.aggressiveness / 200.0
        return risk_score(fee, params.risk_tolerance) * prize * lobby_factor * aggression

    def candidate_arenas(self, agent: AgentDescriptor) -> List[Arena]:
        arenas = self.scheduler.list_arenas(ArenaStatus.OPEN) + self.scheduler.list_arenas(
            ArenaStatus.LOBBY
        )
        preference = str(agent.params.preferred_game_types or "both").lower()
        if preference == GameType.BATTLE.value:
            arenas = [a for a in arenas if a.game_type == GameType.BATTLE]
        elif preference == GameType.RPS.value:
            arenas = [a for a in arenas if a.game_type == GameType.RPS]
        return arenas

    def best_arena(self, agent: AgentDescriptor) -> Optional[Arena]:
        best: Optional[Arena] = None
        best_score = 0.0
        for arena in self.candidate_arenas(agent):
            score = self.score_arena(agent, arena)
            if score > best_score:
                best, best_score = arena, score
        return best

    # loop ---------------------------------------------------------------
    async def scan(self) -> List[Tuple[str, str]]:
        """One matchmaking pass; returns the (agent_id, arena_id) joins made."""
        joined: List[Tuple[str, str]] = []
        for agent in list(self._agents.values()):
            if not self.is_available(agent.id) or self.scheduler.is_agent_in_arena(agent.id):
                continue
            arena = self.best_arena(agent)
            if arena is None:
                continue
            state = self._states.setdefault(agent.id, AgentState())
            state.in_match = True
            state.arena_id = arena.id
            try:
                self.scheduler.join_arena(arena.id, agent)
            except InvalidStateError as exc:
                state.in_match = False
                state.arena_id = None
                logger.debug("%s could not join %s: %s", agent.id, arena.id, exc)
                continue
            state.last_match_time = self._clock()
            joined.append((agent.id, arena.id))
            logger.info("%s auto-joined %s (%s)", agent.name, arena.name, arena.id)
            # Let a launch triggered by this join take the arena out of the pool.
            await asyncio.sleep(0)
        return joined

    async def run(self) -> None:
        while True:
            try:
                await self.scan()
            except Exception:
                logger.exception("Matchmaker scan failed")
            await asyncio.sleep(self.scan_interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
            logger.info("Matchmaker started, scanning every %.1fs", self.scan_interval)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Matchmaker stopped")

    # event sink ---------------------------------------------------------
    def publish(self, event: ArenaEvent) -> None:
        if event.kind not in ("match_completed", "match_error"):
            return
        arena_id = event.payload.get("arena_id")
        winner = (event.payload.get("result") or {}).get("winner")
        for agent_id, state in self._states.items():
            if not state.in_match or state.arena_id != arena_id:
                continue
            state.in_match = False
            state.arena_id = None
            state.last_match_time = self._clock()
            if event.kind == "match_completed":
                state.match_count += 1
                state.last_result = "won" if winner == agent_id else "lost"
            else:
                state.last_result = "error"

    def stats(self) -> Dict[str, object]:
        return {
            "running": self._task is not None and not self._task.done(),
            "registered": len(self._agents),
            "in_match": sum(1 for s in self._states.values() if s.in_match),
        }
