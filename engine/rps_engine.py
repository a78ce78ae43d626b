"""
Best-of-N rock/paper/scissors variant.

Moves come from the same decision chain as battle turns; when no AI provider
answers, the chain's weighted profile picks the move. Payout reuses the
battle prize distributor, external-agent tax included.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from decision_gateway.provider_chain import DecisionProviderChain, DecisionRequest
from engine.errors import InvalidStateError, ValidationError
from engine.events import EventChannel
from engine.match_engine import build_combatant, conclude
from engine.models import (
    AgentDescriptor,
    Allocation,
    ArenaContext,
    Combatant,
    EngineRules,
    GameType,
    Match,
    TurnRecord,
    new_id,
)
from strategies.rps_profile import resolve_round

logger = logging.getLogger(__name__)


def wins_needed(best_of: int) -> int:
    return math.ceil(best_of / 2)


class RpsEngine:
    def __init__(
        self,
        chain: DecisionProviderChain,
        rules: Optional[EngineRules] = None,
        channel: Optional[EventChannel] = None,
    ) -> None:
        self.chain = chain
        self.rules = rules or EngineRules()
        self.channel = channel or EventChannel()

    def start_match(
        self, arena: ArenaContext, agents: Sequence[AgentDescriptor]
    ) -> Match:
        if len(agents) != 2:
            raise ValidationError(f"RPS requires exactly 2 agents, got {len(agents)}")
        if agents[0].id == agents[1].id:
            raise ValidationError("RPS agents must be distinct")
        if arena.best_of < 1:
            raise ValidationError("best_of must be at least 1")

        match = Match(
            id=new_id("rps_"),
            arena_id=arena.arena_id,
            combatants=[build_combatant(a, self.rules) for a in agents],
            prize_pool=int(arena.prize_pool),
            game_type=GameType.RPS,
            best_of=arena.best_of,
        )
        self.channel.emit(
            "match_started",
            match_id=match.id,
            arena_id=match.arena_id,
            game_type=match.game_type.value,
            agent_count=2,
            prize_pool=match.prize_pool,
        )
        return match

    def _game_state(self, match: Match, me: Combatant, opponent: Combatant) -> Dict[str, Any]:
        return {
            "matchId": match.id,
            "round": match.current_turn,
            "bestOf": match.best_of,
            "yourScore": me.rounds_won,
            "opponentScore": opponent.rounds_won,
            "yourMoves": list(me.move_history),
            "opponentMoves": list(opponent.move_history),
        }

    def _request(self, match: Match, me: Combatant, opponent: Combatant) -> DecisionRequest:
        return DecisionRequest(
            agent_id=me.id,
            game_state=self._game_state(match, me, opponent),
            kind=GameType.RPS,
            match_id=match.id,
            name=me.name,
            params=me.params,
            traits=me.traits,
            description=me.description,
            strategy=me.strategy,
            opponent_last_move=opponent.last_move,
            rules=self.rules,
        )

    async def execute_round(self, match: Match) -> TurnRecord:
        if not match.is_active:
            raise InvalidStateError(f"RPS match {match.id} is not active")
        a, b = match.combatants

        # Both requests see the board as it stood before either move.
        requests = [self._request(match, a, b), self._request(match, b, a)]
        choices = await self.chain.collect_decisions(requests)
        move_a, move_b = choices[a.id].move, choices[b.id].move
        a.move_history.append(move_a)
        b.move_history.append(move_b)

        outcome = resolve_round(move_a, move_b)
        round_winner: Optional[Combatant] = None
        if outcome == 1:
            round_winner = a
        elif outcome == 2:
            round_winner = b
        if round_winner is not None:
            round_winner.rounds_won += 1

        record = TurnRecord(turn=match.current_turn)
        record.events.append(
            {
                "type": "rps_round",
                "round": match.current_turn,
                "moves": {a.id: move_a, b.id: move_b},
                "winner": round_winner.id if round_winner else None,
                "isDraw": outcome == 0,
                "scores": {a.id: a.rounds_won, b.id: b.rounds_won},
            }
        )
        match.history.append(record)
        self.channel.emit(
            "rps_round",
            match_id=match.id,
            round=match.current_turn,
            moves={a.id: move_a, b.id: move_b},
            winner_id=round_winner.id if round_winner else None,
        )

        needed = wins_needed(match.best_of)
        if a.rounds_won >= needed or b.rounds_won >= needed:
            winner = a if a.rounds_won >= needed else b
            loser = b if winner is a else a
            plan = conclude(match, winner, "rounds_won", self.channel)
            record.distribution = list(plan)
            record.events.append(
                {
                    "type": "match_end",
                    "winner": winner.id,
                    "loser": loser.id,
                    "finalScore": {a.id: a.rounds_won, b.id: b.rounds_won},
                    "prize": [x.to_dict() for x in plan],
                }
            )
        else:
            match.current_turn += 1
        return record

    def force_end(self, match: Match, reason: str = "round_limit") -> List[Allocation]:
        """Settle by rounds won; level scores end as a draw with no payout."""
        if not match.is_active:
            return list(match.distribution)
        a, b = match.combatants
        winner: Optional[Combatant] = None
        if a.rounds_won > b.rounds_won:
            winner = a
        elif b.rounds_won > a.rounds_won:
            winner = b
        return conclude(match, winner, reason, self.channel)
