"""
Turn-based battle match engine.

execute_turn resolves one turn in a fixed phase order; later phases see the
effects of earlier phases from the same turn:

  1. collect decisions against one opening snapshot
  2. mark defenders
  3. queue alliance proposals
  4. resolve bribes
  5. resolve alliance acceptances
  6. resolve attacks
  7. resolve betrayals
  8. recovery
  9. deaths
  10. turns-alive bookkeeping, history
  11. end-of-match check and prize distribution
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from decision_gateway.provider_chain import DecisionProviderChain, DecisionRequest
from engine.alliances import accept_alliance, betray, bribe, propose_alliance
from engine.combat import apply_attack, apply_recovery, starting_hp
from engine.errors import InvalidStateError, ValidationError
from engine.events import EventChannel
from engine.models import (
    Action,
    AgentDescriptor,
    Allocation,
    ArenaContext,
    Combatant,
    Decision,
    EngineRules,
    GameType,
    Match,
    MatchStatus,
    TurnRecord,
    new_id,
)
from engine.prize import distribute_prize, plan_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchEnd:
    ended: bool
    winner_id: Optional[str] = None

    @property
    def draw(self) -> bool:
        return self.ended and self.winner_id is None


def check_match_end(alive_ids: Sequence[str]) -> MatchEnd:
    """Exactly one alive wins, none alive is a draw, otherwise keep going."""
    alive_ids = list(alive_ids)
    if len(alive_ids) == 1:
        return MatchEnd(ended=True, winner_id=alive_ids[0])
    if not alive_ids:
        return MatchEnd(ended=True)
    return MatchEnd(ended=False)


def build_combatant(agent: AgentDescriptor, rules: EngineRules) -> Combatant:
    hp = starting_hp(agent.buffs.health, rules)
    return Combatant(
        id=agent.id,
        name=agent.name,
        hp=hp,
        max_hp=max(rules.max_hp, hp),
        buffs=agent.buffs,
        params=agent.params,
        traits=list(agent.traits),
        description=agent.description,
        is_external=agent.external,
        owner=agent.owner,
        strategy=agent.strategy,
    )


def conclude(
    match: Match,
    winner: Optional[Combatant],
    reason: str,
    channel: EventChannel,
) -> List[Allocation]:
    """Mark a match completed, pay out and announce the result."""
    match.status = MatchStatus.COMPLETED
    match.ended_at = datetime.now(timezone.utc).replace(microsecond=0)
    plan: List[Allocation] = []
    if winner is not None:
        match.winner_id = winner.id
        plan = distribute_prize(match, winner)
        match.distribution = plan
        channel.emit(
            "prize_distributed",
            match_id=match.id,
            winner_id=winner.id,
            distribution=[a.to_dict() for a in plan],
            total=plan_total(plan),
            prize_pool=match.prize_pool,
        )
    channel.emit(
        "match_ended",
        match_id=match.id,
        arena_id=match.arena_id,
        game_type=match.game_type.value,
        winner_id=match.winner_id,
        participants=[c.id for c in match.combatants],
        distribution=[a.to_dict() for a in plan],
        reason=reason,
    )
    logger.info(
        "Match %s ended (%s), winner=%s, paid=%s/%s",
        match.id,
        reason,
        match.winner_id,
        plan_total(plan),
        match.prize_pool,
    )
    return plan


class MatchEngine:
    def __init__(
        self,
        chain: DecisionProviderChain,
        rules: Optional[EngineRules] = None,
        channel: Optional[EventChannel] = None,
    ) -> None:
        self.chain = chain
        self.rules = rules or EngineRules()
        self.channel = channel or EventChannel()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start_match(
        self, arena: ArenaContext, agents: Sequence[AgentDescriptor]
    ) -> Match:
        min_agents = arena.min_agents or self.rules.min_agents
        max_agents = arena.max_agents or self.rules.max_agents
        if not min_agents <= len(agents) <= max_agents:
            raise ValidationError(
                f"Need {min_agents}-{max_agents} agents, got {len(agents)}"
            )
        ids = [a.id for a in agents]
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate agent ids in match roster")

        match = Match(
            id=new_id("match_"),
            arena_id=arena.arena_id,
            combatants=[build_combatant(a, self.rules) for a in agents],
            prize_pool=int(arena.prize_pool),
            game_type=GameType.BATTLE,
        )
        self.channel.emit(
            "match_started",
            match_id=match.id,
            arena_id=match.arena_id,
            game_type=match.game_type.value,
            agent_count=len(match.combatants),
            prize_pool=match.prize_pool,
        )
        logger.info(
            "Match %s started in arena %s with %d agents",
            match.id,
            match.arena_id,
            len(match.combatants),
        )
        return match

    def build_game_state(self, match: Match, agent: Combatant) -> Dict[str, Any]:
        window = self.rules.history_window
        return {
            "matchId": match.id,
            "currentTurn": match.current_turn,
            "you": agent.public_view(),
            "opponents": [c.public_view() for c in match.combatants if c.id != agent.id],
            "alliances": [
                {"id": a.id, "members": list(a.members), "prizeShare": dict(a.prize_share)}
                for a in match.alliances
            ],
            "prizePool": match.prize_pool,
            "history": [t.to_dict() for t in match.history[-window:]] if window else [],
        }

    def _requests(self, match: Match) -> List[DecisionRequest]:
        # Every snapshot is taken before the first decision call.
        return [
            DecisionRequest(
                agent_id=c.id,
                game_state=self.build_game_state(match, c),
                kind=GameType.BATTLE,
                match_id=match.id,
                name=c.name,
                params=c.params,
                traits=c.traits,
                description=c.description,
                strategy=c.strategy,
                rules=self.rules,
            )
            for c in match.alive()
        ]

    # ------------------------------------------------------------------
    # turn
    # ------------------------------------------------------------------
    async def execute_turn(self, match: Match) -> TurnRecord:
        if not match.is_active:
            raise InvalidStateError(
                f"Match {match.id} is not active (status: {match.status.value})"
            )
        rules = self.rules

        # 1. decisions
        decisions: Dict[str, Decision] = dict(
            await self.chain.collect_decisions(self._requests(match))
        )
        for agent_id, decision in decisions.items():
            combatant = match.combatant(agent_id)
            if combatant is not None:
                combatant.last_decision = decision

        record = TurnRecord(turn=match.current_turn, decisions=dict(decisions))
        events = record.events

        def chosen(action: Action):
            return [(aid, d) for aid, d in decisions.items() if d.action == action]

        # 2. defenders
        defending: Set[str] = set()
        for agent_id, _ in chosen(Action.DEFEND):
            defending.add(agent_id)
            events.append({"type": "defend", "agentId": agent_id})

        # 3. proposals
        for agent_id, d in chosen(Action.PROPOSE_ALLIANCE):
            proposal = propose_alliance(match, agent_id, d.target, d.prize_share, rules)
            if proposal is not None:
                events.append(
                    {
                        "type": "propose_alliance",
                        "from": agent_id,
                        "to": d.target,
                        "terms": {"prizeShare": proposal.prize_share},
                    }
                )

        # 4. bribes
        for agent_id, d in chosen(Action.BRIBE):
            outcome = bribe(match, agent_id, d.target, d.amount, d.prize_share, rules)
            if outcome is None:
                continue
            events.append(outcome.to_event())
            self.channel.emit(
                "bribe_attempt",
                match_id=match.id,
                briber_id=outcome.briber_id,
                target_id=outcome.target_id,
                amount=outcome.amount,
                accepted=outcome.accepted,
            )
            if outcome.alliance is not None:
                self._alliance_formed(match, outcome.alliance, events)

        # 5. acceptances
        for agent_id, d in chosen(Action.ACCEPT_ALLIANCE):
            alliance = accept_alliance(match, agent_id, d.proposer or d.target)
            if alliance is not None:
                self._alliance_formed(match, alliance, events)

        # 6. attacks
        for agent_id, d in chosen(Action.ATTACK):
            outcome = apply_attack(
                match.combatant(agent_id),
                match.combatant(d.target),
                d.target in defending,
                rules,
            )
            if outcome is not None:
                events.append(outcome.to_event())

        # 7. betrayals
        for agent_id, d in chosen(Action.BETRAY_ALLIANCE):
            outcome = betray(match, agent_id, d.alliance_id, d.attack_target or d.target, rules)
            if outcome is None:
                continue
            events.append(outcome.to_event())
            self.channel.emit(
                "betrayal",
                match_id=match.id,
                betrayer_id=outcome.betrayer_id,
                victim_id=outcome.victim_id,
                alliance_id=outcome.alliance_id,
                damage=outcome.damage,
            )

        # 8. recovery
        apply_recovery(match.combatants, rules)
        events.append({"type": "recovery", "amount": rules.hp_recovery})

        # 9. deaths
        for c in match.combatants:
            if c.alive and c.hp <= 0:
                c.alive = False
                c.hp = 0
                events.append({"type": "death", "agentId": c.id})
                self.channel.emit(
                    "agent_died", match_id=match.id, agent_id=c.id, turn=match.current_turn
                )

        # 10. bookkeeping
        for c in match.alive():
            c.turns_alive += 1
        match.history.append(record)

        # 11. end condition
        end = check_match_end([c.id for c in match.alive()])
        if end.ended:
            winner = match.combatant(end.winner_id)
            plan = conclude(match, winner, "draw" if end.draw else "last_standing", self.channel)
            record.distribution = list(plan)
            if winner is not None:
                events.append(
                    {
                        "type": "match_end",
                        "winner": winner.id,
                        "prize": [a.to_dict() for a in plan],
                    }
                )
            else:
                events.append({"type": "match_end", "winner": None, "reason": "draw"})
        else:
            match.current_turn += 1
        return record

    def _alliance_formed(self, match: Match, alliance, events: List[Dict[str, Any]]) -> None:
        events.append({"type": "alliance_formed", "alliance": alliance.to_dict()})
        self.channel.emit(
            "alliance_formed",
            match_id=match.id,
            alliance_id=alliance.id,
            members=list(alliance.members),
            prize_share=dict(alliance.prize_share),
            via_bribe=alliance.via_bribe,
        )

    # ------------------------------------------------------------------
    # termination
    # ------------------------------------------------------------------
    def force_end(self, match: Match, reason: str = "turn_limit") -> List[Allocation]:
        """End an active match; the alive combatant with most HP wins."""
        if not match.is_active:
            return list(match.distribution)
        alive = sorted(match.alive(), key=lambda c: c.hp, reverse=True)
        winner = alive[0] if alive else None
        return conclude(match, winner, reason, self.channel)

    def get_match_status(self, match: Match) -> Dict[str, Any]:
        return {
            "matchId": match.id,
            "status": match.status.value,
            "currentTurn": match.current_turn,
            "aliveCount": len(match.alive()),
            "totalAgents": len(match.combatants),
            "prizePool": match.prize_pool,
            "allianceCount": len(match.alliances),
            "gameType": match.game_type.value,
            "winnerId": match.winner_id,
        }
