"""
Prize distribution.

Integer arithmetic only. The plan total may be less than the pool: floor
remainders and withheld tax with nobody eligible to receive it are dropped,
never rebalanced.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from engine.models import EXTERNAL_ID_PREFIX, Allocation, Combatant, Match

EXTERNAL_TAX_NUM = 1
EXTERNAL_TAX_DEN = 2


def is_external(agent: Optional[Combatant], agent_id: str = "") -> bool:
    if agent is None:
        return agent_id.startswith(EXTERNAL_ID_PREFIX)
    return bool(agent.is_external) or agent.id.startswith(EXTERNAL_ID_PREFIX)


def _raw_shares(match: Match, winner: Combatant, pool: int) -> Dict[str, int]:
    alliance = next((a for a in match.alliances if a.includes(winner.id)), None)
    if alliance is None:
        return {winner.id: pool}
    return {
        member: (pool * int(alliance.prize_share.get(member, 0))) // 100
        for member in alliance.members
    }


def distribute_prize(match: Match, winner: Combatant) -> List[Allocation]:
    pool = int(match.prize_pool)
    if pool <= 0:
        return []

    plan: Dict[str, int] = {}
    withheld = 0
    for agent_id, amount in _raw_shares(match, winner, pool).items():
        if is_external(match.combatant(agent_id), agent_id):
            cut = (amount * EXTERNAL_TAX_NUM) // EXTERNAL_TAX_DEN
            withheld += cut
            amount -= cut
        plan[agent_id] = amount

    if withheld > 0:
        eligible = [
            c for c in match.combatants if not is_external(c) and c.id != winner.id
        ]
        if eligible:
            share = withheld // len(eligible)
            for c in eligible:
                plan[c.id] = plan.get(c.id, 0) + share

    return [Allocation(agent_id=k, amount=v) for k, v in plan.items()]


def plan_total(plan: List[Allocation]) -> int:
    return sum(a.amount for a in plan)
