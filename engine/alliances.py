"""
Alliance ledger: proposals, acceptance, bribery, betrayal.

None of these raise on a bad decision; an unmatched accept or an unknown
alliance id is simply a no-op so one broken agent cannot abort a turn.
Membership is not exclusive: an agent may sit in several alliances at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from engine.combat import apply_betrayal_damage
from engine.models import (
    Alliance,
    BriberyPolicy,
    Combatant,
    EngineRules,
    Match,
    Proposal,
    new_id,
)


@dataclass(frozen=True)
class BribeOutcome:
    briber_id: str
    target_id: str
    amount: float
    accepted: bool
    target_policy: str
    alliance: Optional[Alliance] = None

    def to_event(self) -> dict:
        return {
            "type": "bribe",
            "briber": self.briber_id,
            "target": self.target_id,
            "amount": self.amount,
            "accepted": self.accepted,
            "targetPolicy": self.target_policy,
        }


@dataclass(frozen=True)
class BetrayalOutcome:
    betrayer_id: str
    victim_id: Optional[str]
    alliance_id: str
    damage: int
    remaining_hp: Optional[int]

    def to_event(self) -> dict:
        return {
            "type": "betrayal",
            "betrayer": self.betrayer_id,
            "victim": self.victim_id,
            "allianceId": self.alliance_id,
            "damage": self.damage,
            "remainingHp": self.remaining_hp,
        }


def _split(first: str, second: str, first_share: int) -> dict:
    first_share = max(0, min(100, int(first_share)))
    return {first: first_share, second: 100 - first_share}


def propose_alliance(
    match: Match,
    proposer_id: str,
    target_id: Optional[str],
    prize_share: Optional[int] = None,
    rules: Optional[EngineRules] = None,
) -> Optional[Proposal]:
    if target_id is None:
        return None
    rules = rules or EngineRules()
    share = rules.default_alliance_share if prize_share is None else prize_share
    proposal = Proposal(proposer_id=proposer_id, target_id=target_id, prize_share=share)
    match.proposals.append(proposal)
    return proposal


def accept_alliance(
    match: Match, accepter_id: str, proposer_id: Optional[str]
) -> Optional[Alliance]:
    for idx, proposal in enumerate(match.proposals):
        if proposal.proposer_id == proposer_id and proposal.target_id == accepter_id:
            match.proposals.pop(idx)
            alliance = Alliance(
                id=new_id("alliance_"),
                members=(proposal.proposer_id, accepter_id),
                prize_share=_split(proposal.proposer_id, accepter_id, proposal.prize_share),
            )
            match.alliances.append(alliance)
            return alliance
    return None


def bribe_accepted(
    briber: Combatant, target: Combatant, rules: EngineRules
) -> bool:
    policy = target.params.bribery_policy
    if policy == BriberyPolicy.ACCEPT:
        return True
    if policy == BriberyPolicy.REJECT:
        return False
    return target.hp < rules.starting_hp * 0.5 or briber.hp > target.hp


def bribe(
    match: Match,
    briber_id: str,
    target_id: Optional[str],
    amount: Optional[float] = None,
    prize_share: Optional[int] = None,
    rules: Optional[EngineRules] = None,
) -> Optional[BribeOutcome]:
    rules = rules or EngineRules()
    target = match.combatant(target_id)
    briber = match.combatant(briber_id)
    if target is None or not target.alive or briber is None:
        return None
    if target.id == briber.id:
        return None

    offer = amount if amount is not None else int(
        match.prize_pool * rules.default_bribe_pool_fraction
    )
    accepted = bribe_accepted(briber, target, rules)
    alliance = None
    if accepted:
        share = rules.default_bribe_share if prize_share is None else prize_share
        alliance = Alliance(
            id=new_id("bribe_alliance_"),
            members=(briber.id, target.id),
            prize_share=_split(briber.id, target.id, share),
            via_bribe=True,
        )
        match.alliances.append(alliance)
    return BribeOutcome(
        briber_id=briber.id,
        target_id=target.id,
        amount=offer,
        accepted=accepted,
        target_policy=target.params.bribery_policy.value,
        alliance=alliance,
    )


def betray(
    match: Match,
    betrayer_id: str,
    alliance_id: Optional[str],
    victim_id: Optional[str],
    rules: Optional[EngineRules] = None,
) -> Optional[BetrayalOutcome]:
    rules = rules or EngineRules()
    alliance = match.alliance(alliance_id)
    if alliance is None or not alliance.includes(betrayer_id):
        return None

    match.alliances.remove(alliance)

    victim = match.combatant(victim_id)
    if victim is None or not victim.alive:
        return BetrayalOutcome(
            betrayer_id=betrayer_id,
            victim_id=victim_id,
            alliance_id=alliance.id,
            damage=0,
            remaining_hp=None,
        )
    damage = apply_betrayal_damage(victim, rules)
    return BetrayalOutcome(
        betrayer_id=betrayer_id,
        victim_id=victim.id,
        alliance_id=alliance.id,
        damage=damage,
        remaining_hp=victim.hp,
    )
