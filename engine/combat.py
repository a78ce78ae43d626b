"""
Combat resolver: damage, betrayal damage, recovery.

Pure functions over Combatant objects. HP is clamped into [0, max_hp] by every
function that touches it; death marking happens later in the turn.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from engine.models import Combatant, EngineRules


@dataclass(frozen=True)
class AttackOutcome:
    attacker_id: str
    defender_id: str
    damage: int
    defended: bool
    remaining_hp: int

    def to_event(self) -> dict:
        return {
            "type": "attack",
            "attackerId": self.attacker_id,
            "defenderId": self.defender_id,
            "damage": self.damage,
            "defended": self.defended,
            "remainingHp": self.remaining_hp,
        }


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def attack_damage(
    attacker: Combatant, defender: Combatant, defending: bool, rules: EngineRules
) -> int:
    base = rules.defended_damage if defending else rules.attack_damage
    bonus = attacker.buffs.attack // 10
    reduction = defender.buffs.armor // 10
    return max(1, base + bonus - reduction)


def apply_attack(
    attacker: Optional[Combatant],
    defender: Optional[Combatant],
    defending: bool,
    rules: EngineRules,
) -> Optional[AttackOutcome]:
    if attacker is None or defender is None:
        return None
    if not attacker.alive or not defender.alive:
        return None
    if attacker.id == defender.id:
        return None
    damage = attack_damage(attacker, defender, defending, rules)
    defender.hp = clamp(defender.hp - damage, 0, defender.max_hp)
    return AttackOutcome(
        attacker_id=attacker.id,
        defender_id=defender.id,
        damage=damage,
        defended=defending,
        remaining_hp=defender.hp,
    )


def apply_betrayal_damage(victim: Combatant, rules: EngineRules) -> int:
    """Full attack damage; ignores defend state and armor."""
    damage = rules.attack_damage
    victim.hp = clamp(victim.hp - damage, 0, victim.max_hp)
    return damage


def apply_recovery(combatants: Iterable[Combatant], rules: EngineRules) -> None:
    for c in combatants:
        if c.alive and c.hp > 0:
            c.hp = clamp(c.hp + rules.hp_recovery, 0, c.max_hp)


def starting_hp(health_buff: int, rules: EngineRules) -> int:
    return rules.starting_hp + health_buff // 10
