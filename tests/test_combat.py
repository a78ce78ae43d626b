import pytest

from engine.combat import (
    apply_attack,
    apply_betrayal_damage,
    apply_recovery,
    attack_damage,
    starting_hp,
)
from engine.models import Buffs, Combatant, EngineRules


def fighter(agent_id: str, hp: int = 100, max_hp: int = 105, **buffs) -> Combatant:
    return Combatant(id=agent_id, name=agent_id, hp=hp, max_hp=max_hp, buffs=Buffs(**buffs))


@pytest.fixture
def rules() -> EngineRules:
    return EngineRules()


@pytest.mark.parametrize(
    "defending,attack_buff,armor_buff,expected",
    [
        (False, 0, 0, 20),
        (True, 0, 0, 10),
        (False, 50, 0, 25),
        (False, 0, 30, 17),
        (True, 0, 200, 1),
        (False, 9, 9, 20),
    ],
)
def test_attack_damage_formula(rules, defending, attack_buff, armor_buff, expected) -> None:
    attacker = fighter("a", attack=attack_buff)
    defender = fighter("b", armor=armor_buff)
    assert attack_damage(attacker, defender, defending, rules) == expected


def test_apply_attack_reduces_hp(rules) -> None:
    a, b = fighter("a"), fighter("b")
    outcome = apply_attack(a, b, False, rules)
    assert outcome is not None
    assert outcome.damage == 20
    assert b.hp == 80
    assert outcome.to_event()["remainingHp"] == 80


def test_apply_attack_clamps_at_zero(rules) -> None:
    a, b = fighter("a"), fighter("b", hp=5)
    apply_attack(a, b, False, rules)
    assert b.hp == 0


@pytest.mark.parametrize("case", ["missing", "dead", "self"])
def test_apply_attack_noops(rules, case) -> None:
    a, b = fighter("a"), fighter("b")
    if case == "missing":
        assert apply_attack(a, None, False, rules) is None
    elif case == "dead":
        b.alive = False
        assert apply_attack(a, b, False, rules) is None
    else:
        assert apply_attack(a, a, False, rules) is None
        assert a.hp == 100


def test_betrayal_damage_ignores_armor(rules) -> None:
    victim = fighter("v", armor=500)
    assert apply_betrayal_damage(victim, rules) == 20
    assert victim.hp == 80


def test_recovery_clamped_and_skips_dead(rules) -> None:
    full, hurt, dead, zero = fighter("a", hp=103), fighter("b", hp=50), fighter("c", hp=0), fighter("d", hp=0)
    dead.alive = False
    apply_recovery([full, hurt, dead, zero], rules)
    assert full.hp == 105
    assert hurt.hp == 55
    assert dead.hp == 0
    assert zero.hp == 0


def test_starting_hp_uses_health_buff(rules) -> None:
    assert starting_hp(0, rules) == 100
    assert starting_hp(59, rules) == 105
