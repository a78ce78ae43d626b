"""
Built-in gladiator archetypes.

Each template pairs a deterministic decide() with the behavioural params the
AI prompt and the RPS fallback profile read.
"""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional

from engine.models import BriberyPolicy, StrategyParams
from strategies.base import (
    alive_opponents,
    my_alliances,
    register_strategy,
    strongest,
    weakest,
)

DEFEND = {"action": "defend"}


class TemplateStrategy:
    name = "template"
    description = ""
    traits: List[str] = []
    default_params: Dict[str, Any] = {}

    def __init__(
        self,
        params: Optional[StrategyParams] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.params = params or StrategyParams.from_dict(self.default_params)
        self.traits = list(type(self).traits)
        self.rng = rng or random.Random()

    def decide(self, game_state: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class Berserker(TemplateStrategy):
    name = "berserker"
    description = "Always attack. Target the weakest opponent. No defense, no mercy."
    traits = ["aggressive", "ruthless"]
    default_params = {
        "aggressiveness": 95,
        "risk_tolerance": 80,
        "bribery_policy": BriberyPolicy.REJECT.value,
        "alliance_tendency": 5,
        "betrayal_chance": 90,
    }

    def decide(self, game_state):
        alive = alive_opponents(game_state)
        if not alive:
            return dict(DEFEND)
        return {"action": "attack", "target": weakest(alive)["id"]}


class Diplomat(TemplateStrategy):
    name = "diplomat"
    description = "Form alliances, offer bribes, stay loyal. Win through diplomacy."
    traits = ["loyal", "diplomatic"]
    default_params = {
        "aggressiveness": 20,
        "risk_tolerance": 40,
        "bribery_policy": BriberyPolicy.ACCEPT.value,
        "alliance_tendency": 90,
        "betrayal_chance": 5,
    }

    def decide(self, game_state):
        alive = alive_opponents(game_state)
        if not alive or my_alliances(game_state):
            return dict(DEFEND)
        if game_state.get("currentTurn", 1) <= 3:
            return {
                "action": "propose_alliance",
                "target": strongest(alive)["id"],
                "terms": {"prizeShare": 50},
            }
        return dict(DEFEND)


class Trickster(TemplateStrategy):
    name = "trickster"
    description = "Form alliances, gain trust, then strike from the shadows."
    traits = ["deceptive", "cunning"]
    default_params = {
        "aggressiveness": 70,
        "risk_tolerance": 60,
        "bribery_policy": BriberyPolicy.ACCEPT.value,
        "alliance_tendency": 80,
        "betrayal_chance": 75,
    }

    def decide(self, game_state):
        alive = alive_opponents(game_state)
        if not alive:
            return dict(DEFEND)
        mine = my_alliances(game_state)
        me = game_state.get("you", {}).get("id")
        if game_state.get("currentTurn", 1) <= 3:
            if not mine:
                return {
                    "action": "propose_alliance",
                    "target": strongest(alive)["id"],
                    "terms": {"prizeShare": 60},
                }
            return dict(DEFEND)
        if mine:
            alliance = mine[0]
            victim = next(m for m in alliance["members"] if m != me)
            return {
                "action": "betray_alliance",
                "allianceId": alliance["id"],
                "attackTarget": victim,
            }
        return {"action": "attack", "target": weakest(alive)["id"]}


class Turtle(TemplateStrategy):
    name = "turtle"
    description = "Stay defensive. Attack only when the last opponent is weaker."
    traits = ["defensive", "patient"]
    default_params = {
        "aggressiveness": 15,
        "risk_tolerance": 30,
        "bribery_policy": BriberyPolicy.ACCEPT.value,
        "alliance_tendency": 40,
        "betrayal_chance": 10,
    }

    def decide(self, game_state):
        alive = alive_opponents(game_state)
        my_hp = game_state.get("you", {}).get("hp", 0)
        if len(alive) == 1 and my_hp > alive[0]["hp"]:
            return {"action": "attack", "target": alive[0]["id"]}
        return dict(DEFEND)


class Opportunist(TemplateStrategy):
    name = "opportunist"
    description = "Attack the weak, defend against the strong."
    traits = ["adaptive", "balanced"]
    default_params = {
        "aggressiveness": 55,
        "risk_tolerance": 50,
        "bribery_policy": BriberyPolicy.CONDITIONAL.value,
        "alliance_tendency": 50,
        "betrayal_chance": 30,
    }

    def decide(self, game_state):
        alive = alive_opponents(game_state)
        if not alive:
            return dict(DEFEND)
        my_hp = game_state.get("you", {}).get("hp", 0)
        avg_hp = sum(o["hp"] for o in alive) / len(alive)
        if my_hp > avg_hp * 1.2:
            return {"action": "attack", "target": weakest(alive)["id"]}
        if my_hp < avg_hp * 0.7 and len(alive) > 1:
            return {
                "action": "propose_alliance",
                "target": strongest(alive)["id"],
                "terms": {"prizeShare": 40},
            }
        if self.rng.random() > 0.5:
            return {"action": "attack", "target": weakest(alive)["id"]}
        return dict(DEFEND)


class BountyHunter(TemplateStrategy):
    name = "bounty_hunter"
    description = "Hunt low-HP opponents; back off when wounded."
    traits = ["aggressive", "tactical"]
    default_params = {
        "aggressiveness": 75,
        "risk_tolerance": 70,
        "bribery_policy": BriberyPolicy.REJECT.value,
        "alliance_tendency": 20,
        "betrayal_chance": 40,
    }

    def decide(self, game_state):
        alive = alive_opponents(game_state)
        if not alive or game_state.get("you", {}).get("hp", 0) < 30:
            return dict(DEFEND)
        return {"action": "attack", "target": weakest(alive)["id"]}


class Briber(TemplateStrategy):
    name = "briber"
    description = "Buy off the strongest opponent, pick off the rest."
    traits = ["wealthy", "manipulative"]
    default_params = {
        "aggressiveness": 30,
        "risk_tolerance": 50,
        "bribery_policy": BriberyPolicy.ACCEPT.value,
        "alliance_tendency": 70,
        "betrayal_chance": 45,
    }

    def decide(self, game_state):
        alive = alive_opponents(game_state)
        if not alive:
            return dict(DEFEND)
        if game_state.get("currentTurn", 1) % 3 == 1 and len(alive) > 1:
            return {
                "action": "bribe",
                "target": strongest(alive)["id"],
                "terms": {"prizeShare": 55},
            }
        return {"action": "attack", "target": weakest(alive)["id"]}


TEMPLATES = [Berserker, Diplomat, Trickster, Turtle, Opportunist, BountyHunter, Briber]

for _template in TEMPLATES:
    register_strategy(_template.name, _template)
