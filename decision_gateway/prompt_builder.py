"""
Prompt builder for AI gladiator decisions.
Creates a system+user prompt pair enforcing a JSON-only answer.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

from decision_gateway.schema import BATTLE_ACTION_EXAMPLES
from engine.models import EngineRules, StrategyParams


def _identity(name: str, params: StrategyParams, traits: List[str], description: str) -> str:
    trait_text = ", ".join(traits) or "balanced"
    return (
        f"- Name: {name}\n"
        f"- Personality: {description or trait_text}\n"
        f"- Traits: {trait_text}"
    )


def build_battle_prompt(
    name: str,
    params: StrategyParams,
    traits: List[str],
    description: str,
    game_state: Dict[str, Any],
    rules: EngineRules,
) -> Tuple[str, str]:
    system = f"""You are an autonomous AI gladiator agent in a battle arena. You make independent combat decisions every turn.

Your identity:
{_identity(name, params, traits, description)}

Your behavioral parameters (0-100 scale):
- Aggressiveness: {params.aggressiveness} (0=always defend, 100=always attack)
- Risk Tolerance: {params.risk_tolerance}
- Alliance Tendency: {params.alliance_tendency} (0=lone wolf, 100=always ally)
- Betrayal Chance: {params.betrayal_chance} (0=loyal, 100=always betray)
- Bribery Policy: {params.bribery_policy.value}

Combat rules:
- ATTACK deals {rules.attack_damage} damage ({rules.defended_damage} if the target is defending)
- DEFEND reduces incoming damage; every survivor recovers +{rules.hp_recovery} HP per turn
- You can propose/accept alliances for shared prize pools
- Betrayal deals full {rules.attack_damage} damage ignoring defense, but breaks your alliance
- Last gladiator standing wins the prize pool
- HP starts at {rules.starting_hp}, max {rules.max_hp}

Stay in character. Respond with ONLY a valid JSON object, no markdown, no text outside the JSON."""

    you = game_state.get("you", {})
    opponents = [o for o in game_state.get("opponents", []) if o.get("alive")]
    alliances = game_state.get("alliances", [])
    alliance_info = (
        f"Active alliances: {json.dumps(alliances)}" if alliances else "No active alliances"
    )
    opponent_info = ", ".join(
        f"{o['id']}(HP:{o['hp']}, last:{(o.get('lastAction') or {}).get('action', 'none')})"
        for o in opponents
    )
    last = (you.get("lastAction") or {}).get("action", "none")
    examples = "\n".join(f"- {e}" for e in BATTLE_ACTION_EXAMPLES)
    user = f"""Turn {game_state.get('currentTurn')}. Choose your action NOW.

Your status: HP={you.get('hp')}/{rules.max_hp}, alive opponents: {len(opponents)}
Opponents: {opponent_info}
{alliance_info}
Prize pool: {game_state.get('prizePool')}
Your last action: {last}

Available actions:
{examples}

Respond with a single JSON object."""
    return system, user


def build_rps_prompt(
    name: str,
    params: StrategyParams,
    traits: List[str],
    description: str,
    game_state: Dict[str, Any],
) -> Tuple[str, str]:
    system = f"""You are an AI gladiator agent playing Rock-Paper-Scissors in a battle arena.
{_identity(name, params, traits, description)}
- Aggressiveness: {params.aggressiveness}/100

Choose rock, paper, or scissors strategically.
Respond with ONLY a valid JSON object, no markdown."""

    opp_moves = game_state.get("opponentMoves", [])
    my_moves = game_state.get("yourMoves", [])
    history = (
        f"Opponent's previous moves: {', '.join(opp_moves)}"
        if opp_moves
        else "No opponent history yet (first round)"
    )
    user = f"""Round {game_state.get('round')}/{game_state.get('bestOf')}. Score: You {game_state.get('yourScore', 0)} - {game_state.get('opponentScore', 0)} Opponent.
{history}
Your previous moves: {', '.join(my_moves) if my_moves else 'none'}

Choose ONE: rock, paper, or scissors.
Respond: {{"move": "rock|paper|scissors", "reasoning": "brief explanation"}}"""
    return system, user
