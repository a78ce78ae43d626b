"""
JSON schemas for provider answers.
These are the only shapes the engine accepts from an external decision source.
"""

from engine.models import ACTIONS, RPS_MOVES

BATTLE_DECISION_SCHEMA = {
    "type": "object",
    "required": ["action"],
    "properties": {
        "action": {"type": "string", "enum": sorted(ACTIONS)},
        "target": {"type": ["string", "null"]},
        "terms": {
            "type": ["object", "null"],
            "properties": {
                "prizeShare": {"type": "number", "minimum": 0, "maximum": 100}
            },
        },
        "proposer": {"type": ["string", "null"]},
        "allianceId": {"type": ["string", "null"]},
        "attackTarget": {"type": ["string", "null"]},
        "amount": {"type": ["number", "null"], "minimum": 0},
        "reasoning": {"type": ["string", "null"]},
    },
    "additionalProperties": True,
}

RPS_MOVE_SCHEMA = {
    "type": "object",
    "required": ["move"],
    "properties": {
        "move": {"type": "string", "enum": sorted(RPS_MOVES)},
        "reasoning": {"type": ["string", "null"]},
    },
    "additionalProperties": True,
}

# Example answers shown to models in prompts.
BATTLE_ACTION_EXAMPLES = [
    '{"action": "attack", "target": "<opponentId>", "reasoning": "..."}',
    '{"action": "defend", "reasoning": "..."}',
    '{"action": "propose_alliance", "target": "<opponentId>", "terms": {"prizeShare": 50}, "reasoning": "..."}',
    '{"action": "accept_alliance", "proposer": "<agentId>", "reasoning": "..."}',
    '{"action": "betray_alliance", "allianceId": "<id>", "attackTarget": "<agentId>", "reasoning": "..."}',
    '{"action": "bribe", "target": "<opponentId>", "amount": <number>, "reasoning": "..."}',
]
