"""
Parsing and validation for decision provider outputs.
Keeps every answer engine-safe: a recognised action or a rejection.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict

import jsonschema

from decision_gateway.schema import BATTLE_DECISION_SCHEMA, RPS_MOVE_SCHEMA
from engine.errors import ProviderMalformedResponse
from engine.models import Decision

_BATTLE_VALIDATOR = jsonschema.Draft7Validator(BATTLE_DECISION_SCHEMA)
_RPS_VALIDATOR = jsonschema.Draft7Validator(RPS_MOVE_SCHEMA)


def extract_json(text: str, provider: str = "provider") -> Dict[str, Any]:
    """Pull the outermost JSON object out of a model reply."""
    stripped = str(text or "").strip()
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ProviderMalformedResponse(
            provider, f"response is not JSON: {stripped[:200]}"
        )
    candidate = stripped[start : end + 1]
    # Remove trailing commas before closing braces/brackets.
    candidate = re.sub(r",\s*([}\]])", r"\1", candidate)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ProviderMalformedResponse(provider, f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProviderMalformedResponse(provider, "response is not a JSON object")
    return parsed


def _lower_field(record: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = record.get(key)
    if isinstance(value, str):
        record = dict(record)
        record[key] = value.strip().lower()
    return record


def validate_battle_decision(
    record: Any, provider: str = "provider", source: str = ""
) -> Decision:
    if not isinstance(record, dict):
        raise ProviderMalformedResponse(provider, "decision is not an object")
    record = _lower_field(record, "action")
    errors = sorted(_BATTLE_VALIDATOR.iter_errors(record), key=lambda e: e.path)
    if errors:
        raise ProviderMalformedResponse(provider, errors[0].message)
    return Decision.from_dict(record, source=source or provider)


def validate_rps_move(record: Any, provider: str = "provider") -> Dict[str, str]:
    if not isinstance(record, dict):
        raise ProviderMalformedResponse(provider, "move is not an object")
    record = _lower_field(record, "move")
    errors = sorted(_RPS_VALIDATOR.iter_errors(record), key=lambda e: e.path)
    if errors:
        raise ProviderMalformedResponse(provider, errors[0].message)
    return {"move": record["move"], "reasoning": str(record.get("reasoning") or "")}


def parse_battle_decision(text: str, provider: str) -> Decision:
    return validate_battle_decision(extract_json(text, provider), provider)


def parse_rps_move(text: str, provider: str) -> Dict[str, str]:
    return validate_rps_move(extract_json(text, provider), provider)
