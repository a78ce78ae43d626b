"""
Post-match tables built from a Match's turn history.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd

from engine.models import Allocation, Match
from engine.prize import plan_total

EVENT_COLUMNS = ["turn", "type", "actor", "target", "damage", "amount"]


def _actor_target(event: Dict[str, Any]) -> tuple:
    kind = event.get("type")
    if kind == "attack":
        return event.get("attackerId"), event.get("defenderId")
    if kind == "betrayal":
        return event.get("betrayer"), event.get("victim")
    if kind == "bribe":
        return event.get("briber"), event.get("target")
    if kind == "propose_alliance":
        return event.get("from"), event.get("to")
    if kind == "alliance_formed":
        members = (event.get("alliance") or {}).get("members") or [None, None]
        return members[0], members[1]
    if kind in ("defend", "death"):
        return event.get("agentId"), None
    if kind == "match_end":
        return event.get("winner"), None
    return None, None


def turn_events_frame(match: Match) -> pd.DataFrame:
    """One row per turn event."""
    rows: List[Dict[str, Any]] = []
    for record in match.history:
        for event in record.events:
            actor, target = _actor_target(event)
            rows.append(
                {
                    "turn": record.turn,
                    "type": event.get("type"),
                    "actor": actor,
                    "target": target,
                    "damage": event.get("damage", 0) or 0,
                    "amount": event.get("amount", 0) or 0,
                }
            )
    return pd.DataFrame(rows, columns=EVENT_COLUMNS)


def damage_summary(match: Match) -> pd.DataFrame:
    """Damage dealt/taken and turns survived per combatant."""
    ids = [c.id for c in match.combatants]
    frame = turn_events_frame(match)
    hits = frame[frame["type"].isin(["attack", "betrayal"])]

    dealt = np.zeros(len(ids), dtype=np.int64)
    taken = np.zeros(len(ids), dtype=np.int64)
    index = {agent_id: i for i, agent_id in enumerate(ids)}
    for actor, target, damage in zip(hits["actor"], hits["target"], hits["damage"]):
        if actor in index:
            dealt[index[actor]] += int(damage)
        if target in index:
            taken[index[target]] += int(damage)

    return pd.DataFrame(
        {
            "agent_id": ids,
            "damage_dealt": dealt,
            "damage_taken": taken,
            "turns_alive": np.array([c.turns_alive for c in match.combatants], dtype=np.int64),
            "final_hp": np.array([c.hp for c in match.combatants], dtype=np.int64),
            "alive": [c.alive for c in match.combatants],
        }
    )


def distribution_frame(plan: Sequence[Allocation]) -> pd.DataFrame:
    frame = pd.DataFrame(
        [{"agent_id": a.agent_id, "amount": a.amount} for a in plan],
        columns=["agent_id", "amount"],
    )
    total = plan_total(list(plan))
    frame["share"] = frame["amount"] / total if total else 0.0
    return frame


def summarize(match: Match) -> Dict[str, Any]:
    summary = damage_summary(match)
    return {
        "match_id": match.id,
        "turns": len(match.history),
        "winner": match.winner_id,
        "total_damage": int(summary["damage_dealt"].sum()),
        "paid_out": plan_total(match.distribution),
        "prize_pool": match.prize_pool,
    }
