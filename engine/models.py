"""
Data model for arena matches.

Match, Combatant, Decision, Proposal and Alliance are plain dataclasses. Only
the match engine mutates a Match; everything else reads snapshots.
"""

from __future__ import annotations

import secrets
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

EXTERNAL_ID_PREFIX = "ext_"


def new_id(prefix: str = "") -> str:
    return f"{prefix}{secrets.token_hex(8)}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class MatchStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"


class GameType(str, Enum):
    BATTLE = "battle"
    RPS = "rps"


class Action(str, Enum):
    ATTACK = "attack"
    DEFEND = "defend"
    PROPOSE_ALLIANCE = "propose_alliance"
    ACCEPT_ALLIANCE = "accept_alliance"
    BETRAY_ALLIANCE = "betray_alliance"
    BRIBE = "bribe"


class BriberyPolicy(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    CONDITIONAL = "conditional"


class RpsMove(str, Enum):
    ROCK = "rock"
    PAPER = "paper"
    SCISSORS = "scissors"


ACTIONS = frozenset(a.value for a in Action)
RPS_MOVES = frozenset(m.value for m in RpsMove)


@dataclass
class EngineRules:
    starting_hp: int = 100
    max_hp: int = 105
    attack_damage: int = 20
    defended_damage: int = 10
    hp_recovery: int = 5
    min_agents: int = 2
    max_agents: int = 16
    default_alliance_share: int = 50
    default_bribe_share: int = 60
    default_bribe_pool_fraction: float = 0.1
    history_window: int = 5


@dataclass
class Buffs:
    health: int = 0
    armor: int = 0
    attack: int = 0
    speed: int = 0

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "Buffs":
        data = data or {}
        return Buffs(
            health=int(data.get("health", 0) or 0),
            armor=int(data.get("armor", 0) or 0),
            attack=int(data.get("attack", 0) or 0),
            speed=int(data.get("speed", 0) or 0),
        )


@dataclass
class StrategyParams:
    """Behavioural knobs on a 0-100 scale, shared by scripted and AI play."""

    aggressiveness: int = 50
    risk_tolerance: int = 50
    alliance_tendency: int = 50
    betrayal_chance: int = 20
    bribery_policy: BriberyPolicy = BriberyPolicy.CONDITIONAL
    preferred_game_types: str = "both"

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "StrategyParams":
        data = data or {}
        policy = str(data.get("bribery_policy", data.get("briberyPolicy", "conditional")))
        try:
            bribery_policy = BriberyPolicy(policy.lower())
        except ValueError:
            bribery_policy = BriberyPolicy.CONDITIONAL
        return StrategyParams(
            aggressiveness=int(data.get("aggressiveness", 50)),
            risk_tolerance=int(data.get("risk_tolerance", data.get("riskTolerance", 50))),
            alliance_tendency=int(
                data.get("alliance_tendency", data.get("allianceTendency", 50))
            ),
            betrayal_chance=int(data.get("betrayal_chance", data.get("betrayalChance", 20))),
            bribery_policy=bribery_policy,
            preferred_game_types=str(
                data.get("preferred_game_types", data.get("preferredGameTypes", "both"))
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["bribery_policy"] = self.bribery_policy.value
        return payload


@dataclass
class AgentDescriptor:
    """An agent as it arrives from the lobby, before it becomes a Combatant."""

    id: str
    name: str = "Unknown"
    owner: Optional[str] = None
    is_external: bool = False
    buffs: Buffs = field(default_factory=Buffs)
    params: StrategyParams = field(default_factory=StrategyParams)
    traits: List[str] = field(default_factory=list)
    description: str = ""
    strategy: Any = None

    @property
    def external(self) -> bool:
        return self.is_external or self.id.startswith(EXTERNAL_ID_PREFIX)


@dataclass
class Decision:
    action: Action
    target: Optional[str] = None
    prize_share: Optional[int] = None
    proposer: Optional[str] = None
    alliance_id: Optional[str] = None
    attack_target: Optional[str] = None
    amount: Optional[float] = None
    reasoning: str = ""
    source: str = ""

    @staticmethod
    def defend(reasoning: str, source: str = "default") -> "Decision":
        return Decision(action=Action.DEFEND, reasoning=reasoning, source=source)

    @staticmethod
    def from_dict(data: Dict[str, Any], source: str = "") -> "Decision":
        terms = data.get("terms") or {}
        share = terms.get("prizeShare") if isinstance(terms, dict) else None
        amount = data.get("amount")
        return Decision(
            action=Action(str(data["action"]).lower()),
            target=_opt_str(data.get("target")),
            prize_share=int(share) if share is not None else None,
            proposer=_opt_str(data.get("proposer")),
            alliance_id=_opt_str(data.get("allianceId")),
            attack_target=_opt_str(data.get("attackTarget")),
            amount=float(amount) if amount is not None else None,
            reasoning=str(data.get("reasoning") or ""),
            source=source,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": self.action.value}
        if self.target is not None:
            payload["target"] = self.target
        if self.prize_share is not None:
            payload["terms"] = {"prizeShare": self.prize_share}
        if self.proposer is not None:
            payload["proposer"] = self.proposer
        if self.alliance_id is not None:
            payload["allianceId"] = self.alliance_id
        if self.attack_target is not None:
            payload["attackTarget"] = self.attack_target
        if self.amount is not None:
            payload["amount"] = self.amount
        if self.reasoning:
            payload["reasoning"] = self.reasoning
        return payload


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass
class Combatant:
    id: str
    name: str
    hp: int
    max_hp: int
    alive: bool = True
    turns_alive: int = 0
    buffs: Buffs = field(default_factory=Buffs)
    params: StrategyParams = field(default_factory=StrategyParams)
    traits: List[str] = field(default_factory=list)
    description: str = ""
    is_external: bool = False
    owner: Optional[str] = None
    strategy: Any = None
    last_decision: Optional[Decision] = None
    # rps only
    rounds_won: int = 0
    move_history: List[str] = field(default_factory=list)

    @property
    def last_move(self) -> Optional[str]:
        return self.move_history[-1] if self.move_history else None

    def public_view(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "hp": self.hp,
            "alive": self.alive,
            "turnsAlive": self.turns_alive,
            "lastAction": self.last_decision.to_dict() if self.last_decision else None,
        }


@dataclass
class Proposal:
    proposer_id: str
    target_id: str
    prize_share: int = 50


@dataclass
class Alliance:
    id: str
    members: Tuple[str, str]
    prize_share: Dict[str, int]
    via_bribe: bool = False

    def includes(self, agent_id: str) -> bool:
        return agent_id in self.members

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "members": list(self.members),
            "prizeShare": dict(self.prize_share),
            "viaBribe": self.via_bribe,
        }


@dataclass(frozen=True)
class Allocation:
    agent_id: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {"agentId": self.agent_id, "amount": self.amount}


@dataclass
class TurnRecord:
    turn: int
    decisions: Dict[str, Decision] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)
    distribution: List[Allocation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "turn": self.turn,
            "decisions": {k: v.to_dict() for k, v in self.decisions.items()},
            "events": [dict(e) for e in self.events],
            "distribution": [a.to_dict() for a in self.distribution],
        }


@dataclass
class ArenaContext:
    """What the engine needs to know about the arena a match runs in."""

    arena_id: str
    prize_pool: int = 0
    min_agents: Optional[int] = None
    max_agents: Optional[int] = None
    game_type: GameType = GameType.BATTLE
    best_of: int = 3


@dataclass
class Match:
    id: str
    arena_id: str
    combatants: List[Combatant]
    prize_pool: int = 0
    game_type: GameType = GameType.BATTLE
    status: MatchStatus = MatchStatus.ACTIVE
    current_turn: int = 1
    alliances: List[Alliance] = field(default_factory=list)
    proposals: List[Proposal] = field(default_factory=list)
    history: List[TurnRecord] = field(default_factory=list)
    best_of: int = 3
    winner_id: Optional[str] = None
    distribution: List[Allocation] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utc_now)
    ended_at: Optional[datetime] = None

    def combatant(self, agent_id: Optional[str]) -> Optional[Combatant]:
        if agent_id is None:
            return None
        for c in self.combatants:
            if c.id == agent_id:
                return c
        return None

    def alive(self) -> List[Combatant]:
        return [c for c in self.combatants if c.alive]

    def alliance(self, alliance_id: Optional[str]) -> Optional[Alliance]:
        for a in self.alliances:
            if a.id == alliance_id:
                return a
        return None

    @property
    def is_active(self) -> bool:
        return self.status == MatchStatus.ACTIVE
