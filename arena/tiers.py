"""
Arena tier catalogue loaded from config/arena_tiers.yaml.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from engine.errors import ValidationError

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_TIERS_PATH = PROJECT_ROOT / "config" / "arena_tiers.yaml"


@dataclass(frozen=True)
class TierConfig:
    tier: str
    name: str
    entry_fee: int
    min_agents: int = 2
    max_agents: int = 8

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TierConfig":
        try:
            tier = TierConfig(
                tier=str(data["tier"]).lower(),
                name=str(data.get("name") or data["tier"]),
                entry_fee=int(data["entry_fee"]),
                min_agents=int(data.get("min_agents", 2)),
                max_agents=int(data.get("max_agents", 8)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid tier entry {data!r}: {exc}") from exc
        if tier.entry_fee < 0:
            raise ValidationError(f"Tier {tier.tier} has a negative entry fee")
        if not 2 <= tier.min_agents <= tier.max_agents:
            raise ValidationError(
                f"Tier {tier.tier} needs 2 <= min_agents <= max_agents"
            )
        return tier


@dataclass(frozen=True)
class TierCatalogue:
    tiers: List[TierConfig]
    rps_best_of: int = 3

    def get(self, tier: str) -> Optional[TierConfig]:
        for t in self.tiers:
            if t.tier == tier:
                return t
        return None

    @property
    def names(self) -> List[str]:
        return [t.tier for t in self.tiers]


def load_tiers(path: Optional[Path] = None) -> TierCatalogue:
    path = Path(path) if path else DEFAULT_TIERS_PATH
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    tiers = [TierConfig.from_dict(entry) for entry in data.get("tiers", [])]
    if len({t.tier for t in tiers}) != len(tiers):
        raise ValidationError(f"Duplicate tier names in {path}")
    rps = data.get("rps") or {}
    return TierCatalogue(tiers=tiers, rps_best_of=int(rps.get("best_of", 3)))
