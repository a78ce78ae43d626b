"""
Scripted strategy interface and registry.

Strategies are a closed set of registered implementations looked up by tag;
agent-supplied source text is never executed.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol

from engine.errors import ValidationError
from engine.models import StrategyParams


class Strategy(Protocol):
    name: str
    params: StrategyParams
    traits: List[str]

    def decide(self, game_state: Dict[str, Any]) -> Any: ...


class CallableStrategy:
    """Wrap a plain function (sync or async) as a Strategy."""

    def __init__(
        self,
        func: Callable[[Dict[str, Any]], Any],
        name: str = "callable",
        params: Optional[StrategyParams] = None,
        traits: Optional[List[str]] = None,
    ) -> None:
        self.func = func
        self.name = name
        self.params = params or StrategyParams()
        self.traits = list(traits or [])

    def decide(self, game_state: Dict[str, Any]) -> Any:
        return self.func(game_state)


_REGISTRY: Dict[str, Callable[[], Strategy]] = {}


def register_strategy(tag: str, factory: Callable[[], Strategy]) -> None:
    _REGISTRY[tag.lower()] = factory


def get_strategy(tag: str) -> Strategy:
    factory = _REGISTRY.get(str(tag).lower())
    if factory is None:
        raise ValidationError(
            f"Unknown strategy '{tag}'; available: {', '.join(available_strategies())}"
        )
    return factory()


def available_strategies() -> List[str]:
    return sorted(_REGISTRY)


def alive_opponents(game_state: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [o for o in game_state.get("opponents", []) if o.get("alive")]


def weakest(opponents: List[Dict[str, Any]]) -> Dict[str, Any]:
    return min(opponents, key=lambda o: o.get("hp", 0))


def strongest(opponents: List[Dict[str, Any]]) -> Dict[str, Any]:
    return max(opponents, key=lambda o: o.get("hp", 0))


def my_alliances(game_state: Dict[str, Any]) -> List[Dict[str, Any]]:
    me = game_state.get("you", {}).get("id")
    return [a for a in game_state.get("alliances", []) if me in a.get("members", [])]
