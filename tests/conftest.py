from __future__ import annotations

from typing import Any, Callable, Dict, List

import pytest

from decision_gateway.provider_chain import (
    DecisionProvider,
    DecisionProviderChain,
    DecisionRequest,
)
from decision_gateway.validator import validate_battle_decision
from engine.events import EventChannel, MemorySink
from engine.models import AgentDescriptor, Buffs, StrategyParams


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class TableProvider(DecisionProvider):
    """Answers from a {agent_id: decision dict} table, or a callable per request."""

    name = "table"

    def __init__(self, table: Any) -> None:
        self.table = table
        self.requests: List[DecisionRequest] = []

    async def decide(self, request: DecisionRequest):
        self.requests.append(request)
        if callable(self.table):
            raw = self.table(request)
        else:
            raw = self.table.get(request.agent_id, {"action": "defend"})
        return validate_battle_decision(raw, self.name, source=self.name)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def channel(sink: MemorySink) -> EventChannel:
    return EventChannel([sink])


@pytest.fixture
def table_chain(channel: EventChannel) -> Callable[[Any], DecisionProviderChain]:
    def make(table: Any) -> DecisionProviderChain:
        return DecisionProviderChain([TableProvider(table)], channel=channel)

    return make


def agent(
    agent_id: str,
    external: bool = False,
    health: int = 0,
    armor: int = 0,
    attack: int = 0,
    **params: Any,
) -> AgentDescriptor:
    return AgentDescriptor(
        id=agent_id,
        name=agent_id.title(),
        is_external=external,
        buffs=Buffs(health=health, armor=armor, attack=attack),
        params=StrategyParams.from_dict(params),
    )


def first_of(events: List[Dict[str, Any]], kind: str) -> Dict[str, Any]:
    return next(e for e in events if e["type"] == kind)
