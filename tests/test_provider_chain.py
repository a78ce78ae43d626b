import asyncio
import time
from unittest.mock import Mock

import numpy as np
import pytest

from conftest import TableProvider
from decision_gateway.circuit_breaker import CircuitBreaker
from decision_gateway.provider_chain import (
    FALLBACK_REASONING,
    RPS_FALLBACK_MOVE,
    DecisionProviderChain,
    DecisionRequest,
    LLMProvider,
    RpsProfileProvider,
    ScriptedStrategyProvider,
    build_default_chain,
)
from decision_gateway.rate_limiter import TokenBucket
from engine.errors import ProviderError, ProviderRateLimited, ScriptedStrategyError
from engine.models import Action, GameType
from strategies.base import CallableStrategy


def llm(name: str, reply=None, error=None) -> LLMProvider:
    client = Mock()
    client.name = name
    if error is not None:
        client.complete.side_effect = error
    else:
        client.complete.return_value = reply
    return LLMProvider(client, timeout=2)


def battle_request(strategy=None, agent_id: str = "a") -> DecisionRequest:
    state = {
        "matchId": "m1",
        "currentTurn": 1,
        "you": {"id": agent_id, "hp": 100, "alive": True},
        "opponents": [{"id": "b", "hp": 60, "alive": True, "lastAction": None}],
        "alliances": [],
        "prizePool": 100,
        "history": [],
    }
    return DecisionRequest(agent_id=agent_id, game_state=state, match_id="m1", strategy=strategy)


def rps_request() -> DecisionRequest:
    state = {"matchId": "r1", "round": 1, "bestOf": 3, "yourScore": 0, "opponentScore": 0,
             "yourMoves": [], "opponentMoves": []}
    return DecisionRequest(agent_id="a", game_state=state, kind=GameType.RPS, match_id="r1")


def test_first_valid_answer_wins(channel, sink) -> None:
    first = llm("anthropic", '{"action": "attack", "target": "b", "reasoning": "weak"}')
    second = llm("gemini", '{"action": "defend"}')
    chain = DecisionProviderChain([first, second], channel=channel)

    decision = asyncio.run(chain.decide(battle_request()))

    assert decision.action == Action.ATTACK
    assert decision.source == "anthropic"
    second.client.complete.assert_not_called()
    event = sink.of_kind("agent_reasoning")[0].payload
    assert event == {
        "match_id": "m1",
        "agent_id": "a",
        "action": "attack",
        "reasoning": "weak",
        "provider": "anthropic",
    }


def test_garbage_falls_through_to_scripted_then_default(channel, sink) -> None:
    garbage = llm("anthropic", "I think I will attack!")
    strategy = CallableStrategy(lambda state: {"action": "attack", "target": "b"})
    chain = DecisionProviderChain([garbage, ScriptedStrategyProvider(timeout=1)], channel=channel)

    decision = asyncio.run(chain.decide(battle_request(strategy)))
    assert decision.action == Action.ATTACK
    assert decision.source == "scripted"

    fallback = asyncio.run(chain.decide(battle_request(None)))
    assert fallback.action == Action.DEFEND
    assert fallback.reasoning == FALLBACK_REASONING
    assert fallback.source == "default"
    assert [e.payload["provider"] for e in sink.of_kind("agent_reasoning")] == [
        "scripted",
        "default",
    ]


def test_rate_limit_trips_breaker_and_skips_provider(channel, clock) -> None:
    limited = llm("gemini", error=ProviderRateLimited("gemini", "quota exceeded"))
    backup = llm("groq", '{"action": "defend"}')
    breaker = CircuitBreaker(cooldown=300, clock=clock)
    chain = DecisionProviderChain([limited, backup], breaker=breaker, channel=channel)

    assert asyncio.run(chain.decide(battle_request())).source == "groq"
    assert breaker.is_open("gemini")

    asyncio.run(chain.decide(battle_request()))
    assert limited.client.complete.call_count == 1

    clock.advance(300)
    asyncio.run(chain.decide(battle_request()))
    assert limited.client.complete.call_count == 2


def test_non_rate_limit_failure_does_not_trip(channel, clock) -> None:
    broken = llm("groq", error=RuntimeError("connection reset"))
    breaker = CircuitBreaker(cooldown=300, clock=clock)
    chain = DecisionProviderChain([broken], breaker=breaker, channel=channel)
    assert asyncio.run(chain.decide(battle_request())).action == Action.DEFEND
    assert breaker.snapshot() == {}


@pytest.mark.parametrize(
    "reply",
    [
        "{" + " " * 427 + "x}",
        "Sorry, my quota is 429 moves and I am overloaded.",
    ],
)
def test_malformed_reply_mentioning_rate_limits_does_not_trip(channel, clock, reply) -> None:
    garbled = llm("garbled", reply)
    breaker = CircuitBreaker(cooldown=300, clock=clock)
    chain = DecisionProviderChain([garbled], breaker=breaker, channel=channel)

    assert asyncio.run(chain.decide(battle_request())).source == "default"
    assert not breaker.is_open("garbled")

    asyncio.run(chain.decide(battle_request()))
    assert garbled.client.complete.call_count == 2


def test_slow_provider_times_out(channel) -> None:
    client = Mock()
    client.name = "anthropic"
    client.complete.side_effect = lambda *args: time.sleep(0.5) or '{"action": "attack"}'
    chain = DecisionProviderChain([LLMProvider(client, timeout=0.05)], channel=channel)
    assert asyncio.run(chain.decide(battle_request())).source == "default"


def test_limiter_only_paces_external_calls(channel, clock) -> None:
    limiter = TokenBucket(rate=1, capacity=1, clock=clock, sleep=clock.sleep)
    chain = DecisionProviderChain(
        [TableProvider({}), llm("groq", '{"action": "defend"}')], limiter=limiter, channel=channel
    )
    for _ in range(3):
        asyncio.run(chain.decide(battle_request()))
    assert clock.now == 1000.0

    external = DecisionProviderChain([llm("groq", '{"action": "defend"}')], limiter=limiter, channel=channel)
    for _ in range(3):
        asyncio.run(external.decide(battle_request()))
    assert clock.now == pytest.approx(1002.0)


def test_async_strategy_is_awaited(channel) -> None:
    async def decide(state):
        await asyncio.sleep(0)
        return {"action": "propose_alliance", "target": "b", "terms": {"prizeShare": 70}}

    chain = DecisionProviderChain([ScriptedStrategyProvider(timeout=1)], channel=channel)
    decision = asyncio.run(chain.decide(battle_request(CallableStrategy(decide))))
    assert decision.action == Action.PROPOSE_ALLIANCE
    assert decision.prize_share == 70


@pytest.mark.parametrize(
    "func",
    [
        lambda state: {"action": "dance"},
        lambda state: "attack",
        lambda state: 1 / 0,
    ],
)
def test_bad_strategy_output_is_rejected(func) -> None:
    provider = ScriptedStrategyProvider(timeout=1)
    with pytest.raises(ProviderError):
        asyncio.run(provider.decide(battle_request(CallableStrategy(func))))


def test_hanging_async_strategy_times_out() -> None:
    async def decide(state):
        await asyncio.sleep(5)

    provider = ScriptedStrategyProvider(timeout=0.05)
    with pytest.raises(ScriptedStrategyError):
        asyncio.run(provider.decide(battle_request(CallableStrategy(decide))))


def test_scripted_provider_skips_rps() -> None:
    provider = ScriptedStrategyProvider()
    request = rps_request()
    request.strategy = CallableStrategy(lambda state: {"action": "defend"})
    assert provider.applies(request) is False


def test_rps_uses_llm_then_profile_then_rock(channel) -> None:
    rps_llm = llm("groq", '{"move": "scissors", "reasoning": "they love paper"}')
    chain = DecisionProviderChain([rps_llm], channel=channel)
    assert asyncio.run(chain.decide(rps_request())).move == "scissors"

    profile = DecisionProviderChain(
        [llm("groq", "nope"), RpsProfileProvider(rng=np.random.default_rng(1))], channel=channel
    )
    choice = asyncio.run(profile.decide(rps_request()))
    assert choice.source == "rps_profile"
    assert choice.move in {"rock", "paper", "scissors"}

    empty = DecisionProviderChain([ScriptedStrategyProvider()], channel=channel)
    assert asyncio.run(empty.decide(rps_request())).move == RPS_FALLBACK_MOVE


def test_collect_decisions_is_sequential(channel) -> None:
    table = TableProvider({"a": {"action": "attack", "target": "b"}})
    chain = DecisionProviderChain([table], channel=channel)
    requests = [battle_request(agent_id="a"), battle_request(agent_id="b")]
    decisions = asyncio.run(chain.collect_decisions(requests))
    assert list(decisions) == ["a", "b"]
    assert [r.agent_id for r in table.requests] == ["a", "b"]
    assert decisions["b"].action == Action.DEFEND


def test_build_default_chain_order(monkeypatch) -> None:
    from decision_gateway import config

    monkeypatch.setattr(config, "PROVIDER_ORDER", ["gemini", "groq"])
    monkeypatch.setattr(config, "GEMINI_API_KEY", "x")
    monkeypatch.setattr(config, "GROQ_API_KEY", "")
    chain = build_default_chain(session=Mock())
    assert chain.provider_names == ["gemini", "scripted", "rps_profile"]
    assert chain.limiter is not None
