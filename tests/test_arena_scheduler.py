import asyncio

import numpy as np
import pytest

from arena.models import ArenaStatus
from arena.scheduler import ArenaScheduler, SchedulerConfig
from arena.tiers import load_tiers
from conftest import agent
from decision_gateway.provider_chain import DecisionProviderChain, RpsProfileProvider
from engine.errors import AgentNotInArenaError, ArenaNotFoundError, InvalidStateError, ValidationError
from engine.match_engine import MatchEngine
from engine.models import EngineRules, GameType, MatchStatus
from engine.rps_engine import RpsEngine


def scheduler_for(chain, channel, rules=None, **overrides) -> ArenaScheduler:
    config = SchedulerConfig(countdown_seconds=0.01, **overrides)
    return ArenaScheduler(
        MatchEngine(chain, rules=rules or EngineRules(attack_damage=200), channel=channel),
        RpsEngine(chain, channel=channel),
        config=config,
        channel=channel,
        tiers=load_tiers(),
    )


@pytest.fixture
def attack_chain(table_chain):
    # "a" swings, everyone else leaves themselves open
    def decide(request):
        opponents = [o for o in request.game_state["opponents"] if o["alive"]]
        if not opponents:
            return {"action": "defend"}
        if request.agent_id == "a":
            return {"action": "attack", "target": opponents[0]["id"]}
        return {"action": "propose_alliance", "target": "a"}

    return table_chain(decide)


def test_create_arena_from_tier(channel, table_chain) -> None:
    scheduler = scheduler_for(table_chain({}), channel)
    arena = scheduler.create_arena(tier="gold")
    assert (arena.entry_fee, arena.min_agents, arena.max_agents) == (500, 2, 4)
    assert arena.name == "Gold Arena"
    assert arena.status == ArenaStatus.OPEN

    rps = scheduler.create_arena(tier="bronze", game_type="rps")
    assert (rps.min_agents, rps.max_agents) == (2, 2)
    assert rps.name == "Bronze Arena RPS"

    with pytest.raises(ValidationError):
        scheduler.create_arena(tier="mythril")


def test_init_tier_pools_is_idempotent(channel, table_chain) -> None:
    scheduler = scheduler_for(table_chain({}), channel)
    assert len(scheduler.init_tier_pools()) == 10
    assert scheduler.init_tier_pools() == []


def test_unknown_arena(channel, table_chain) -> None:
    scheduler = scheduler_for(table_chain({}), channel)
    with pytest.raises(ArenaNotFoundError):
        scheduler.leave_arena("nope", "a")


def test_countdown_launches_match_and_replenishes(channel, sink, attack_chain) -> None:
    async def scenario():
        scheduler = scheduler_for(attack_chain, channel)
        arena = scheduler.create_arena(tier="bronze")
        scheduler.join_arena(arena.id, agent("a"))
        assert arena.status == ArenaStatus.OPEN
        joined = scheduler.join_arena(arena.id, agent("b"))
        assert joined["status"] == "lobby"
        assert scheduler.countdown_pending(arena.id)
        assert arena.prize_pool == 200
        await scheduler.wait_idle()
        return scheduler, arena

    scheduler, arena = asyncio.run(scenario())

    assert arena.status == ArenaStatus.COMPLETED
    result = scheduler.get_result(arena.match_id)
    assert result.winner_id == "a"
    assert result.distribution == [{"agentId": "a", "amount": 200}]
    assert not scheduler.is_agent_in_arena("a")

    kinds = sink.kinds()
    assert kinds.index("countdown_started") < kinds.index("match_launching") < kinds.index("match_completed")
    fresh = [a for a in scheduler.list_arenas(ArenaStatus.OPEN) if a.tier == "bronze"]
    assert len(fresh) == 1
    assert fresh[0].prize_pool == 0


def test_full_lobby_launches_without_countdown(channel, sink, attack_chain) -> None:
    async def scenario():
        scheduler = scheduler_for(attack_chain, channel, replenish=False)
        arena = scheduler.create_arena(tier="diamond")
        scheduler.join_arena(arena.id, agent("a"))
        scheduler.join_arena(arena.id, agent("b"))
        assert arena.status == ArenaStatus.IN_PROGRESS
        with pytest.raises(InvalidStateError):
            scheduler.join_arena(arena.id, agent("c"))
        with pytest.raises(InvalidStateError):
            scheduler.leave_arena(arena.id, "a")
        assert scheduler.is_agent_in_arena("b")
        await scheduler.wait_idle()
        return scheduler, arena

    scheduler, arena = asyncio.run(scenario())
    assert "countdown_started" not in sink.kinds()
    assert arena.status == ArenaStatus.COMPLETED
    assert len(scheduler.list_arenas()) == 1


def test_leave_below_minimum_reopens_and_cancels(channel, sink, table_chain) -> None:
    async def scenario():
        scheduler = scheduler_for(table_chain({}), channel)
        scheduler.config.countdown_seconds = 60
        arena = scheduler.create_arena(tier="bronze")
        scheduler.join_arena(arena.id, agent("a"))
        scheduler.join_arena(arena.id, agent("b"))
        left = scheduler.leave_arena(arena.id, "b")
        assert left == {"arenaId": arena.id, "lobbySize": 1, "status": "open"}
        assert not scheduler.countdown_pending(arena.id)
        with pytest.raises(AgentNotInArenaError):
            scheduler.leave_arena(arena.id, "b")
        await scheduler.wait_idle()
        return arena

    arena = asyncio.run(scenario())
    assert arena.prize_pool == 100
    assert "countdown_cancelled" in sink.kinds()
    assert "match_launching" not in sink.kinds()


def test_duplicate_join_rejected(channel, table_chain) -> None:
    async def scenario():
        scheduler = scheduler_for(table_chain({}), channel)
        arena = scheduler.create_arena(tier="bronze")
        scheduler.join_arena(arena.id, agent("a"))
        with pytest.raises(InvalidStateError):
            scheduler.join_arena(arena.id, agent("a"))
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_external_agents_do_not_fund_pool(channel, table_chain) -> None:
    async def scenario():
        scheduler = scheduler_for(table_chain({}), channel)
        scheduler.config.countdown_seconds = 60
        arena = scheduler.create_arena(tier="silver")
        scheduler.join_arena(arena.id, agent("ext_1", external=True))
        scheduler.join_arena(arena.id, agent("b"))
        assert arena.prize_pool == 300
        scheduler.leave_arena(arena.id, "ext_1")
        assert arena.prize_pool == 300
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_turn_cap_forces_end(channel, table_chain) -> None:
    async def scenario():
        chain = table_chain({"b": {"action": "attack", "target": "a"}})
        scheduler = scheduler_for(chain, channel, rules=EngineRules(), max_turns=3, replenish=False)
        arena = scheduler.create_arena(tier="bronze")
        scheduler.join_arena(arena.id, agent("a"))
        scheduler.join_arena(arena.id, agent("b"))
        scheduler.launch(arena.id)
        await scheduler.wait_idle()
        return scheduler.get_result(arena.match_id)

    result = asyncio.run(scenario())
    assert result.forced is True
    assert result.total_turns == 3
    assert result.winner_id == "b"


def test_rps_arena_runs_to_completion(channel, sink) -> None:
    async def scenario():
        chain = DecisionProviderChain([RpsProfileProvider(rng=np.random.default_rng(5))], channel=channel)
        scheduler = scheduler_for(chain, channel, replenish=False)
        arena = scheduler.create_arena(tier="bronze", game_type=GameType.RPS)
        scheduler.join_arena(arena.id, agent("a"))
        scheduler.join_arena(arena.id, agent("b"))
        await scheduler.wait_idle()
        return scheduler.get_result(arena.match_id)

    result = asyncio.run(scenario())
    assert result.game_type == GameType.RPS
    assert sum(result.final_score.values()) <= result.total_turns <= 5
    assert set(result.final_score) == {"a", "b"}


def test_match_failure_marks_arena_error(channel, sink, table_chain) -> None:
    class Exploding(MatchEngine):
        async def execute_turn(self, match):
            raise RuntimeError("engine blew up")

    async def scenario():
        chain = table_chain({})
        scheduler = scheduler_for(chain, channel)
        scheduler.battle_engine = Exploding(chain, channel=channel)
        arena = scheduler.create_arena(tier="bronze")
        scheduler.join_arena(arena.id, agent("a"))
        scheduler.join_arena(arena.id, agent("b"))
        scheduler.launch(arena.id)
        await scheduler.wait_idle()
        return scheduler, arena

    scheduler, arena = asyncio.run(scenario())
    assert arena.status == ArenaStatus.ERROR
    assert "engine blew up" in arena.error
    error = sink.of_kind("match_error")[0].payload
    assert error["agent_ids"] == ["a", "b"]
    assert not scheduler.is_agent_in_arena("a")
    assert len(scheduler.list_arenas()) == 1

    match = scheduler.get_match(arena.match_id)
    assert match.status == MatchStatus.ERROR
    assert match.ended_at is not None
    assert not match.is_active


def test_launch_requires_minimum(channel, table_chain) -> None:
    async def scenario():
        scheduler = scheduler_for(table_chain({}), channel)
        arena = scheduler.create_arena(tier="bronze")
        scheduler.join_arena(arena.id, agent("a"))
        with pytest.raises(InvalidStateError):
            scheduler.launch(arena.id)

    asyncio.run(scenario())


def test_filling_lobby_cancels_countdown_and_launches(channel, sink, attack_chain) -> None:
    async def scenario():
        scheduler = scheduler_for(attack_chain, channel, replenish=False)
        scheduler.config.countdown_seconds = 60
        arena = scheduler.create_arena(tier="gold")
        for agent_id in ("a", "b"):
            scheduler.join_arena(arena.id, agent(agent_id))
        assert arena.status == ArenaStatus.LOBBY
        assert scheduler.countdown_pending(arena.id)

        for agent_id in ("c", "d"):
            scheduler.join_arena(arena.id, agent(agent_id))
        assert arena.status == ArenaStatus.IN_PROGRESS
        assert not scheduler.countdown_pending(arena.id)
        await scheduler.wait_idle()
        return scheduler, arena

    scheduler, arena = asyncio.run(scenario())
    kinds = sink.kinds()
    assert kinds.index("countdown_cancelled") < kinds.index("match_launching")
    assert scheduler.get_result(arena.match_id).winner_id == "a"
    assert arena.prize_pool == 2000
