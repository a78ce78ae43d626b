import asyncio

import pytest

from conftest import agent, first_of
from engine.errors import InvalidStateError, ValidationError
from engine.match_engine import MatchEngine, check_match_end
from engine.models import Action, ArenaContext, EngineRules, MatchStatus


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def arena() -> ArenaContext:
    return ArenaContext(arena_id="arena_1", prize_pool=300)


def test_start_match_validates_roster(table_chain, arena) -> None:
    engine = MatchEngine(table_chain({}))
    with pytest.raises(ValidationError):
        engine.start_match(arena, [agent("solo")])
    small = ArenaContext(arena_id="x", min_agents=2, max_agents=3)
    with pytest.raises(ValidationError):
        engine.start_match(small, [agent(f"a{i}") for i in range(4)])


def test_start_match_initialises_combatants(table_chain, arena, sink) -> None:
    chain = table_chain({})
    engine = MatchEngine(chain, channel=chain.channel)
    match = engine.start_match(arena, [agent("a", health=50), agent("b")])
    a, b = match.combatants
    assert (a.hp, a.max_hp) == (105, 105)
    assert (b.hp, b.max_hp) == (100, 105)
    assert a.alive and a.turns_alive == 0
    assert match.status == MatchStatus.ACTIVE
    assert "match_started" in sink.kinds()


def test_mutual_attack_turn(table_chain, arena) -> None:
    chain = table_chain(
        {"a": {"action": "attack", "target": "b"}, "b": {"action": "attack", "target": "a"}}
    )
    engine = MatchEngine(chain)
    match = engine.start_match(arena, [agent("a"), agent("b")])

    record = run(engine.execute_turn(match))

    assert [c.hp for c in match.combatants] == [85, 85]
    assert set(record.decisions) == {"a", "b"}
    assert match.current_turn == 2
    assert all(c.turns_alive == 1 for c in match.combatants)


def test_defend_halves_incoming_damage(table_chain, arena) -> None:
    chain = table_chain({"a": {"action": "attack", "target": "b"}, "b": {"action": "defend"}})
    engine = MatchEngine(chain)
    match = engine.start_match(arena, [agent("a"), agent("b")])
    record = run(engine.execute_turn(match))
    assert match.combatant("b").hp == 95
    assert first_of(record.events, "attack")["defended"] is True


def test_decisions_keyed_by_alive_agents_only(table_chain, arena) -> None:
    chain = table_chain({})
    engine = MatchEngine(chain)
    match = engine.start_match(arena, [agent("a"), agent("b"), agent("c")])
    match.combatant("c").alive = False
    match.combatant("c").hp = 0
    record = run(engine.execute_turn(match))
    assert set(record.decisions) == {"a", "b"}


def test_snapshot_is_taken_before_any_decision(table_chain, arena) -> None:
    seen = {}

    def decide(request):
        seen[request.agent_id] = request.game_state
        return {"action": "attack", "target": "b" if request.agent_id == "a" else "a"}

    chain = table_chain(decide)
    engine = MatchEngine(chain)
    match = engine.start_match(arena, [agent("a"), agent("b")])
    run(engine.execute_turn(match))
    assert seen["b"]["opponents"][0]["lastAction"] is None
    assert seen["a"]["you"]["hp"] == seen["b"]["you"]["hp"] == 100


def test_accept_resolves_before_attack_and_betrayal_after(table_chain, arena) -> None:
    turns = {
        1: {"a": {"action": "propose_alliance", "target": "b", "terms": {"prizeShare": 50}}},
        2: {
            "b": {"action": "accept_alliance", "proposer": "a"},
            "c": {"action": "attack", "target": "a"},
        },
    }

    def decide(request):
        return turns.get(request.game_state["currentTurn"], {}).get(
            request.agent_id, {"action": "defend"}
        )

    engine = MatchEngine(table_chain(decide))
    match = engine.start_match(arena, [agent("a"), agent("b"), agent("c")])
    run(engine.execute_turn(match))
    assert len(match.proposals) == 1

    record = run(engine.execute_turn(match))
    kinds = [e["type"] for e in record.events]
    assert kinds.index("alliance_formed") < kinds.index("attack")
    assert len(match.alliances) == 1

    alliance_id = match.alliances[0].id
    turns[3] = {
        "a": {"action": "betray_alliance", "allianceId": alliance_id, "attackTarget": "b"},
        "b": {"action": "defend"},
    }
    run(engine.execute_turn(match))
    assert match.alliances == []
    # capped at 105, then -20 (betrayal ignores defend) +5
    assert match.combatant("b").hp == 90


def test_hp_stays_within_bounds_every_turn(table_chain, arena) -> None:
    def decide(request):
        opponents = [o for o in request.game_state["opponents"] if o["alive"]]
        if not opponents:
            return {"action": "defend"}
        return {"action": "attack", "target": opponents[0]["id"]}

    engine = MatchEngine(table_chain(decide))
    match = engine.start_match(arena, [agent(f"a{i}", attack=40) for i in range(4)])
    for _ in range(30):
        if not match.is_active:
            break
        run(engine.execute_turn(match))
        for c in match.combatants:
            assert 0 <= c.hp <= c.max_hp
            if not c.alive:
                assert c.hp == 0
    assert match.status == MatchStatus.COMPLETED


def test_last_standing_wins_and_is_paid(table_chain, arena, sink) -> None:
    chain = table_chain({"a": {"action": "attack", "target": "b"}})
    rules = EngineRules(attack_damage=200)
    engine = MatchEngine(chain, rules=rules, channel=chain.channel)
    match = engine.start_match(arena, [agent("a"), agent("b")])

    record = run(engine.execute_turn(match))

    assert match.status == MatchStatus.COMPLETED
    assert match.winner_id == "a"
    assert [a.to_dict() for a in record.distribution] == [{"agentId": "a", "amount": 300}]
    assert first_of(record.events, "death")["agentId"] == "b"
    assert first_of(record.events, "match_end")["winner"] == "a"
    ended = sink.of_kind("match_ended")[0].payload
    assert ended["winner_id"] == "a"
    assert ended["participants"] == ["a", "b"]


def test_simultaneous_death_is_a_draw(table_chain, arena) -> None:
    chain = table_chain(
        {"a": {"action": "attack", "target": "b"}, "b": {"action": "attack", "target": "a"}}
    )
    engine = MatchEngine(chain, rules=EngineRules(attack_damage=200))
    match = engine.start_match(arena, [agent("a"), agent("b")])
    record = run(engine.execute_turn(match))
    assert match.status == MatchStatus.COMPLETED
    assert match.winner_id is None
    assert record.distribution == []
    assert first_of(record.events, "match_end")["reason"] == "draw"


def test_execute_turn_on_finished_match_fails(table_chain, arena) -> None:
    engine = MatchEngine(table_chain({}))
    match = engine.start_match(arena, [agent("a"), agent("b")])
    match.status = MatchStatus.COMPLETED
    with pytest.raises(InvalidStateError):
        run(engine.execute_turn(match))


def test_force_end_picks_highest_hp(table_chain, arena) -> None:
    engine = MatchEngine(table_chain({}))
    match = engine.start_match(arena, [agent("a"), agent("b"), agent("c")])
    match.combatant("b").hp = 104
    plan = engine.force_end(match)
    assert match.winner_id == "b"
    assert [a.agent_id for a in plan] == ["b"]


@pytest.mark.parametrize(
    "alive,ended,winner",
    [(["a"], True, "a"), ([], True, None), (["a", "b"], False, None)],
)
def test_check_match_end(alive, ended, winner) -> None:
    result = check_match_end(alive)
    assert result.ended is ended
    assert result.winner_id == winner


def test_broken_strategy_defaults_to_defend(channel, arena) -> None:
    from decision_gateway.provider_chain import DecisionProviderChain, ScriptedStrategyProvider
    from strategies.base import CallableStrategy

    def broken(state):
        raise RuntimeError("boom")

    chain = DecisionProviderChain([ScriptedStrategyProvider(timeout=1)], channel=channel)
    engine = MatchEngine(chain)
    a = agent("a")
    a.strategy = CallableStrategy(broken)
    match = engine.start_match(arena, [a, agent("b")])
    record = run(engine.execute_turn(match))
    assert record.decisions["a"].action == Action.DEFEND
    assert record.decisions["b"].action == Action.DEFEND


def test_get_match_status(table_chain, arena) -> None:
    engine = MatchEngine(table_chain({}))
    match = engine.start_match(arena, [agent("a"), agent("b")])
    status = engine.get_match_status(match)
    assert status["aliveCount"] == 2
    assert status["prizePool"] == 300
    assert status["gameType"] == "battle"
