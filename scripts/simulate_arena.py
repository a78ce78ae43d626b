"""Run a local arena simulation with scripted gladiators.

Builds the decision chain from the environment (LLM providers are used only
when their API keys are set, unless --offline), fills one arena with agents
drawn from the built-in strategy templates and prints the result and the
leaderboard.
"""
from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import random
import sys
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from analytics.leaderboard import Leaderboard  # noqa: E402
from analytics.match_report import damage_summary  # noqa: E402
from arena.scheduler import ArenaScheduler, SchedulerConfig  # noqa: E402
from arena.tiers import load_tiers  # noqa: E402
from config.env_loader import apply_env  # noqa: E402
from config.logging_config import get_logger  # noqa: E402
from decision_gateway import config as gateway_config  # noqa: E402
from decision_gateway.provider_chain import (  # noqa: E402
    DecisionProviderChain,
    RpsProfileProvider,
    ScriptedStrategyProvider,
    build_default_chain,
)
from engine.events import EventChannel, LoggingSink  # noqa: E402
from engine.match_engine import MatchEngine  # noqa: E402
from engine.models import AgentDescriptor, GameType  # noqa: E402
from engine.rps_engine import RpsEngine  # noqa: E402
from strategies import available_strategies, get_strategy  # noqa: E402


def build_agents(count: int, rng: random.Random, external: int = 0):
    tags = available_strategies()
    agents = []
    for i in range(count):
        tag = rng.choice(tags)
        strategy = get_strategy(tag)
        prefix = "ext_" if i < external else "agent_"
        agents.append(
            AgentDescriptor(
                id=f"{prefix}{i}",
                name=f"{tag.title()} #{i}",
                is_external=i < external,
                params=strategy.params,
                traits=list(strategy.traits),
                description=getattr(strategy, "description", ""),
                strategy=strategy,
            )
        )
    return agents


async def run(args: argparse.Namespace) -> int:
    log = get_logger("arena.simulate", "arena")
    channel = EventChannel()
    if args.verbose:
        channel.subscribe(LoggingSink(log))
    leaderboard = Leaderboard()
    channel.subscribe(leaderboard)

    np_rng = np.random.default_rng(args.seed)
    if args.offline:
        chain = DecisionProviderChain(
            [ScriptedStrategyProvider(), RpsProfileProvider(rng=np_rng)], channel=channel
        )
    else:
        providers = apply_env(args.env_file)
        # gateway settings are read at import time
        importlib.reload(gateway_config)
        log.info("Configured providers: %s", providers)
        chain = build_default_chain(channel=channel, rng=np_rng)

    scheduler = ArenaScheduler(
        MatchEngine(chain, channel=channel),
        RpsEngine(chain, channel=channel),
        SchedulerConfig(
            countdown_seconds=args.countdown,
            max_turns=args.max_turns,
            replenish=False,
        ),
        channel=channel,
        tiers=load_tiers(),
    )
    game_type = GameType(args.game_type)
    count = 2 if game_type == GameType.RPS else args.agents
    arena = scheduler.create_arena(
        tier=args.tier,
        game_type=game_type,
        max_agents=None if game_type == GameType.RPS else max(count, 2),
    )

    rng = random.Random(args.seed)
    for agent in build_agents(count, rng, external=args.external):
        scheduler.join_arena(arena.id, agent)
    if scheduler.get_arena(arena.id).status.value in ("open", "lobby"):
        scheduler.launch(arena.id)
    await scheduler.wait_idle()

    final = scheduler.get_arena(arena.id)
    if final.status.value != "completed":
        print(f"Arena ended with status {final.status.value}: {final.error}")
        return 1
    result = scheduler.get_result(final.match_id)
    print(json.dumps(result.to_dict(), indent=2))
    if game_type == GameType.BATTLE:
        print(damage_summary(scheduler.get_match(final.match_id)).to_string(index=False))
    print(leaderboard.standings().to_string(index=False))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate one arena match locally")
    parser.add_argument("--agents", type=int, default=4, help="Battle roster size")
    parser.add_argument("--external", type=int, default=0, help="How many agents are external")
    parser.add_argument("--game-type", choices=["battle", "rps"], default="battle")
    parser.add_argument("--tier", default="bronze")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--countdown", type=float, default=0.0)
    parser.add_argument("--max-turns", type=int, default=100)
    parser.add_argument("--env-file", default=str(PROJECT_ROOT / ".env"))
    parser.add_argument("--offline", action="store_true", help="Skip LLM providers")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
