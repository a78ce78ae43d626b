"""
Weighted-random rock/paper/scissors profile used when no AI provider answers.

Archetype weights (rock, paper, scissors):
  aggressiveness > 65      -> 60/25/15
  alliance_tendency > 65   -> 20/55/25
  betrayal_chance > 50     -> 34/33/33
  otherwise                -> 40/35/25
Traits nudge one move by +10. With probability aggressiveness * 0.4 the
profile counters the opponent's last move instead.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

import numpy as np

from engine.models import StrategyParams

MOVES = ["rock", "paper", "scissors"]
COUNTER = {"rock": "paper", "paper": "scissors", "scissors": "rock"}
BEATS = {"rock": "scissors", "paper": "rock", "scissors": "paper"}

ROCK_TRAITS = {"aggressive", "berserker"}
PAPER_TRAITS = {"diplomat", "loyal"}
SCISSORS_TRAITS = {"ambusher", "schemer", "trickster"}


def move_weights(params: StrategyParams, traits: Iterable[str] = ()) -> List[float]:
    if params.aggressiveness > 65:
        weights = [60.0, 25.0, 15.0]
    elif params.alliance_tendency > 65:
        weights = [20.0, 55.0, 25.0]
    elif params.betrayal_chance > 50:
        weights = [34.0, 33.0, 33.0]
    else:
        weights = [40.0, 35.0, 25.0]

    lowered = {str(t).lower() for t in traits}
    if lowered & ROCK_TRAITS:
        weights[0] += 10
    if lowered & PAPER_TRAITS:
        weights[1] += 10
    if lowered & SCISSORS_TRAITS:
        weights[2] += 10
    return weights


def counter_chance(params: StrategyParams) -> float:
    return (params.aggressiveness / 100.0) * 0.4


def choose_move(
    params: StrategyParams,
    traits: Iterable[str] = (),
    opponent_last_move: Optional[str] = None,
    rng: Optional[np.random.Generator] = None,
) -> str:
    rng = rng if rng is not None else np.random.default_rng()
    if opponent_last_move in COUNTER and rng.random() < counter_chance(params):
        return COUNTER[opponent_last_move]
    weights = np.asarray(move_weights(params, traits))
    return str(rng.choice(MOVES, p=weights / weights.sum()))


def resolve_round(move_a: str, move_b: str) -> int:
    """1 if the first move wins, 2 if the second wins, 0 on a draw."""
    if move_a == move_b:
        return 0
    return 1 if BEATS[move_a] == move_b else 2
