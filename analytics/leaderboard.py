"""
ELO leaderboard fed by engine events.

Attach an instance to an EventChannel: match_ended updates wins, losses,
draws, streaks and ratings; betrayal and accepted bribe_attempt events update
the behavioural counters.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

import pandas as pd

from engine.events import ArenaEvent

logger = logging.getLogger(__name__)

STARTING_ELO = 1000
K_FACTOR = 32
ELO_FLOOR = 100
BETRAYAL_PENALTY = 15

SORT_COLUMNS = {
    "elo": "elo",
    "wins": "wins",
    "earnings": "earnings",
    "betrayals": "betrayals",
    "streak": "max_streak",
}


@dataclass
class LeaderboardEntry:
    agent_id: str
    elo: int = STARTING_ELO
    wins: int = 0
    losses: int = 0
    draws: int = 0
    earnings: int = 0
    betrayals: int = 0
    bribes: int = 0
    streak: int = 0
    max_streak: int = 0
    last_match: Optional[float] = None


def expected_score(rating: float, opponent: float) -> float:
    return 1.0 / (1.0 + 10 ** ((opponent - rating) / 400.0))


class Leaderboard:
    def __init__(self, clock=time.time) -> None:
        self._entries: Dict[str, LeaderboardEntry] = {}
        self._clock = clock

    def entry(self, agent_id: str) -> LeaderboardEntry:
        if agent_id not in self._entries:
            self._entries[agent_id] = LeaderboardEntry(agent_id=agent_id)
        return self._entries[agent_id]

    def get(self, agent_id: str) -> Optional[LeaderboardEntry]:
        return self._entries.get(agent_id)

    def earnings(self, agent_id: str) -> int:
        entry = self._entries.get(agent_id)
        return entry.earnings if entry else 0

    # updates ------------------------------------------------------------
    def record_match(
        self,
        winner_id: Optional[str],
        participants: Iterable[str],
        prize: int = 0,
    ) -> None:
        participants = list(dict.fromkeys(participants))
        now = self._clock()
        if winner_id is None:
            for agent_id in participants:
                e = self.entry(agent_id)
                e.draws += 1
                e.streak = 0
                e.last_match = now
            return

        losers = [p for p in participants if p != winner_id]
        w = self.entry(winner_id)
        w.wins += 1
        w.streak += 1
        w.max_streak = max(w.max_streak, w.streak)
        w.earnings += int(prize)
        w.last_match = now
        avg_loser = (
            sum(self.entry(x).elo for x in losers) / len(losers) if losers else STARTING_ELO
        )
        w.elo = round(w.elo + K_FACTOR * (1 - expected_score(w.elo, avg_loser)))

        for loser_id in losers:
            lost = self.entry(loser_id)
            lost.losses += 1
            lost.streak = 0
            lost.last_match = now
            lost.elo = max(
                ELO_FLOOR, round(lost.elo + K_FACTOR * (0 - expected_score(lost.elo, w.elo)))
            )

    def record_betrayal(self, agent_id: str) -> None:
        e = self.entry(agent_id)
        e.betrayals += 1
        e.elo = max(ELO_FLOOR, e.elo - BETRAYAL_PENALTY)

    def record_bribe(self, agent_id: str) -> None:
        self.entry(agent_id).bribes += 1

    # event sink ---------------------------------------------------------
    def publish(self, event: ArenaEvent) -> None:
        payload = event.payload
        if event.kind == "match_ended":
            winner = payload.get("winner_id")
            prize = sum(
                a["amount"]
                for a in payload.get("distribution", [])
                if a.get("agentId") == winner
            )
            self.record_match(winner, payload.get("participants", []), prize)
        elif event.kind == "betrayal":
            self.record_betrayal(payload["betrayer_id"])
        elif event.kind == "bribe_attempt" and payload.get("accepted"):
            self.record_bribe(payload["briber_id"])

    # read model ---------------------------------------------------------
    def standings(self, sort_by: str = "elo", limit: Optional[int] = None) -> pd.DataFrame:
        columns = list(LeaderboardEntry.__dataclass_fields__)
        frame = pd.DataFrame([asdict(e) for e in self._entries.values()], columns=columns)
        column = SORT_COLUMNS.get(sort_by, "elo")
        frame = frame.sort_values(
            [column, "agent_id"], ascending=[False, True], kind="mergesort"
        ).reset_index(drop=True)
        if limit is not None:
            frame = frame.head(limit)
        return frame

    def to_records(self, sort_by: str = "elo") -> List[Dict[str, object]]:
        return self.standings(sort_by).to_dict(orient="records")
