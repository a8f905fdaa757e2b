"""
Result Aggregation - win counts and lose-reason histograms.

Lose reasons are keyed by the winner of the game, so the reasons recorded
under BLUE describe how RED lost and vice versa.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List

from .game import GameResult, Winner

MAX_EXAMPLE_SEEDS = 5


@dataclass
class ReasonStats:
    """How often a lose reason occurred and the first seeds that showed it."""
    count: int = 0
    examples: List[int] = field(default_factory=list)

    def add(self, seed: int):
        self.count += 1
        if len(self.examples) < MAX_EXAMPLE_SEEDS:
            self.examples.append(seed)


class ResultAggregator:
    """
    Shared tournament statistics.

    record() and merge() take the aggregator's lock. Readers that run while
    workers are still recording should use to_dict(); once the tournament
    has joined its workers the attributes can be read directly.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.wins: Dict[Winner, int] = {}
        self.lose_reasons: Dict[Winner, Dict[str, ReasonStats]] = {}

    def record(self, seed: int, result: GameResult):
        """Add one finished game."""
        with self._lock:
            self.wins[result.winner] = self.wins.get(result.winner, 0) + 1
            reasons = self.lose_reasons.setdefault(result.winner, {})
            reasons.setdefault(result.lose_reason, ReasonStats()).add(seed)

    def merge(self, other: "ResultAggregator"):
        """Fold another aggregator, typically a worker's private one, into this one."""
        with self._lock:
            for winner, count in other.wins.items():
                self.wins[winner] = self.wins.get(winner, 0) + count
            for winner, reasons in other.lose_reasons.items():
                mine = self.lose_reasons.setdefault(winner, {})
                for reason, stats in reasons.items():
                    target = mine.setdefault(reason, ReasonStats())
                    target.count += stats.count
                    room = MAX_EXAMPLE_SEEDS - len(target.examples)
                    target.examples.extend(stats.examples[:max(room, 0)])

    @property
    def total(self) -> int:
        return sum(self.wins.values())

    def count(self, winner: Winner) -> int:
        return self.wins.get(winner, 0)

    def reasons_for(self, winner: Winner) -> Dict[str, ReasonStats]:
        return self.lose_reasons.get(winner, {})

    def to_dict(self) -> Dict:
        """JSON-ready snapshot, consistent even while games are being recorded."""
        with self._lock:
            return {
                "wins": {w.name.lower(): self.wins.get(w, 0) for w in Winner},
                "lose_reasons": {
                    winner.name.lower(): {
                        reason: {"count": stats.count, "examples": sorted(stats.examples)}
                        for reason, stats in reasons.items()
                    }
                    for winner, reasons in self.lose_reasons.items()
                },
            }
