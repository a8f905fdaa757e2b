"""
Tournament Scheduler - spreads a seed range over worker threads.

Every worker owns a private Boundary and loops claim -> play -> record
until the seed range runs out. Claiming and recording use two separate
locks and never nest.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Optional

from .aggregate import ResultAggregator
from .errors import ConfigError
from .game import GameResult, run_game

logger = logging.getLogger(__name__)

# Seeds are unsigned 32-bit values inside the runtime.
SEED_LIMIT = 2 ** 32


def default_thread_count() -> int:
    return os.cpu_count() or 1


def check_seed_range(start_seed: int, games: int):
    """Reject seed ranges that would not fit the runtime's u32 seeds."""
    if start_seed < 0:
        raise ConfigError(f"start seed must not be negative, got {start_seed}")
    if games < 0:
        raise ConfigError(f"game count must not be negative, got {games}")
    if start_seed + games > SEED_LIMIT:
        raise ConfigError(
            f"seed {start_seed} is too high for {games} games "
            f"(last seed would be {start_seed + games - 1}, limit is {SEED_LIMIT - 1})"
        )


class SeedCursor:
    """Hands out each seed in [start_seed, start_seed + game_count) exactly once."""

    def __init__(self, start_seed: int, game_count: int):
        self._lock = threading.Lock()
        self.start_seed = start_seed
        self._end = start_seed + game_count
        self._next = start_seed

    def claim(self) -> Optional[int]:
        """Return the next unclaimed seed, or None once the range is used up."""
        with self._lock:
            if self._next >= self._end:
                return None
            seed = self._next
            self._next += 1
            return seed

    def cancel(self):
        """Stop handing out seeds; workers exit at their next claim."""
        with self._lock:
            self._end = self._next

    @property
    def claimed(self) -> int:
        with self._lock:
            return self._next - self.start_seed


class Tournament:
    """
    Runs a fixed number of games between the same two competitors.

    The first worker error cancels the seed cursor, the remaining workers
    finish their current game and stop, and the error is raised from run().
    No partial statistics are returned in that case.
    """

    def __init__(
        self,
        boundary_factory: Callable,
        start_seed: int = 0,
        games: int = 100,
        threads: Optional[int] = None,
        on_result: Optional[Callable[[int, GameResult], None]] = None,
        local_aggregation: bool = False,
    ):
        """
        Args:
            boundary_factory: Called once inside each worker thread to build its Boundary
            start_seed: First seed of the range
            games: Number of games (seeds) to play
            threads: Worker threads (default: CPU count)
            on_result: Called from the worker thread after each recorded game
            local_aggregation: Accumulate per worker and merge at join instead
                of recording into the shared aggregator after every game
        """
        check_seed_range(start_seed, games)
        if threads is None:
            threads = default_thread_count()
        if threads < 1:
            raise ConfigError(f"thread count must be at least 1, got {threads}")

        self.boundary_factory = boundary_factory
        self.start_seed = start_seed
        self.games = games
        self.threads = threads
        self.on_result = on_result
        self.local_aggregation = local_aggregation

        self.cursor = SeedCursor(start_seed, games)
        self.aggregate = ResultAggregator()

    def _worker(self, index: int) -> Optional[ResultAggregator]:
        boundary = self.boundary_factory()
        logger.debug("Worker %d ready", index)

        local = ResultAggregator() if self.local_aggregation else None
        sink = local if local is not None else self.aggregate
        played = 0

        while True:
            seed = self.cursor.claim()
            if seed is None:
                break
            result = run_game(boundary, seed)
            sink.record(seed, result)
            played += 1
            if self.on_result is not None:
                self.on_result(seed, result)

        logger.debug("Worker %d exhausted after %d games", index, played)
        return local

    def run(self) -> ResultAggregator:
        """
        Play every seed in the range.

        Returns:
            The final aggregator; safe to read without locking

        Raises:
            ArenaError: the first error raised by any worker
        """
        logger.info(
            "Running %d games from seed %d on %d threads",
            self.games, self.start_seed, self.threads,
        )
        first_error: Optional[BaseException] = None

        with ThreadPoolExecutor(
            max_workers=self.threads, thread_name_prefix="arena-worker"
        ) as executor:
            futures = [executor.submit(self._worker, i) for i in range(self.threads)]
            for future in as_completed(futures):
                try:
                    partial = future.result()
                except Exception as e:
                    if first_error is None:
                        first_error = e
                        logger.error("Stopping tournament: %s", e)
                        self.cursor.cancel()
                    else:
                        logger.warning("Another worker failed during shutdown: %s", e)
                    continue
                if partial is not None:
                    self.aggregate.merge(partial)

        if first_error is not None:
            raise first_error

        assert self.aggregate.total == self.games, (
            f"{self.aggregate.total} games recorded, {self.games} requested"
        )
        logger.info("Tournament complete: %d games", self.games)
        return self.aggregate
