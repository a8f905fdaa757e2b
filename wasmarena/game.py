"""
Game Module - plays a single game between the two loaded competitors.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import ArenaError, InvalidCompetitorError, ProtocolError

logger = logging.getLogger(__name__)

# Winner codes 3 and 4 are not outcomes: the runtime refused one module.
RED_INVALID = 3
BLUE_INVALID = 4


class Winner(Enum):
    """Outcome of a played game. Values are the runtime's winner codes."""
    RED = 0
    BLUE = 1
    TIE = 2

    @property
    def label(self) -> str:
        return self.name


class Side(Enum):
    """One of the two competitors."""
    RED = "red"
    BLUE = "blue"

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class GameResult:
    """Result of one game."""
    winner: Winner
    tick: int
    cycle: int
    lose_reason: str


def _read_result(boundary, handle, seed: int) -> GameResult:
    code = boundary.read_winner(handle)
    if code == RED_INVALID:
        raise InvalidCompetitorError(Side.RED, seed)
    if code == BLUE_INVALID:
        raise InvalidCompetitorError(Side.BLUE, seed)
    try:
        winner = Winner(code)
    except ValueError:
        raise ProtocolError(f"unknown winner code {code} for seed {seed}") from None

    return GameResult(
        winner=winner,
        tick=boundary.read_ticks(handle),
        cycle=boundary.read_cycles(handle),
        lose_reason=boundary.read_reason(handle),
    )


def run_game(boundary, seed: int) -> GameResult:
    """
    Play one game on a boundary.

    The result handle is always released, including when the winner code
    says a competitor failed validation. If releasing fails after an earlier
    error, the release failure is logged and the earlier error propagates.

    Args:
        boundary: The calling thread's Boundary
        seed: Seed for the game

    Returns:
        GameResult for the game

    Raises:
        InvalidCompetitorError: if the runtime rejected a competitor module
        ProtocolError: if the runtime returned an unknown winner code
    """
    handle = boundary.invoke_run(boundary.red, boundary.blue, seed)
    try:
        result = _read_result(boundary, handle, seed)
    except Exception:
        try:
            boundary.release(handle)
        except ArenaError as e:
            logger.warning(f"Releasing the result of seed {seed} failed as well: {e}")
        raise

    boundary.release(handle)
    return result
