"""
WASM Arena - runs two sandboxed WebAssembly competitors against each other.

This package hosts the game runtime inside wasmtime, plays games over a seed
range on worker threads and aggregates the outcomes.
"""

from .errors import (
    ArenaError,
    ConfigError,
    SetupError,
    InvalidCompetitorError,
    GameTrapError,
    FuelExhaustedError,
    ProtocolError,
)
from .boundary import RuntimeImage, Boundary, CompetitorBuffer
from .game import Winner, Side, GameResult, run_game
from .aggregate import ResultAggregator, ReasonStats
from .tournament import Tournament, SeedCursor
from .config import TournamentConfig, load_config

__all__ = [
    "ArenaError",
    "ConfigError",
    "SetupError",
    "InvalidCompetitorError",
    "GameTrapError",
    "FuelExhaustedError",
    "ProtocolError",
    "RuntimeImage",
    "Boundary",
    "CompetitorBuffer",
    "Winner",
    "Side",
    "GameResult",
    "run_game",
    "ResultAggregator",
    "ReasonStats",
    "Tournament",
    "SeedCursor",
    "TournamentConfig",
    "load_config",
]
