"""
Error types raised by the arena.

Everything the host can report to the user derives from ArenaError so the
command line and the dashboard can turn it into a diagnostic instead of a
traceback.
"""

from typing import Optional


class ArenaError(Exception):
    """Base class for arena failures."""


class ConfigError(ArenaError, ValueError):
    """Raised when a tournament configuration cannot be run as given."""


class SetupError(ArenaError, RuntimeError):
    """Raised when the runtime or a competitor cannot be loaded."""


class InvalidCompetitorError(ArenaError):
    """Raised when the runtime rejects one competitor's module."""

    def __init__(self, side, seed: Optional[int] = None):
        self.side = side
        self.seed = seed
        message = f"{side.label} module failed validation"
        if seed is not None:
            message += f" (seed {seed})"
        super().__init__(message)


class GameTrapError(ArenaError, RuntimeError):
    """Raised when the runtime traps while a game is being played."""

    def __init__(self, seed: Optional[int], message: str):
        self.seed = seed
        super().__init__(f"game {seed} trapped: {message}")


class FuelExhaustedError(GameTrapError):
    """Raised when a game uses up its execution budget."""

    def __init__(self, seed: Optional[int], fuel: int):
        self.fuel = fuel
        super().__init__(seed, f"execution budget of {fuel} fuel units exhausted")


class ProtocolError(ArenaError, RuntimeError):
    """Raised when the runtime answers outside the call/result ABI."""
