#!/usr/bin/env python3
"""
WASM Arena - Tournament Runner

Play two WebAssembly competitors against each other over a range of seeds.

Usage:
    # 1000 games, human readable trace and report
    python run_tournament.py --runtime snake_runtime.wasm -r red.wasm -b blue.wasm -g 1000

    # Machine readable totals only
    python run_tournament.py -r red.wasm -b blue.wasm --json

    # Settings from a file, flags still win
    python run_tournament.py --config arena.toml --threads 4
"""

import argparse
import json
import logging
import sys
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console

from wasmarena.boundary import Boundary, RuntimeImage
from wasmarena.config import TournamentConfig, load_config
from wasmarena.errors import ArenaError, SetupError
from wasmarena.game import GameResult
from wasmarena.report import format_trace_line, json_summary, print_report
from wasmarena.tournament import Tournament

logger = logging.getLogger(__name__)


def read_module_file(path: str) -> bytes:
    """Read a module file, turning I/O failures into a SetupError."""
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise SetupError(f"cannot read module {path}: {e}") from e


def build_tournament(
    config: TournamentConfig,
    on_result: Optional[Callable[[int, GameResult], None]] = None,
) -> Tournament:
    """
    Validate a configuration and prepare its tournament.

    Loads both competitors and compiles the runtime, so every setup error
    surfaces here before any worker starts.

    Args:
        config: Tournament configuration
        on_result: Per-game callback passed through to the Tournament

    Returns:
        A Tournament ready to run()
    """
    config.validate()

    red = read_module_file(config.red_path)
    blue = read_module_file(config.blue_path)
    image = RuntimeImage.from_file(config.resolve_runtime_path(), fuel=config.fuel)

    return Tournament(
        partial(Boundary, image, red, blue),
        start_seed=config.start_seed,
        games=config.games,
        threads=config.threads,
        on_result=on_result,
        local_aggregation=config.local_aggregation,
    )


def trace_printer(console: Console) -> Callable[[int, GameResult], None]:
    """One coloured line per finished game, safe to call from worker threads."""
    def print_trace(seed: int, result: GameResult):
        console.print(format_trace_line(seed, result), soft_wrap=True)
    return print_trace


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="WASM Arena - run a tournament between two WebAssembly competitors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_tournament.py --runtime snake_runtime.wasm -r red.wasm -b blue.wasm
  python run_tournament.py -r red.wasm -b blue.wasm -s 500 -g 100 --json
        """,
    )

    parser.add_argument("-r", "--red", type=str, help="WASM file for the RED (team 0) player")
    parser.add_argument("-b", "--blue", type=str, help="WASM file for the BLUE (team 1) player")
    parser.add_argument(
        "-s", "--seed",
        type=int,
        help="Starting seed, incremented by 1 for each game (default: 0)",
    )
    parser.add_argument(
        "-g", "--games",
        type=int,
        help="Number of games to simulate (default: 100)",
    )
    parser.add_argument(
        "-t", "--threads",
        type=int,
        help="Number of worker threads (default: number of cores)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print JSON totals instead of the human readable output",
    )
    parser.add_argument(
        "--runtime",
        type=str,
        help="WASM file of the game runtime (default: $WASMARENA_RUNTIME)",
    )
    parser.add_argument(
        "--fuel",
        type=int,
        help="Execution budget per game in fuel units, 0 disables (default: 10000000000)",
    )
    parser.add_argument(
        "--local-aggregation",
        action="store_true",
        help="Aggregate per worker and merge at the end instead of after every game",
    )
    parser.add_argument("--config", type=str, help="TOML file with a [tournament] table")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    console = Console(highlight=False)

    try:
        config = load_config(Path(args.config)) if args.config else TournamentConfig()
        config = config.merged(
            runtime_path=args.runtime,
            red_path=args.red,
            blue_path=args.blue,
            start_seed=args.seed,
            games=args.games,
            threads=args.threads,
            fuel=args.fuel,
            local_aggregation=args.local_aggregation or None,
            json_output=args.json or None,
        )

        tournament = build_tournament(
            config, on_result=None if config.json_output else trace_printer(console)
        )
        if not config.json_output:
            print(f"Running {tournament.games} games with {tournament.threads} threads")
        aggregate = tournament.run()

    except ArenaError as e:
        logger.debug("Tournament aborted", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1

    if config.json_output:
        print(json.dumps(json_summary(aggregate), indent=2))
    else:
        print_report(aggregate, tournament.games, console)
    return 0


if __name__ == "__main__":
    sys.exit(main())
