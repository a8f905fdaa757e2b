"""
Report Module - turns tournament statistics into summaries and tables.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .aggregate import ResultAggregator
from .game import GameResult, Winner

# 95% two-sided normal quantile
Z_95 = 1.959963984540054

# Reasons recorded under a winner describe how the other side lost.
LOSER_OF = {Winner.BLUE: Winner.RED, Winner.RED: Winner.BLUE}

WINNER_STYLES = {
    Winner.RED: "bold red",
    Winner.BLUE: "bold blue",
    Winner.TIE: "bold yellow",
}


def wilson_interval(counts: np.ndarray, n: int, z: float = Z_95) -> Tuple[np.ndarray, np.ndarray]:
    """Wilson score interval for each proportion counts / n."""
    if n == 0:
        zeros = np.zeros_like(counts, dtype=float)
        return zeros, zeros
    p = counts / n
    denom = 1.0 + z ** 2 / n
    centre = (p + z ** 2 / (2 * n)) / denom
    half = z * np.sqrt(p * (1 - p) / n + z ** 2 / (4 * n ** 2)) / denom
    return np.clip(centre - half, 0.0, 1.0), np.clip(centre + half, 0.0, 1.0)


def summarize(aggregate: ResultAggregator, games: Optional[int] = None) -> Dict:
    """
    Per-outcome counts, percentages and 95% confidence intervals.

    Args:
        aggregate: Tournament statistics
        games: Number of games the percentages refer to (default: recorded total)

    Returns:
        Dict with "games" and one entry per outcome under "outcomes"
    """
    outcomes = list(Winner)
    counts = np.array([aggregate.count(w) for w in outcomes], dtype=float)
    n = int(counts.sum()) if games is None else games

    share = counts / n if n else np.zeros_like(counts)
    low, high = wilson_interval(counts, n)

    return {
        "games": n,
        "outcomes": {
            winner.name.lower(): {
                "count": int(counts[i]),
                "percent": float(share[i] * 100),
                "ci95": [float(low[i] * 100), float(high[i] * 100)],
            }
            for i, winner in enumerate(outcomes)
        },
    }


def json_summary(aggregate: ResultAggregator) -> Dict[str, int]:
    """The machine-readable result: games won by each side and ties."""
    return {
        "red": aggregate.count(Winner.RED),
        "tie": aggregate.count(Winner.TIE),
        "blue": aggregate.count(Winner.BLUE),
    }


def lose_reason_rows(aggregate: ResultAggregator, winner: Winner) -> List[Tuple[str, int, List[int]]]:
    """Rows of (reason, count, sorted example seeds), most frequent first."""
    rows = [
        (reason, stats.count, sorted(stats.examples))
        for reason, stats in aggregate.reasons_for(winner).items()
    ]
    rows.sort(key=lambda row: (-row[1], row[0]))
    return rows


def winner_text(winner: Winner) -> Text:
    """The winner label, coloured."""
    return Text(winner.label, style=WINNER_STYLES[winner])


def format_trace_line(seed: int, result: GameResult) -> Text:
    line = Text(f"{seed:05} = ")
    line.append_text(winner_text(result.winner))
    line.append(f" ({result.tick}:{result.cycle:05}) {result.lose_reason}")
    return line


def lose_reason_table(aggregate: ResultAggregator, winner: Winner) -> Table:
    """Loss-reason table for the side that lost to winner."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Reason", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("Seed Examples")

    for reason, count, examples in lose_reason_rows(aggregate, winner):
        # Text keeps brackets in runtime-supplied reasons from being read as markup
        table.add_row(Text(reason), str(count), ", ".join(str(seed) for seed in examples))
    return table


def print_lose_reasons(console: Console, aggregate: ResultAggregator, winner: Winner):
    """Print the lose-reason table for the side that lost to winner."""
    console.print(Text.assemble(
        winner_text(LOSER_OF[winner]), " lose reasons (why the last snake died)"
    ))
    console.print(lose_reason_table(aggregate, winner))


def print_report(aggregate: ResultAggregator, games: int, console: Optional[Console] = None):
    """Print the human readable results block."""
    console = console or Console(highlight=False)
    summary = summarize(aggregate, games)

    console.print()
    console.print("===== RESULTS =====", style="bold")
    console.print(f"GAMES SIMULATED: {games}")
    for winner, label in ((Winner.RED, "RED WINS"), (Winner.TIE, "TIES"), (Winner.BLUE, "BLUE WINS")):
        outcome = summary["outcomes"][winner.name.lower()]
        low, high = outcome["ci95"]
        console.print(Text.assemble(
            (label, WINNER_STYLES[winner]),
            f": {outcome['count']} ({outcome['percent']:.1f}%, "
            f"95% CI {low:.1f}-{high:.1f}%)",
        ))

    console.print("\n")
    print_lose_reasons(console, aggregate, Winner.BLUE)
    console.print("\n")
    print_lose_reasons(console, aggregate, Winner.RED)
