#!/usr/bin/env python3
"""
WASM Arena - Web Dashboard

Start a tournament from the browser and watch the statistics fill in.
One tournament runs at a time.
"""

import logging
import threading
import traceback

from flask import Flask, jsonify, render_template_string, request

from run_tournament import build_tournament
from wasmarena.config import TournamentConfig
from wasmarena.errors import ArenaError
from wasmarena.report import summarize

logger = logging.getLogger(__name__)

app = Flask(__name__)

_state_lock = threading.Lock()

# Global state for tracking the running tournament
current_tournament = {
    "running": False,
    "status": "idle",
    "progress": 0,
    "games": 0,
    "completed": 0,
    "error": None,
}
current_aggregate = None

HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>WASM Arena</title>
    <style>
        body { font-family: monospace; background: #111; color: #ddd; margin: 2em; }
        .red { color: #e55; } .blue { color: #59f; }
        pre { background: #1b1b1b; padding: 1em; }
    </style>
</head>
<body>
    <h1><span class="red">RED</span> vs <span class="blue">BLUE</span></h1>
    <pre id="status">idle</pre>
    <pre id="summary"></pre>
    <script>
        async function poll() {
            const status = await (await fetch('/api/status')).json();
            document.getElementById('status').textContent = JSON.stringify(status, null, 2);
            const summary = await (await fetch('/api/summary')).json();
            document.getElementById('summary').textContent = JSON.stringify(summary, null, 2);
            setTimeout(poll, 1000);
        }
        poll();
    </script>
</body>
</html>
"""


def _on_result(seed, result):
    with _state_lock:
        current_tournament["completed"] += 1
        games = current_tournament["games"]
        current_tournament["progress"] = (current_tournament["completed"] / games) * 100 if games else 100


@app.route('/')
def index():
    return render_template_string(HTML_TEMPLATE)


@app.route('/api/start', methods=['POST'])
def api_start():
    """Start a tournament."""
    global current_tournament, current_aggregate

    data = request.get_json(silent=True) or {}

    with _state_lock:
        if current_tournament["running"]:
            return jsonify({"success": False, "error": "Tournament already running"}), 409

    # Module reading and runtime compilation stay outside _state_lock.
    try:
        config = TournamentConfig().merged(
            runtime_path=data.get("runtime"),
            red_path=data.get("red"),
            blue_path=data.get("blue"),
            start_seed=data.get("seed"),
            games=data.get("games"),
            threads=data.get("threads"),
            fuel=data.get("fuel"),
        )
        tournament = build_tournament(config, on_result=_on_result)
    except ArenaError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    with _state_lock:
        if current_tournament["running"]:
            return jsonify({"success": False, "error": "Tournament already running"}), 409
        current_tournament = {
            "running": True,
            "status": "running",
            "progress": 0,
            "games": tournament.games,
            "completed": 0,
            "error": None,
        }
        current_aggregate = tournament.aggregate

    def run():
        try:
            tournament.run()
            status, error = "complete", None
        except ArenaError as e:
            status, error = "error", str(e)
        except Exception as e:
            logger.error("Tournament crashed:\n%s", traceback.format_exc())
            status, error = "error", f"{type(e).__name__}: {e}"
        with _state_lock:
            current_tournament["status"] = status
            current_tournament["error"] = error
            current_tournament["running"] = False

    thread = threading.Thread(target=run, name="arena-tournament", daemon=True)
    thread.start()

    return jsonify({"success": True, "games": tournament.games, "threads": tournament.threads})


@app.route('/api/status')
def api_status():
    """Get current tournament status."""
    with _state_lock:
        return jsonify(dict(current_tournament))


@app.route('/api/summary')
def api_summary():
    """Get the statistics recorded so far."""
    aggregate = current_aggregate
    if aggregate is None:
        return jsonify({"aggregate": None, "summary": None})
    snapshot = aggregate.to_dict()
    with _state_lock:
        games = current_tournament["games"]
    return jsonify({"aggregate": snapshot, "summary": summarize(aggregate, games)})


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    port = 8080
    print("\n" + "=" * 50)
    print("WASM Arena - Web Dashboard")
    print("=" * 50)
    print(f"\nOpen in your browser: http://localhost:{port}")
    print("\nPress Ctrl+C to stop\n")

    app.run(host='0.0.0.0', port=port, debug=False)
